"""
Integration tests for API endpoints.

The FastAPI lifespan's init_db is patched out for every test.  Each test
gets its own in-memory SQLite database via the db_session / client
fixtures, so tests are fully isolated.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from conftest import feature_collection
from db import models
from db.session import get_session


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def client(db_session):
    """
    TestClient with:
      - lifespan init_db patched to a no-op
      - get_session dependency overridden to use the test db_session
    """
    from api.main import app

    def override_get_session():
        yield db_session

    with patch("api.main.init_db"):
        app.dependency_overrides[get_session] = override_get_session
        with TestClient(app, raise_server_exceptions=True) as c:
            yield c
        app.dependency_overrides.clear()


@pytest.fixture
def city(db_session, add_route):
    """Two routes with stops ~95 m apart, plus a far stop."""
    r1 = add_route("Ruta 1", ("S1", "Zócalo", [-99.1332, 19.4326]))
    r2 = add_route(
        "Ruta 2",
        ("A", "Catedral", [-99.1340, 19.4330]),
        ("B", "Bellas Artes", [-99.1410, 19.4352]),
        sub_routes=[{"name": "Ida", "direction": "outbound"}],
    )
    sub_id = db_session.query(models.SubRoute.sub_route_id).filter_by(route_id=r2).scalar()
    return {"r1": r1, "r2": r2, "sub": sub_id}


def _create_schedule(client, **body):
    resp = client.post("/schedules", json={"days": ["monday"], "departures": ["06:00"], **body})
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_empty_db(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert "timestamp" in body
        assert body["data"] == {"routes": 0, "stops": 0, "schedules": 0}

    def test_counts(self, client, city):
        _create_schedule(client, route_id=city["r1"])
        assert client.get("/health").json()["data"] == {"routes": 2, "stops": 3, "schedules": 1}


# ---------------------------------------------------------------------------
# GET /routes/{route_id}/connections/{stop_id}
# ---------------------------------------------------------------------------

class TestConnections:
    def test_finds_nearby_stop(self, client, city):
        _create_schedule(client, route_id=city["r2"], sub_route_id=city["sub"], departures=["07:00"])
        resp = client.get(f"/routes/{city['r1']}/connections/S1")
        assert resp.status_code == 200
        body = resp.json()
        assert body["origin_stop"]["stop_id"] == "S1"
        assert body["origin_stop"]["coordinates"] == [-99.1332, 19.4326]
        assert [c["stop_id"] for c in body["connections"]] == ["A"]
        conn = body["connections"][0]
        assert conn["route_name"] == "Ruta 2"
        assert 90 < conn["distance_metres"] < 100
        assert conn["schedules"][0]["sub_route_name"] == "Ida"

    def test_larger_radius(self, client, city):
        body = client.get(f"/routes/{city['r1']}/connections/S1?radius=2000").json()
        assert [c["stop_id"] for c in body["connections"]] == ["A", "B"]

    def test_unknown_route_returns_404(self, client):
        resp = client.get("/routes/nope/connections/S1")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "route_not_found"

    def test_unknown_stop_returns_404(self, client, city):
        resp = client.get(f"/routes/{city['r1']}/connections/ZZ")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "stop_not_found"

    @pytest.mark.parametrize("radius", ["0", "-5"])
    def test_non_positive_radius_returns_422(self, client, city, radius):
        resp = client.get(f"/routes/{city['r1']}/connections/S1?radius={radius}")
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "invalid_radius"

    @pytest.mark.parametrize("radius", ["far", "nan", "inf"])
    def test_unparseable_radius_returns_invalid_radius(self, client, city, radius):
        resp = client.get(f"/routes/{city['r1']}/connections/S1?radius={radius}")
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "invalid_radius"

    def test_radius_above_cap_returns_422(self, client, city):
        resp = client.get(f"/routes/{city['r1']}/connections/S1?radius=1000000")
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "radius_too_large"

    def test_radius_at_cap_is_accepted(self, client, city):
        resp = client.get(f"/routes/{city['r1']}/connections/S1?radius=10000")
        assert resp.status_code == 200

    def test_origin_with_bad_coordinates_returns_422(self, client, add_route):
        rid = add_route("Rota", ("X", "Roto", [500, 0]), path=[])
        resp = client.get(f"/routes/{rid}/connections/X")
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "invalid_coordinate"


# ---------------------------------------------------------------------------
# Route reads
# ---------------------------------------------------------------------------

class TestRoutes:
    def test_list_sorted_by_name(self, client, add_route):
        add_route("Zeta", ("S1", "Uno", [-99.1, 19.4]))
        add_route("Alfa", ("S2", "Dos", [-99.2, 19.5]))
        body = client.get("/routes").json()
        assert [r["name"] for r in body] == ["Alfa", "Zeta"]
        assert "geojson" not in body[0]

    def test_detail_groups_schedules(self, client, city):
        _create_schedule(client, route_id=city["r2"], sub_route_id=city["sub"])
        body = client.get(f"/routes/{city['r2']}").json()
        assert body["geojson"]["type"] == "FeatureCollection"
        assert [f["geometry"]["type"] for f in body["geojson"]["features"]] == [
            "LineString", "Point", "Point",
        ]
        assert len(body["schedules"]) == 1
        group = body["schedules"][0]
        assert group["sub_route_id"] == city["sub"]
        assert group["sub_route_name"] == "Ida"

    def test_detail_unassigned_group(self, client, city):
        _create_schedule(client, route_id=city["r1"])
        group = client.get(f"/routes/{city['r1']}").json()["schedules"][0]
        assert group["sub_route_id"] is None

    def test_detail_missing_route(self, client):
        resp = client.get("/routes/nope")
        assert resp.status_code == 404

    def test_stops(self, client, city):
        body = client.get(f"/routes/{city['r2']}/stops").json()
        assert [s["stop_id"] for s in body] == ["A", "B"]
        assert body[0]["coordinates"] == [-99.1340, 19.4330]

    def test_sub_routes_with_schedules(self, client, city):
        created = _create_schedule(client, route_id=city["r2"], sub_route_id=city["sub"])
        body = client.get(f"/routes/{city['r2']}/sub-routes").json()
        assert body[0]["name"] == "Ida"
        assert body[0]["direction"] == "outbound"
        assert [s["schedule_id"] for s in body[0]["schedules"]] == [created["schedule_id"]]


# ---------------------------------------------------------------------------
# POST /routes/import
# ---------------------------------------------------------------------------

class TestImport:
    def test_inline_collection(self, client):
        resp = client.post("/routes/import", json={
            "name": "Ruta 5",
            "feature_collection": feature_collection(("S1", "Uno", [-99.1, 19.4])),
            "sub_routes": [{"name": "Ida", "direction": "outbound"}],
        })
        assert resp.status_code == 201
        rid = resp.json()["route_id"]
        assert client.get(f"/routes/{rid}").json()["name"] == "Ruta 5"

    def test_from_url(self, client):
        fc = feature_collection(("S1", "Uno", [-99.1, 19.4]))
        with patch("api.main.download_feature_collection", new=AsyncMock(return_value=fc)) as dl:
            resp = client.post("/routes/import", json={
                "name": "Ruta 6", "source_url": "https://example.org/ruta6.geojson",
            })
        assert resp.status_code == 201
        dl.assert_awaited_once_with("https://example.org/ruta6.geojson")

    def test_requires_exactly_one_source(self, client):
        resp = client.post("/routes/import", json={"name": "Ruta 7"})
        assert resp.status_code == 422

    def test_invalid_collection_returns_400(self, client):
        resp = client.post("/routes/import", json={
            "name": "Ruta 7", "feature_collection": {"type": "Feature"},
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "invalid_feature_collection"

    def test_malformed_url_returns_422(self, client):
        bad_url = httpx.InvalidURL("Invalid IPv6 address")
        with patch("api.main.download_feature_collection", new=AsyncMock(side_effect=bad_url)):
            resp = client.post("/routes/import", json={"name": "Ruta 8", "source_url": "http://[::1"})
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "invalid_source_url"

    def test_unreachable_url_returns_502(self, client):
        down = httpx.ConnectError("connection refused")
        with patch("api.main.download_feature_collection", new=AsyncMock(side_effect=down)):
            resp = client.post("/routes/import", json={
                "name": "Ruta 9", "source_url": "https://example.org/ruta9.geojson",
            })
        assert resp.status_code == 502

    def test_duplicate_name_returns_409(self, client, city):
        resp = client.post("/routes/import", json={
            "name": "Ruta 1", "feature_collection": feature_collection(),
        })
        assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

class TestSchedules:
    def test_create_returns_cached_sub_route_name(self, client, city):
        body = _create_schedule(client, route_id=city["r2"], sub_route_id=city["sub"],
                                kind="special", valid_from="2026-03-01")
        assert body["sub_route_name"] == "Ida"
        assert body["kind"] == "special"
        assert body["valid_from"] == "2026-03-01"

    def test_create_invalid_sub_route_returns_400(self, client, city):
        resp = client.post("/schedules", json={
            "route_id": city["r2"], "sub_route_id": "nope",
            "days": ["monday"], "departures": ["06:00"],
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "invalid_sub_route"

    def test_create_unknown_route_returns_404(self, client):
        resp = client.post("/schedules", json={
            "route_id": "nope", "days": ["monday"], "departures": ["06:00"],
        })
        assert resp.status_code == 404

    def test_create_bad_time_returns_422(self, client, city):
        resp = client.post("/schedules", json={
            "route_id": city["r1"], "days": ["monday"], "departures": ["25:00"],
        })
        assert resp.status_code == 422

    def test_create_without_days_returns_422(self, client, city):
        resp = client.post("/schedules", json={"route_id": city["r1"], "days": []})
        assert resp.status_code == 422

    def test_list_and_filters(self, client, city):
        a = _create_schedule(client, route_id=city["r1"], days=["sunday"], departures=["09:00"])
        b = _create_schedule(client, route_id=city["r2"], sub_route_id=city["sub"])

        listed = client.get("/schedules").json()
        assert [(s["schedule_id"], s["route_name"]) for s in listed] == [
            (a["schedule_id"], "Ruta 1"), (b["schedule_id"], "Ruta 2"),
        ]
        by_route = client.get(f"/schedules/route/{city['r1']}").json()
        assert [s["schedule_id"] for s in by_route] == [a["schedule_id"]]
        by_sub = client.get(f"/schedules/sub-route/{city['sub']}").json()
        assert [s["schedule_id"] for s in by_sub] == [b["schedule_id"]]
        by_day = client.get(f"/schedules/day/sunday/route/{city['r1']}").json()
        assert [s["schedule_id"] for s in by_day] == [a["schedule_id"]]
        assert client.get(f"/schedules/day/monday/route/{city['r1']}").json() == []

    def test_unknown_day_returns_422(self, client, city):
        resp = client.get(f"/schedules/day/someday/route/{city['r1']}")
        assert resp.status_code == 422

    def test_patch(self, client, city):
        created = _create_schedule(client, route_id=city["r1"], notes="old")
        resp = client.patch(f"/schedules/{created['schedule_id']}", json={"departures": ["10:15"]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["departures"] == ["10:15"]
        assert body["notes"] == "old"

    @pytest.mark.parametrize("field", ["route_id", "days", "departures", "kind"])
    def test_patch_null_required_field_returns_400(self, client, city, field):
        created = _create_schedule(client, route_id=city["r1"], kind="special")
        resp = client.patch(f"/schedules/{created['schedule_id']}", json={field: None})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "invalid_schedule"
        stored = client.get(f"/schedules/route/{city['r1']}").json()[0]
        assert stored["departures"] == ["06:00"]
        assert stored["kind"] == "special"

    def test_patch_null_clears_notes(self, client, city):
        created = _create_schedule(client, route_id=city["r1"], notes="old")
        resp = client.patch(f"/schedules/{created['schedule_id']}", json={"notes": None})
        assert resp.status_code == 200
        assert resp.json()["notes"] is None

    def test_patch_missing_returns_404(self, client):
        resp = client.patch("/schedules/nope", json={"notes": "x"})
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "schedule_not_found"

    def test_delete(self, client, city):
        created = _create_schedule(client, route_id=city["r1"])
        resp = client.delete(f"/schedules/{created['schedule_id']}")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert client.get(f"/schedules/route/{city['r1']}").json() == []

    def test_delete_missing_returns_404(self, client):
        assert client.delete("/schedules/nope").status_code == 404
