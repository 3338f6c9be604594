"""
Shared fixtures: a fresh in-memory SQLite database per test and a helper
that imports a small GeoJSON route into it.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base
from ingestion.geojson import import_route


@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database, schema pre-created, per test.

    StaticPool is required so that create_all and the session both use
    the same single connection; otherwise each pool checkout gets a new
    in-memory DB that has no tables.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine)
    session = TestSession()
    yield session
    session.close()
    engine.dispose()


def feature_collection(*stops, path=None) -> dict:
    """
    Build a FeatureCollection from (stop_id, name, [lon, lat]) tuples.
    A LineString through the stops is prepended unless path is given.
    """
    features = []
    line = path if path is not None else [list(c) for _, _, c in stops]
    if line:
        features.append({
            "type": "Feature",
            "geometry": {"type": "LineString", "coordinates": line},
            "properties": {"id": "path"},
        })
    for stop_id, name, coords in stops:
        features.append({
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": coords},
            "properties": {"id": stop_id, "name": name},
        })
    return {"type": "FeatureCollection", "features": features}


@pytest.fixture
def add_route(db_session):
    """Import a route built from stop tuples; returns its route_id."""
    def _add(name, *stops, company=None, sub_routes=(), path=None):
        return import_route(
            db_session,
            feature_collection(*stops, path=path),
            name=name,
            company=company,
            sub_routes=sub_routes,
        )
    return _add
