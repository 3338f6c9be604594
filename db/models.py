"""
SQLAlchemy ORM models for bus routes, their sub-routes and schedules.

A route is stored the way it is drawn: an ordered list of GeoJSON-like
features (LineString paths and Point stops) in route_features.  Stops have
no table of their own; they only exist as Point features of a route.

Schedule.sub_route_name is a copy of the sub-route's name taken when the
schedule was created or last updated.  Renaming a sub-route does not touch
existing schedules, so the copy may go stale.
"""

from sqlalchemy import (
    JSON, Boolean, Column, ForeignKey, Integer, String, Text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Route(Base):
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, unique=True, nullable=False)
    company = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(String)  # ISO 8601 timestamp

    features = relationship(
        "RouteFeature",
        back_populates="route",
        order_by="RouteFeature.position",
        cascade="all, delete-orphan",
    )
    sub_routes = relationship(
        "SubRoute",
        back_populates="route",
        order_by="SubRoute.id",
        cascade="all, delete-orphan",
    )


class RouteFeature(Base):
    __tablename__ = "route_features"

    id = Column(Integer, primary_key=True, autoincrement=True)
    route_id = Column(String, ForeignKey("routes.route_id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    feature_id = Column(String, nullable=False, index=True)
    geometry_type = Column(String, nullable=False)  # "LineString" | "Point"
    coordinates = Column(JSON, nullable=False)
    properties = Column(JSON, nullable=True)

    route = relationship("Route", back_populates="features")


class SubRoute(Base):
    __tablename__ = "sub_routes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sub_route_id = Column(String, unique=True, nullable=False, index=True)
    route_id = Column(String, ForeignKey("routes.route_id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    direction = Column(String, nullable=False)  # "outbound" | "return" | "loop"

    route = relationship("Route", back_populates="sub_routes")


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    schedule_id = Column(String, unique=True, nullable=False, index=True)
    route_id = Column(String, ForeignKey("routes.route_id"), index=True, nullable=False)
    sub_route_id = Column(String, index=True, nullable=True)
    sub_route_name = Column(String, nullable=True)
    days = Column(JSON, nullable=False)        # ["monday", ...]
    departures = Column(JSON, nullable=False)  # ["06:15", "06:45", ...]
    kind = Column(String, nullable=False, default="normal")
    valid_from = Column(String, nullable=True)  # YYYY-MM-DD
    valid_to = Column(String, nullable=True)    # YYYY-MM-DD
    notes = Column(Text, nullable=True)
    created_at = Column(String)  # ISO 8601 timestamp
    updated_at = Column(String)  # ISO 8601 timestamp
