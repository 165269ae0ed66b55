# tests/conftest.py
"""Shared fixtures: an in-memory SQLite schedule database and seeded families."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timezone
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from schoolpool.database import Base, create_tables, enable_sqlite_savepoints
from schoolpool.models import Child, Group, User, Vehicle
from schoolpool.services.schedule_store import ScheduleGraphStore

# Fixed "now" for the store: every 2024 instant used by the tests is in the future
NOW = datetime(2023, 12, 1, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    enable_sqlite_savepoints(engine)
    create_tables(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return ScheduleGraphStore(session_factory, clock=lambda: NOW)


@pytest.fixture
def seed(session_factory):
    """One group, three vehicles, a driver and four children. Returns their ids."""
    db = session_factory()
    db.add_all([
        Group(id="group-1", name="Oak Street School Run"),
        Group(id="group-2", name="Riverside Morning"),
        User(id="driver-1", name="Sam Parent", email="sam@example.com"),
        User(id="driver-2", name="Alex Parent", email="alex@example.com"),
        Vehicle(id="vehicle-1", name="Blue Minivan", capacity=3, family_id="family-1"),
        Vehicle(id="vehicle-2", name="Red Hatchback", capacity=2, family_id="family-2"),
        Vehicle(id="vehicle-3", name="Station Wagon", capacity=4, family_id="family-3"),
        Child(id="child-1", name="Emma", family_id="family-1"),
        Child(id="child-2", name="Liam", family_id="family-1"),
        Child(id="child-3", name="Noah", family_id="family-2"),
        Child(id="child-4", name="Mia", family_id="family-3"),
    ])
    db.commit()
    db.close()
    return {
        "group": "group-1",
        "other_group": "group-2",
        "drivers": ["driver-1", "driver-2"],
        "vehicles": ["vehicle-1", "vehicle-2", "vehicle-3"],
        "children": ["child-1", "child-2", "child-3", "child-4"],
    }
