"""Shared fixtures: in-memory SQLite sessions and a seeded supply chain."""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from palmtrace.models import Base  # noqa: F401 -- registers all models
from palmtrace.models.facility import Facility
from palmtrace.modules import risk_assessment


def _sqlite_engine(url: str):
    engine = create_engine(url)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db():
    """Create an in-memory SQLite database with all tables for each test."""
    engine = _sqlite_engine("sqlite:///:memory:")
    Session = sessionmaker(bind=engine, autoflush=False)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def file_sessionmaker(tmp_path):
    """Sessionmaker over a file database, for tests that need two connections."""
    engine = _sqlite_engine(f"sqlite:///{tmp_path / 'palmtrace.db'}")
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


@pytest.fixture
def mill(db):
    facility = Facility(facility_code="FAC-MILL", name="Test Mill", facility_type="mill")
    db.add(facility)
    db.commit()
    return facility


@pytest.fixture
def demo(db):
    """The demo supply chain from scripts/seed_demo.py."""
    from scripts.seed_demo import seed_demo

    return seed_demo(db)


@pytest.fixture(autouse=True)
def _fresh_risk_config():
    risk_assessment.reload_risk_config()
    yield
    risk_assessment._RISK_CONFIG = None
