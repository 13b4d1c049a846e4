"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from incident_analytics.models import Base
from incident_analytics.reporting.records import (
    CategoryRecord,
    FacilityRecord,
    IncidentRecord,
    PersonnelRecord,
    Snapshot,
)

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


@pytest.fixture
def clock():
    """Clock frozen at 2024-06-01 12:00 UTC."""
    return fixed_clock


class IncidentFactory:
    """Builds ``IncidentRecord``s with sequential ids and sensible defaults."""

    def __init__(self):
        self._next_id = 1

    def __call__(self, incident_date, resolution_hours=None, **overrides):
        fields = {
            "id": self._next_id,
            "facility_id": 1,
            "category_id": 1,
            "incident_date": incident_date,
            "severity": "Medium",
            "status": "Open",
            "reported_by_id": 1,
        }
        if resolution_hours is not None:
            fields["resolution_date"] = _plus_hours(incident_date, resolution_hours)
            fields["status"] = "Closed"
        fields.update(overrides)
        if "actual_cost" in fields and fields["actual_cost"] is not None:
            fields["actual_cost"] = Decimal(str(fields["actual_cost"]))
        self._next_id = max(self._next_id, fields["id"]) + 1
        return IncidentRecord(**fields)


def _plus_hours(value: datetime, hours: float) -> datetime:
    return value + timedelta(hours=hours)


@pytest.fixture
def make_incident():
    return IncidentFactory()


@pytest.fixture
def facilities():
    return [
        FacilityRecord(id=1, name="Alpha Plant"),
        FacilityRecord(id=2, name="Bravo Depot"),
        FacilityRecord(id=3, name="Charlie Office"),
        FacilityRecord(id=4, name="Decommissioned", is_active=False),
    ]


@pytest.fixture
def categories():
    return [
        CategoryRecord(id=1, name="Intrusion"),
        CategoryRecord(id=2, name="Malware", parent_id=1),
        CategoryRecord(id=3, name="Phishing"),
        CategoryRecord(id=4, name="Retired", is_active=False),
    ]


@pytest.fixture
def personnel():
    return [
        PersonnelRecord(id=1, first_name="Ada", last_name="Reporter", role="Guard"),
        PersonnelRecord(id=2, first_name="Ben", last_name="Analyst", role="Analyst"),
        PersonnelRecord(id=3, first_name="Cleo", last_name="Analyst", role="Senior Analyst"),
        PersonnelRecord(id=4, first_name="Dan", last_name="Former", role="Analyst", is_active=False),
    ]


@pytest.fixture
def build_snapshot(facilities, categories, personnel):
    """Return a callable building a snapshot over the shared reference data."""

    def _build(incidents=()):
        return Snapshot.build(
            facilities=facilities,
            categories=categories,
            personnel=personnel,
            incidents=incidents,
        )

    return _build


@pytest.fixture
def report_config():
    """Create a mock IncidentAnalyticsConfig with the default report settings."""
    config = MagicMock()
    config.report_top_cost_limit = 20
    config.report_analyst_min_resolved = 5
    config.report_resolved_within_hours = 24.0
    config.report_open_resolution_policy = "exclude"
    config.report_closed_statuses = ["Closed"]
    config.report_deadline_seconds = 30.0
    return config


@pytest_asyncio.fixture
async def db_session_factory():
    """In-memory database shared across sessions via StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    yield factory
    await engine.dispose()
