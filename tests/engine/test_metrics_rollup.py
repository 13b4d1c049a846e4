"""Tests for MetricsRollup — persisted daily facility metrics."""

from datetime import date, datetime

import pytest
from sqlalchemy import select

from incident_analytics.engine.incident_manager import IncidentManager
from incident_analytics.engine.metrics_rollup import MetricsRollup
from incident_analytics.engine.reference_data import ReferenceDataManager
from incident_analytics.exceptions import ConfigurationError
from incident_analytics.models import IncidentMetric
from incident_analytics.reporting.store import IncidentStore


async def _seed(factory):
    reference = ReferenceDataManager(factory)
    incidents = IncidentManager(factory)
    hq = await reference.create_facility("HQ")
    annex = await reference.create_facility("Annex")
    category = await reference.create_category("Intrusion")
    analyst = await reference.create_personnel("Ben", "Analyst", role="Analyst")

    async def create(facility, when, severity):
        return await incidents.create_incident(
            facility_id=facility["id"],
            category_id=category["id"],
            reported_by_id=analyst["id"],
            title="Door forced",
            severity=severity,
            incident_date=when,
        )

    closed = await create(hq, datetime(2024, 1, 10, 8, 0), "Critical")
    await incidents.update_status(closed["id"], "Closed", resolved_by_id=analyst["id"],
                                  resolution_date=datetime(2024, 1, 10, 14, 0))
    await create(hq, datetime(2024, 1, 10, 9, 0), "High")
    await create(annex, datetime(2024, 1, 10, 23, 59), "Low")
    await create(annex, datetime(2024, 1, 11, 0, 0), "Low")
    return hq, annex


async def _stored(factory):
    async with factory() as session:
        result = await session.execute(select(IncidentMetric).order_by(IncidentMetric.facility_id))
        return result.scalars().all()


class TestMetricsRollup:

    @pytest.mark.asyncio
    async def test_rollup_persists_one_row_per_facility(self, db_session_factory, report_config):
        hq, annex = await _seed(db_session_factory)
        rollup = MetricsRollup(db_session_factory, IncidentStore(db_session_factory), report_config)

        rows = await rollup.rollup(date(2024, 1, 10))

        assert [r["facility_id"] for r in rows] == [hq["id"], annex["id"]]
        stored = await _stored(db_session_factory)
        assert len(stored) == 2
        hq_metric = stored[0]
        assert hq_metric.metric_date == date(2024, 1, 10)
        assert (hq_metric.total_incidents, hq_metric.open_incidents, hq_metric.closed_incidents) == (2, 1, 1)
        assert hq_metric.avg_resolution_hours == 6.0
        assert (hq_metric.high_severity_count, hq_metric.critical_severity_count) == (1, 1)
        assert stored[1].total_incidents == 1

    @pytest.mark.asyncio
    async def test_rerun_replaces_the_day(self, db_session_factory, report_config):
        await _seed(db_session_factory)
        rollup = MetricsRollup(db_session_factory, IncidentStore(db_session_factory), report_config)

        await rollup.rollup(date(2024, 1, 10))
        await rollup.rollup(date(2024, 1, 10))
        await rollup.rollup(date(2024, 1, 11))

        stored = await _stored(db_session_factory)
        assert sorted((m.metric_date, m.total_incidents) for m in stored) == [
            (date(2024, 1, 10), 1),
            (date(2024, 1, 10), 2),
            (date(2024, 1, 11), 1),
        ]

    @pytest.mark.asyncio
    async def test_rejects_datetime(self, db_session_factory, report_config):
        rollup = MetricsRollup(db_session_factory, IncidentStore(db_session_factory), report_config)
        with pytest.raises(ConfigurationError):
            await rollup.rollup(datetime(2024, 1, 10))
