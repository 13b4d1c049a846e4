"""Tests for ReportService — named dispatch, concurrent runs and error surfacing."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from incident_analytics.engine.incident_manager import IncidentManager
from incident_analytics.engine.reference_data import ReferenceDataManager
from incident_analytics.exceptions import ConfigurationError, DataSourceError, ReportTimeoutError
from incident_analytics.reporting.filters import ReportFilter
from incident_analytics.reporting.result import ReportResult
from incident_analytics.reporting.rows import CategoryParetoRow, MonthlyTrendRow
from incident_analytics.reporting.service import (
    REPORT_OPTIONS,
    REPORT_ROW_MODELS,
    ReportService,
    validate_request,
)
from incident_analytics.reporting.store import IncidentStore


def _mock_store(snapshot):
    store = MagicMock()
    store.load_snapshot = AsyncMock(return_value=snapshot)
    return store


@pytest.fixture
def snapshot(make_incident, build_snapshot):
    return build_snapshot([
        make_incident(datetime(2024, 1, 5), resolution_hours=2, actual_cost=300),
        make_incident(datetime(2024, 1, 9), category_id=3, actual_cost=100),
        make_incident(datetime(2024, 2, 2), category_id=3),
    ])


class TestValidateRequest:

    def test_every_report_has_a_row_model(self):
        assert set(REPORT_OPTIONS) == set(REPORT_ROW_MODELS)

    def test_unknown_report(self):
        with pytest.raises(ConfigurationError, match="Unknown report"):
            validate_request("busiest_guard")

    def test_unknown_option(self):
        with pytest.raises(ConfigurationError, match="does not accept"):
            validate_request("peak_times", {"limit": 3})


class TestReportService:

    @pytest.mark.asyncio
    async def test_run_single_report(self, snapshot, report_config, clock):
        service = ReportService(_mock_store(snapshot), report_config, clock=clock)
        rows = await service.run("category_pareto")

        assert all(isinstance(r, CategoryParetoRow) for r in rows)
        assert [r.category_name for r in rows] == ["Phishing", "Intrusion"]

    @pytest.mark.asyncio
    async def test_run_with_options_and_filters(self, snapshot, report_config, clock):
        store = _mock_store(snapshot)
        service = ReportService(store, report_config, clock=clock)
        rows = await service.run("top_cost_incidents", {"end": "2024-02-01"}, limit=1)

        assert [r.actual_cost for r in rows] == [300]
        store.load_snapshot.assert_awaited_once_with(ReportFilter(end=datetime(2024, 2, 1)))

    @pytest.mark.asyncio
    async def test_run_many_shares_one_snapshot(self, snapshot, report_config, clock):
        store = _mock_store(snapshot)
        service = ReportService(store, report_config, clock=clock)
        results = await service.run_many(["monthly_trend", "facility_scorecard", "peak_times"])

        assert list(results) == ["monthly_trend", "facility_scorecard", "peak_times"]
        assert all(isinstance(r, MonthlyTrendRow) for r in results["monthly_trend"])
        store.load_snapshot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_many_with_options(self, snapshot, report_config, clock):
        service = ReportService(_mock_store(snapshot), report_config, clock=clock)
        results = await service.run_many({
            "analyst_performance": {"min_resolved": 0},
            "top_cost_incidents": {"limit": 5},
        })
        assert len(results["top_cost_incidents"]) == 2

    @pytest.mark.asyncio
    async def test_invalid_requests_fail_before_loading(self, snapshot, report_config):
        store = _mock_store(snapshot)
        service = ReportService(store, report_config)

        with pytest.raises(ConfigurationError):
            await service.run("nonexistent")
        with pytest.raises(ConfigurationError):
            await service.run("monthly_trend", limit=3)
        with pytest.raises(ConfigurationError):
            await service.run("monthly_trend", {"start": "2024-13-01"})
        store.load_snapshot.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,options,filters", [
        ("top_cost_incidents", {"limit": -1}, None),
        ("analyst_performance", {"min_resolved": "x"}, None),
        ("daily_facility_metrics", {"day": datetime(2024, 1, 1, 9, 0)}, None),
        ("peak_times", {}, ["2024-01-01"]),
    ])
    async def test_bad_values_fail_without_store_read(self, report_config, name, options, filters):
        store = MagicMock()
        store.load_snapshot = AsyncMock(side_effect=DataSourceError("store down"))
        service = ReportService(store, report_config)

        with pytest.raises(ConfigurationError):
            await service.run(name, filters, **options)
        store.load_snapshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bad_engine_config_fails_without_store_read(self, report_config):
        report_config.report_closed_statuses = ["Archived"]
        store = MagicMock()
        store.load_snapshot = AsyncMock(side_effect=DataSourceError("store down"))

        with pytest.raises(ConfigurationError, match="Unknown status"):
            await ReportService(store, report_config).run("facility_scorecard")
        store.load_snapshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_negative_limit_fails_before_computing(self, snapshot, report_config):
        service = ReportService(_mock_store(snapshot), report_config)
        with patch.object(ReportResult, "rows") as rows:
            with pytest.raises(ConfigurationError):
                await service.run_many({"peak_times": {}, "top_cost_incidents": {"limit": -1}})
        rows.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, snapshot, report_config):
        service = ReportService(_mock_store(snapshot), report_config)
        with patch.object(ReportResult, "rows", side_effect=ReportTimeoutError("too slow")):
            with pytest.raises(ReportTimeoutError):
                await service.run("monthly_trend")

    @pytest.mark.asyncio
    async def test_data_source_error_propagates(self, report_config):
        store = MagicMock()
        store.load_snapshot = AsyncMock(side_effect=DataSourceError("store down"))
        service = ReportService(store, report_config)
        with pytest.raises(DataSourceError):
            await service.run("peak_times")


class TestReportServiceIntegration:

    @pytest.mark.asyncio
    async def test_reports_reflect_store_at_call_time(self, db_session_factory, report_config):
        reference = ReferenceDataManager(db_session_factory)
        incidents = IncidentManager(db_session_factory)
        hq = await reference.create_facility("HQ")
        annex = await reference.create_facility("Annex")
        intrusion = await reference.create_category("Intrusion")
        guard = await reference.create_personnel("Ada", "Reporter", role="Guard")

        service = ReportService(IncidentStore(db_session_factory), report_config)
        before = await service.run("facility_scorecard")
        assert [r.total_incidents for r in before] == [0, 0]

        created = await incidents.create_incident(
            facility_id=hq["id"],
            category_id=intrusion["id"],
            reported_by_id=guard["id"],
            title="Tailgating at gate 2",
            severity="Medium",
            incident_date=datetime(2024, 3, 1, 8, 0),
        )
        await incidents.update_status(
            created["id"], "Closed", resolved_by_id=guard["id"],
            resolution_date=datetime(2024, 3, 1, 11, 0),
        )

        after = await service.run("facility_scorecard")
        assert [(r.facility_id, r.total_incidents) for r in after] == [(hq["id"], 1), (annex["id"], 0)]
        assert after[0].avg_resolution_hours == 3.0
        assert after[0].closure_rate == 100.0
