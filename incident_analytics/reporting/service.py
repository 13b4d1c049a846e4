"""Report Service — named report dispatch over freshly loaded snapshots."""

import asyncio
import time
from datetime import datetime
from typing import Callable, Mapping, Optional

from ..exceptions import ConfigurationError, ReportTimeoutError
from ..utils.logging import get_logger
from .engine import ReportingEngine
from .filters import ReportFilter
from .records import Snapshot
from .result import ReportResult
from .rows import (
    AnalystPerformanceRow,
    AnalystWorkloadRow,
    CategoryParetoRow,
    DailyFacilityMetricsRow,
    FacilityScorecardRow,
    MonthlyTrendRow,
    PeakTimeRow,
    ReportRow,
    ResolutionStatisticsRow,
    SeverityDistributionRow,
    TopCostIncidentRow,
)

logger = get_logger("reporting.service")

# report name -> options it accepts beyond filters
REPORT_OPTIONS: dict[str, frozenset[str]] = {
    "monthly_trend": frozenset(),
    "facility_scorecard": frozenset(),
    "category_pareto": frozenset(),
    "severity_distribution": frozenset(),
    "peak_times": frozenset(),
    "resolution_statistics": frozenset(),
    "top_cost_incidents": frozenset({"limit"}),
    "analyst_performance": frozenset({"min_resolved"}),
    "analyst_workload": frozenset(),
    "daily_facility_metrics": frozenset({"day"}),
}

REPORT_ROW_MODELS: dict[str, type[ReportRow]] = {
    "monthly_trend": MonthlyTrendRow,
    "facility_scorecard": FacilityScorecardRow,
    "category_pareto": CategoryParetoRow,
    "severity_distribution": SeverityDistributionRow,
    "peak_times": PeakTimeRow,
    "resolution_statistics": ResolutionStatisticsRow,
    "top_cost_incidents": TopCostIncidentRow,
    "analyst_performance": AnalystPerformanceRow,
    "analyst_workload": AnalystWorkloadRow,
    "daily_facility_metrics": DailyFacilityMetricsRow,
}


def validate_request(name: str, options: Mapping | None = None) -> None:
    """Reject unknown report names and options before touching the store."""
    if name not in REPORT_OPTIONS:
        raise ConfigurationError(f"Unknown report: {name!r}. Available: {sorted(REPORT_OPTIONS)}")
    unknown = set(options or {}) - REPORT_OPTIONS[name]
    if unknown:
        raise ConfigurationError(f"Report {name!r} does not accept options {sorted(unknown)}")


class ReportService:
    """Loads a snapshot from the store and evaluates reports against it.

    Each call reads a new snapshot, so results always reflect the store at
    call time. Report computation runs in the default executor to keep the
    event loop responsive; reports in one ``run_many`` call share a snapshot
    and run concurrently.
    """

    def __init__(self, store, config, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._store = store
        self._config = config
        self._clock = clock

    def engine_for(self, snapshot) -> ReportingEngine:
        return ReportingEngine.from_config(snapshot, self._config, clock=self._clock)

    async def run(self, name: str, filters=None, **options) -> list[ReportRow]:
        """Evaluate one report and return its rows."""
        results = await self.run_many({name: options}, filters=filters)
        return results[name]

    async def run_many(self, reports, filters=None) -> dict[str, list[ReportRow]]:
        """Evaluate several reports concurrently against one snapshot.

        ``reports`` is either an iterable of report names or a mapping of
        report name to its options.
        """
        requests = dict(reports) if isinstance(reports, Mapping) else {name: {} for name in reports}
        for name, options in requests.items():
            validate_request(name, options)
        flt = ReportingEngine.coerce_filter(filters)
        # Option values and engine settings are checked against an empty
        # snapshot, so a bad request never costs a store read
        self._prepare(Snapshot(), flt, requests)

        snapshot = await self._store.load_snapshot(flt)
        results = self._prepare(snapshot, flt, requests)
        rows = await asyncio.gather(*(self._evaluate(result) for result in results.values()))
        return dict(zip(results, rows))

    def _prepare(self, snapshot, flt: ReportFilter, requests: dict) -> dict[str, ReportResult]:
        engine = self.engine_for(snapshot)
        return {
            name: getattr(engine, name)(flt, **(options or {}))
            for name, options in requests.items()
        }

    async def _evaluate(self, result: ReportResult) -> list[ReportRow]:
        loop = asyncio.get_running_loop()
        started = time.monotonic()
        try:
            rows = await loop.run_in_executor(None, result.rows)
        except ReportTimeoutError:
            logger.error("report_timed_out", report=result.name,
                         deadline_seconds=self._config.report_deadline_seconds)
            raise
        logger.info(
            "report_completed",
            report=result.name,
            rows=len(rows),
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return rows
