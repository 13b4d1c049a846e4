"""Metrics Rollup — persists one day's per-facility incident metrics."""

from datetime import date, datetime, timedelta

from sqlalchemy import delete

from ..exceptions import ConfigurationError
from ..models.incident_metric import IncidentMetric
from ..reporting.engine import ReportingEngine
from ..reporting.filters import ReportFilter
from ..reporting.records import utcnow
from ..utils.logging import get_logger

logger = get_logger("engine.metrics_rollup")


class MetricsRollup:
    """Recomputes ``incident_metrics`` rows for a single day.

    Rerunning a day replaces its rows, so the rollup can be scheduled
    repeatedly without accumulating duplicates.
    """

    def __init__(self, db_session_factory, store, config, clock=None) -> None:
        self._session_factory = db_session_factory
        self._store = store
        self._config = config
        self._clock = clock

    async def rollup(self, day: date) -> list[dict]:
        if isinstance(day, datetime) or not isinstance(day, date):
            raise ConfigurationError(f"day must be a date, got {day!r}")

        flt = ReportFilter(start=day, end=day + timedelta(days=1))
        snapshot = await self._store.load_snapshot(flt)
        engine = ReportingEngine.from_config(snapshot, self._config, clock=self._clock)
        rows = engine.daily_facility_metrics(flt, day=day).rows()

        created_at = utcnow()
        async with self._session_factory() as session:
            await session.execute(delete(IncidentMetric).where(IncidentMetric.metric_date == day))
            for row in rows:
                session.add(IncidentMetric(**row.model_dump(), created_at=created_at))
            await session.commit()

        logger.info("metrics_rolled_up", day=day.isoformat(), facilities=len(rows))
        return [row.model_dump() for row in rows]
