"""Incident store — loads read-only snapshots through an async SQLAlchemy session."""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import ConfigurationError, DataIntegrityError, DataSourceError
from ..models.category import Category
from ..models.facility import Facility
from ..models.incident import Incident
from ..models.personnel import Personnel
from ..utils.logging import get_logger
from .filters import ReportFilter
from .records import (
    CategoryRecord,
    FacilityRecord,
    IncidentRecord,
    PersonnelRecord,
    Snapshot,
)

logger = get_logger("reporting.store")


class IncidentStore:
    """Reads facilities, categories, personnel and incidents into a ``Snapshot``.

    Reference tables are always read in full so every join the engine
    performs can be checked; only the incident scan is narrowed by the
    filter. All reads happen inside one session, so on databases with
    snapshot isolation the result is a consistent view.
    """

    def __init__(self, db_session_factory) -> None:
        self._session_factory = db_session_factory

    async def load_snapshot(self, filters: ReportFilter | None = None) -> Snapshot:
        flt = filters or ReportFilter()
        try:
            async with self._session_factory() as session:
                facilities = (await session.execute(select(Facility))).scalars().all()
                categories = (await session.execute(select(Category))).scalars().all()
                personnel = (await session.execute(select(Personnel))).scalars().all()
                query = self._apply_filters(select(Incident), flt).order_by(Incident.id)
                incidents = (await session.execute(query)).scalars().all()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("snapshot_load_failed", error=str(exc))
            raise DataSourceError(f"Incident store unavailable: {exc}") from exc

        try:
            incident_records = [self._incident_record(i) for i in incidents]
        except ConfigurationError as exc:
            raise DataIntegrityError(f"Stored incident has an invalid value: {exc}") from exc

        snapshot = Snapshot.build(
            facilities=[FacilityRecord(id=f.id, name=f.name, is_active=bool(f.is_active)) for f in facilities],
            categories=[
                CategoryRecord(id=c.id, name=c.name, parent_id=c.parent_id, is_active=bool(c.is_active))
                for c in categories
            ],
            personnel=[
                PersonnelRecord(
                    id=p.id,
                    first_name=p.first_name,
                    last_name=p.last_name,
                    role=p.role,
                    is_active=bool(p.is_active),
                )
                for p in personnel
            ],
            incidents=incident_records,
        )
        logger.info(
            "snapshot_loaded",
            facilities=len(snapshot.facilities),
            categories=len(snapshot.categories),
            personnel=len(snapshot.personnel),
            incidents=len(snapshot.incidents),
        )
        return snapshot

    @staticmethod
    def _apply_filters(query, flt: ReportFilter):
        """Push the filter down to SQL; the engine re-applies it in memory."""
        if flt.start is not None:
            query = query.where(Incident.incident_date >= flt.start)
        if flt.end is not None:
            query = query.where(Incident.incident_date < flt.end)
        if flt.facility_ids is not None:
            query = query.where(Incident.facility_id.in_(sorted(flt.facility_ids)))
        if flt.category_ids is not None:
            query = query.where(Incident.category_id.in_(sorted(flt.category_ids)))
        return query

    @staticmethod
    def _incident_record(incident: Incident) -> IncidentRecord:
        return IncidentRecord(
            id=incident.id,
            facility_id=incident.facility_id,
            category_id=incident.category_id,
            incident_date=incident.incident_date,
            severity=incident.severity,
            status=incident.status,
            resolution_date=incident.resolution_date,
            reported_by_id=incident.reported_by_id,
            assigned_to_id=incident.assigned_to_id,
            resolved_by_id=incident.resolved_by_id,
            actual_cost=incident.actual_cost,
            estimated_cost=incident.estimated_cost,
            title=incident.title,
        )
