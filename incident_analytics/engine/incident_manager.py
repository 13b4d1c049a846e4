"""Incident Manager — incident lifecycle, assignment, costs and discussion."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func as sa_func, select

from ..exceptions import ConfigurationError, DataIntegrityError
from ..models.action import Action
from ..models.category import Category
from ..models.comment import Comment
from ..models.facility import Facility
from ..models.incident import Incident
from ..models.personnel import Personnel
from ..reporting.records import Severity, Status, to_naive_utc, utcnow
from ..utils.logging import get_logger
from .audit import AuditedUnitOfWork

logger = get_logger("engine.incident_manager")

VALID_TRANSITIONS = {
    Status.open: [Status.in_progress, Status.investigating, Status.closed],
    Status.in_progress: [Status.investigating, Status.blocked, Status.contained,
                         Status.mitigated, Status.resolved, Status.closed],
    Status.investigating: [Status.in_progress, Status.blocked, Status.contained,
                           Status.mitigated, Status.resolved, Status.closed],
    Status.blocked: [Status.in_progress, Status.investigating, Status.closed],
    Status.contained: [Status.mitigated, Status.resolved, Status.closed],
    Status.mitigated: [Status.resolved, Status.closed],
    Status.resolved: [Status.closed, Status.open],
    Status.closed: [Status.open],
}


def _to_decimal(value, name: str) -> Optional[Decimal]:
    if value is None:
        return None
    amount = Decimal(str(value))
    if amount < 0:
        raise DataIntegrityError(f"{name} must be >= 0, got {amount}")
    return amount


class IncidentManager:
    """Manages the full incident lifecycle.

    Every mutation goes through an ``AuditedUnitOfWork`` so the change and
    its audit record commit together.
    """

    def __init__(self, db_session_factory=None):
        self._db_session_factory = db_session_factory

    def set_db_session_factory(self, factory) -> None:
        self._db_session_factory = factory

    def _unit_of_work(self, actor: str) -> AuditedUnitOfWork:
        return AuditedUnitOfWork(self._db_session_factory, actor=actor)

    @staticmethod
    async def _require(session, model, record_id: Optional[int], label: str):
        if record_id is None:
            raise DataIntegrityError(f"{label} id is required")
        obj = await session.get(model, record_id)
        if obj is None:
            raise DataIntegrityError(f"{label} {record_id} does not exist")
        return obj

    @classmethod
    async def _require_optional(cls, session, model, record_id: Optional[int], label: str):
        if record_id is None:
            return None
        return await cls._require(session, model, record_id, label)

    @staticmethod
    async def _load_incident(session, incident_id: int) -> Incident:
        incident = await session.get(Incident, incident_id)
        if incident is None:
            raise DataIntegrityError(f"Incident {incident_id} does not exist")
        return incident

    async def create_incident(
        self,
        facility_id: int,
        category_id: int,
        reported_by_id: int,
        title: str,
        severity: str,
        incident_date: datetime | None = None,
        description: str | None = None,
        location: str | None = None,
        estimated_cost=None,
        assigned_to_id: int | None = None,
        actor: str = "system",
    ) -> dict:
        """Create a new incident in the Open state."""
        severity = Severity.parse(severity)
        estimated = _to_decimal(estimated_cost, "estimated_cost")

        async with self._unit_of_work(actor) as uow:
            session = uow.session
            await self._require(session, Facility, facility_id, "Facility")
            await self._require(session, Category, category_id, "Category")
            await self._require(session, Personnel, reported_by_id, "Personnel")
            await self._require_optional(session, Personnel, assigned_to_id, "Personnel")

            now = utcnow()
            incident = Incident(
                facility_id=facility_id,
                category_id=category_id,
                reported_by_id=reported_by_id,
                assigned_to_id=assigned_to_id,
                incident_date=to_naive_utc(incident_date) or now,
                severity=severity.value,
                status=Status.open.value,
                title=title,
                description=description,
                location=location,
                estimated_cost=estimated,
                created_at=now,
            )
            await uow.record_insert(incident)
            result = self._to_dict(incident)

        logger.info("incident_created", id=result["id"], severity=severity.value, title=title)
        return result

    async def update_status(
        self,
        incident_id: int,
        new_status: str,
        actor: str = "system",
        resolved_by_id: int | None = None,
        resolution_notes: str | None = None,
        resolution_date: datetime | None = None,
    ) -> dict:
        """Update incident status with transition validation.

        Entering Resolved or Closed stamps the resolution timestamp and the
        resolver; reopening clears both.
        """
        target = Status.parse(new_status)

        async with self._unit_of_work(actor) as uow:
            incident = await self._load_incident(uow.session, incident_id)
            current = Status.parse(incident.status)
            allowed = VALID_TRANSITIONS.get(current, [])
            if target not in allowed:
                raise ConfigurationError(
                    f"Cannot transition from {current.value} to {target.value}. "
                    f"Allowed: {[s.value for s in allowed]}"
                )

            before = uow.capture(incident)
            now = utcnow()
            incident.status = target.value
            incident.modified_at = now

            if target.is_terminal and not current.is_terminal:
                resolved_at = to_naive_utc(resolution_date) or now
                if resolved_at < incident.incident_date:
                    raise DataIntegrityError(
                        f"Resolution date {resolved_at.isoformat()} precedes incident date "
                        f"{incident.incident_date.isoformat()}"
                    )
                await self._require_optional(uow.session, Personnel, resolved_by_id, "Personnel")
                incident.resolution_date = resolved_at
                incident.resolved_by_id = resolved_by_id
            elif target is Status.open:
                incident.resolution_date = None
                incident.resolved_by_id = None
            if resolution_notes:
                incident.resolution_notes = resolution_notes

            uow.record_update(incident, before)
            result = self._to_dict(incident)

        logger.info("incident_status_updated", id=incident_id, old=current.value, new=target.value)
        return result

    async def assign_incident(self, incident_id: int, personnel_id: int, actor: str = "system") -> dict:
        """Assign an incident to an analyst."""
        async with self._unit_of_work(actor) as uow:
            incident = await self._load_incident(uow.session, incident_id)
            await self._require(uow.session, Personnel, personnel_id, "Personnel")

            before = uow.capture(incident)
            incident.assigned_to_id = personnel_id
            incident.modified_at = utcnow()
            uow.record_update(incident, before)
            result = self._to_dict(incident)

        logger.info("incident_assigned", id=incident_id, assigned_to_id=personnel_id)
        return result

    async def record_cost(
        self,
        incident_id: int,
        actual_cost=None,
        estimated_cost=None,
        actor: str = "system",
    ) -> dict:
        """Set the actual and/or estimated cost of an incident."""
        actual = _to_decimal(actual_cost, "actual_cost")
        estimated = _to_decimal(estimated_cost, "estimated_cost")
        if actual is None and estimated is None:
            raise ConfigurationError("record_cost needs actual_cost or estimated_cost")

        async with self._unit_of_work(actor) as uow:
            incident = await self._load_incident(uow.session, incident_id)
            before = uow.capture(incident)
            if actual is not None:
                incident.actual_cost = actual
            if estimated is not None:
                incident.estimated_cost = estimated
            incident.modified_at = utcnow()
            uow.record_update(incident, before)
            return self._to_dict(incident)

    async def add_action(
        self,
        incident_id: int,
        performed_by_id: int,
        description: str,
        action_type: str | None = None,
        status: str | None = None,
        action_date: datetime | None = None,
        actor: str = "system",
    ) -> dict:
        """Append a remediation step to an incident's action log."""
        async with self._unit_of_work(actor) as uow:
            await self._load_incident(uow.session, incident_id)
            await self._require(uow.session, Personnel, performed_by_id, "Personnel")

            action = Action(
                incident_id=incident_id,
                performed_by_id=performed_by_id,
                action_type=action_type,
                description=description,
                status=status,
                action_date=to_naive_utc(action_date) or utcnow(),
            )
            await uow.record_insert(action)
            result = {
                "id": action.id,
                "incident_id": action.incident_id,
                "performed_by_id": action.performed_by_id,
                "action_type": action.action_type,
                "description": action.description,
                "status": action.status,
                "action_date": action.action_date.isoformat(),
            }

        logger.info("incident_action_added", incident_id=incident_id, action_id=result["id"])
        return result

    async def add_comment(
        self,
        incident_id: int,
        comment_by_id: int,
        text: str,
        is_internal: bool = False,
        actor: str = "system",
    ) -> dict:
        """Append a comment to an incident."""
        async with self._unit_of_work(actor) as uow:
            await self._load_incident(uow.session, incident_id)
            await self._require(uow.session, Personnel, comment_by_id, "Personnel")

            comment = Comment(
                incident_id=incident_id,
                comment_by_id=comment_by_id,
                text=text,
                is_internal=is_internal,
                comment_date=utcnow(),
            )
            await uow.record_insert(comment)
            return {
                "id": comment.id,
                "incident_id": comment.incident_id,
                "comment_by_id": comment.comment_by_id,
                "text": comment.text,
                "is_internal": comment.is_internal,
                "comment_date": comment.comment_date.isoformat(),
            }

    async def list_incidents(
        self,
        status: str | None = None,
        severity: str | None = None,
        facility_id: int | None = None,
        assigned_to_id: int | None = None,
        limit: int = 50,
    ) -> list[dict]:
        """List incidents with optional filters, newest first."""
        if limit < 0:
            raise ConfigurationError("limit must be >= 0")
        async with self._db_session_factory() as session:
            query = select(Incident).order_by(Incident.incident_date.desc(), Incident.id.desc()).limit(limit)
            if status:
                query = query.where(Incident.status == Status.parse(status).value)
            if severity:
                query = query.where(Incident.severity == Severity.parse(severity).value)
            if facility_id is not None:
                query = query.where(Incident.facility_id == facility_id)
            if assigned_to_id is not None:
                query = query.where(Incident.assigned_to_id == assigned_to_id)
            result = await session.execute(query)
            return [self._to_dict(i) for i in result.scalars().all()]

    async def get_incident(self, incident_id: int) -> Optional[dict]:
        """Get a single incident by ID."""
        async with self._db_session_factory() as session:
            incident = await session.get(Incident, incident_id)
            return self._to_dict(incident) if incident else None

    async def get_stats(self) -> dict:
        """Get incident counts by status and severity."""
        async with self._db_session_factory() as session:
            total = (await session.execute(select(sa_func.count(Incident.id)))).scalar() or 0
            by_status = {s.value: 0 for s in Status}
            for status, count in (await session.execute(
                select(Incident.status, sa_func.count(Incident.id)).group_by(Incident.status)
            )).all():
                by_status[status] = count
            by_severity = {s.value: 0 for s in Severity}
            for severity, count in (await session.execute(
                select(Incident.severity, sa_func.count(Incident.id)).group_by(Incident.severity)
            )).all():
                by_severity[severity] = count
            return {"total": total, "by_status": by_status, "by_severity": by_severity}

    @staticmethod
    def _to_dict(incident) -> dict:
        return {
            "id": incident.id,
            "facility_id": incident.facility_id,
            "category_id": incident.category_id,
            "reported_by_id": incident.reported_by_id,
            "assigned_to_id": incident.assigned_to_id,
            "resolved_by_id": incident.resolved_by_id,
            "title": incident.title,
            "description": incident.description,
            "location": incident.location,
            "severity": incident.severity,
            "status": incident.status,
            "incident_date": incident.incident_date.isoformat() if incident.incident_date else None,
            "resolution_date": incident.resolution_date.isoformat() if incident.resolution_date else None,
            "resolution_notes": incident.resolution_notes,
            "estimated_cost": incident.estimated_cost,
            "actual_cost": incident.actual_cost,
            "modified_at": incident.modified_at.isoformat() if incident.modified_at else None,
        }
