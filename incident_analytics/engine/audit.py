"""Audited unit of work — every tracked mutation commits with its audit record.

Managers open a unit of work instead of a bare session. Each insert or
update of a tracked entity must be reported through ``record_insert`` or
``record_update``; the audit rows ride in the same transaction, and a commit
with an unreported mutation is refused.
"""

import json
from typing import Any, Optional

from sqlalchemy import inspect

from ..exceptions import DataIntegrityError
from ..models.action import Action
from ..models.audit_log import AuditLog
from ..models.category import Category
from ..models.comment import Comment
from ..models.facility import Facility
from ..models.incident import Incident
from ..models.personnel import Personnel
from ..reporting.records import utcnow
from ..utils.logging import get_logger

logger = get_logger("engine.audit")

TRACKED_MODELS = (Facility, Category, Personnel, Incident, Action, Comment)


def row_values(obj) -> dict[str, Any]:
    """Loaded column values of an ORM object keyed by attribute name."""
    state = inspect(obj)
    unloaded = state.unloaded
    return {
        attr.key: getattr(obj, attr.key)
        for attr in state.mapper.column_attrs
        if attr.key not in unloaded
    }


def _dumps(values: Optional[dict]) -> Optional[str]:
    if values is None:
        return None
    return json.dumps(values, default=str, sort_keys=True)


class AuditedUnitOfWork:
    """Async context manager owning one session and its audit trail."""

    def __init__(self, db_session_factory, actor: str = "system", ip_address: Optional[str] = None):
        self._session_factory = db_session_factory
        self.actor = actor
        self.ip_address = ip_address
        self.session = None
        self._session_cm = None
        self._recorded: set[int] = set()

    async def __aenter__(self) -> "AuditedUnitOfWork":
        self._session_cm = self._session_factory()
        self.session = await self._session_cm.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                self._check_all_recorded()
                await self.session.commit()
            else:
                await self.session.rollback()
        except Exception:
            await self.session.rollback()
            raise
        finally:
            await self._session_cm.__aexit__(exc_type, exc, tb)
        return False

    def capture(self, obj) -> dict[str, Any]:
        """Copy an object's column values before mutating it."""
        return row_values(obj)

    async def record_insert(self, obj) -> AuditLog:
        """Add a new tracked object and its INSERT audit record."""
        self.session.add(obj)
        await self.session.flush()
        # Load server defaults so the object stays readable after commit
        await self.session.refresh(obj)
        return self._append(obj, "INSERT", None, row_values(obj))

    def record_update(self, obj, before: dict[str, Any]) -> Optional[AuditLog]:
        """Audit the fields of ``obj`` that differ from ``before``."""
        after = row_values(obj)
        changed = [key for key in after if after[key] != before.get(key)]
        self._recorded.add(id(obj))
        if not changed:
            return None
        return self._append(
            obj,
            "UPDATE",
            {key: before.get(key) for key in changed},
            {key: after[key] for key in changed},
        )

    def _append(self, obj, operation: str, old: Optional[dict], new: Optional[dict]) -> AuditLog:
        self._recorded.add(id(obj))
        entry = AuditLog(
            table_name=obj.__tablename__,
            record_id=obj.id,
            operation=operation,
            old_value_json=_dumps(old),
            new_value_json=_dumps(new),
            changed_by=self.actor,
            change_date=utcnow(),
            ip_address=self.ip_address,
        )
        self.session.add(entry)
        logger.debug("audit_recorded", table=obj.__tablename__, record_id=obj.id, operation=operation)
        return entry

    def _check_all_recorded(self) -> None:
        pending = list(self.session.new) + list(self.session.dirty) + list(self.session.deleted)
        for obj in pending:
            if isinstance(obj, TRACKED_MODELS) and id(obj) not in self._recorded:
                raise DataIntegrityError(
                    f"Unaudited mutation of {obj.__tablename__} record {getattr(obj, 'id', None)}"
                )
        for obj in self.session.deleted:
            if isinstance(obj, TRACKED_MODELS):
                raise DataIntegrityError(f"{obj.__tablename__} records are never deleted")
