"""Audit log model — immutable field-level change history of tracked tables."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, event, func
from sqlalchemy.orm import Mapped, mapped_column

from ..exceptions import DataIntegrityError
from .base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    table_name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    record_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(10), nullable=False)  # INSERT, UPDATE, DELETE
    old_value_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    change_date: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False, index=True
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target) -> None:
    raise DataIntegrityError(f"audit log entry {target.id} is immutable")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target) -> None:
    raise DataIntegrityError(f"audit log entry {target.id} cannot be deleted")
