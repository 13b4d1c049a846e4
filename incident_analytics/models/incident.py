"""Incident model: one detected security incident and its resolution."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Incident(Base):
    __tablename__ = "incidents"
    __table_args__ = (
        Index("ix_incidents_facility_date_status", "facility_id", "incident_date", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    facility_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("facilities.id"), nullable=False, index=True
    )
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id"), nullable=False, index=True
    )
    reported_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("personnel.id"), nullable=False
    )
    assigned_to_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("personnel.id"), nullable=True
    )
    resolved_by_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("personnel.id"), nullable=True
    )
    incident_date: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False, index=True
    )
    resolution_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    severity: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # Low, Medium, High, Critical
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Open", index=True
    )  # Open, In Progress, Investigating, Blocked, Contained, Mitigated, Resolved, Closed
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    actual_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    modified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, onupdate=func.now(), nullable=True
    )
