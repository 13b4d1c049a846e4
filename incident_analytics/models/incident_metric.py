"""Incident metric model for persisted daily per-facility rollups."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class IncidentMetric(Base):
    __tablename__ = "incident_metrics"
    __table_args__ = (
        Index("ix_incident_metrics_date_facility", "metric_date", "facility_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric_date: Mapped[date] = mapped_column(Date, nullable=False)
    facility_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("facilities.id"), nullable=False
    )
    total_incidents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    open_incidents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    closed_incidents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    avg_resolution_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    high_severity_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    critical_severity_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
