"""Report row contracts — Pydantic models defining each report's column schema."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ReportRow(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Trends ──
class MonthlyTrendRow(ReportRow):
    year: int
    month: int
    incident_count: int
    avg_resolution_hours: Optional[float] = None
    critical_count: int = 0
    high_count: int = 0
    mom_change: Optional[int] = None
    mom_change_percent: Optional[float] = None
    prior_year_same_month: Optional[int] = None
    yoy_change_percent: Optional[float] = None

class SeverityDistributionRow(ReportRow):
    year: int
    month: int
    severity: str
    count: int
    percent_of_month: Optional[float] = None


class PeakTimeRow(ReportRow):
    hour_of_day: int
    day_of_week: str
    incident_count: int
    avg_resolution_hours: Optional[float] = None


# ── Facilities & categories ──
class FacilityScorecardRow(ReportRow):
    facility_id: int
    facility_name: str
    total_incidents: int
    closed_incidents: int
    closure_rate: Optional[float] = None
    avg_resolution_hours: Optional[float] = None
    critical_incidents: int = 0
    total_cost: Optional[Decimal] = None
    incident_rank: int
    performance_rank: int

class CategoryParetoRow(ReportRow):
    category_id: int
    category_name: str
    incident_count: int
    percent_of_total: Optional[float] = None
    running_total: int
    cumulative_percent: Optional[float] = None
    avg_resolution_hours: Optional[float] = None
    total_cost: Decimal = Decimal("0")

class ResolutionStatisticsRow(ReportRow):
    category_name: str
    severity: str
    incident_count: int
    min_resolution_hours: float
    avg_resolution_hours: float
    max_resolution_hours: float
    stddev_resolution_hours: Optional[float] = None


# ── Cost ──
class TopCostIncidentRow(ReportRow):
    incident_id: int
    facility_name: str
    category_name: str
    severity: str
    incident_date: datetime
    title: str
    actual_cost: Decimal
    hours_to_resolve: Optional[float] = None
    cost_per_hour: Optional[float] = None


# ── Personnel ──
class AnalystPerformanceRow(ReportRow):
    personnel_id: int
    personnel_name: str
    role: Optional[str] = None
    incidents_resolved: int
    avg_resolution_hours: Optional[float] = None
    resolved_within_24h: int
    percent_resolved_within_24h: Optional[float] = None

class AnalystWorkloadRow(ReportRow):
    personnel_id: int
    personnel_name: str
    role: Optional[str] = None
    active_incidents: int
    total_assigned: int


# ── Rollups ──
class DailyFacilityMetricsRow(ReportRow):
    metric_date: date
    facility_id: int
    total_incidents: int
    open_incidents: int
    closed_incidents: int
    avg_resolution_hours: Optional[float] = None
    high_severity_count: int = 0
    critical_severity_count: int = 0
