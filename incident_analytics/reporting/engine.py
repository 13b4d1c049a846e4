"""Reporting Engine — deterministic aggregate reports over an incident snapshot.

Every operation validates its arguments immediately and returns a
``ReportResult`` that computes its rows only when iterated. The engine never
writes and keeps no state between calls, so one engine instance can serve
concurrent report evaluations against the same snapshot.

Conventions shared by all reports:
    * resolution hours are fractional hours from detection to resolution;
    * averages and percentages are rounded to two decimals;
    * a zero denominator yields None, never 0 and never an exception;
    * incidents whose resolution precedes detection never enter a
      resolution-time aggregate.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional, Union

import numpy as np

from ..exceptions import ConfigurationError
from ..utils.logging import get_logger
from .filters import ReportFilter
from .records import IncidentRecord, Severity, Snapshot, Status, to_naive_utc
from .result import Deadline, ReportResult
from .rows import (
    AnalystPerformanceRow,
    AnalystWorkloadRow,
    CategoryParetoRow,
    DailyFacilityMetricsRow,
    FacilityScorecardRow,
    MonthlyTrendRow,
    PeakTimeRow,
    ResolutionStatisticsRow,
    SeverityDistributionRow,
    TopCostIncidentRow,
)
from .timeseries import (
    MonthKey,
    change_percent,
    dense_rank,
    gap_fill,
    lag,
    last_month_before,
    mean,
    percent,
    running_total,
)

logger = get_logger("reporting.engine")

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

OPEN_RESOLUTION_POLICIES = ("exclude", "provisional")

FilterArg = Union[ReportFilter, Mapping, None]


@dataclass
class _MonthBucket:
    count: int = 0
    critical: int = 0
    high: int = 0
    hours: list[float] = field(default_factory=list)


@dataclass
class _GroupStats:
    total: int = 0
    closed: int = 0
    critical: int = 0
    high: int = 0
    open: int = 0
    hours: list[float] = field(default_factory=list)
    cost: Decimal = Decimal("0")


def _validate_count(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")
    return value


class ReportingEngine:
    """Computes the incident reports over one immutable snapshot."""

    def __init__(
        self,
        snapshot: Snapshot,
        *,
        open_resolution_policy: str = "exclude",
        closed_statuses: Iterable = (Status.closed,),
        resolved_within_hours: float = 24.0,
        top_cost_limit: int = 20,
        analyst_min_resolved: int = 5,
        deadline_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        policy = str(open_resolution_policy).lower()
        if policy not in OPEN_RESOLUTION_POLICIES:
            raise ConfigurationError(
                f"open_resolution_policy must be one of {OPEN_RESOLUTION_POLICIES}, got {open_resolution_policy!r}"
            )
        if resolved_within_hours < 0:
            raise ConfigurationError("resolved_within_hours must be >= 0")
        if deadline_seconds is not None and deadline_seconds < 0:
            raise ConfigurationError("deadline_seconds must be >= 0")

        self._snapshot = snapshot
        self._policy = policy
        self._closed_statuses = frozenset(Status.parse(s) for s in closed_statuses)
        if not self._closed_statuses:
            raise ConfigurationError("closed_statuses must not be empty")
        self._within_hours = float(resolved_within_hours)
        self._top_cost_limit = _validate_count(top_cost_limit, "top_cost_limit")
        self._analyst_min_resolved = _validate_count(analyst_min_resolved, "analyst_min_resolved")
        self._deadline_seconds = deadline_seconds or None
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(cls, snapshot: Snapshot, config, clock=None) -> "ReportingEngine":
        return cls(
            snapshot,
            open_resolution_policy=config.report_open_resolution_policy,
            closed_statuses=config.report_closed_statuses,
            resolved_within_hours=config.report_resolved_within_hours,
            top_cost_limit=config.report_top_cost_limit,
            analyst_min_resolved=config.report_analyst_min_resolved,
            deadline_seconds=config.report_deadline_seconds,
            clock=clock,
        )

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def coerce_filter(filters: FilterArg) -> ReportFilter:
        if filters is None:
            return ReportFilter()
        if isinstance(filters, ReportFilter):
            return filters
        if isinstance(filters, Mapping):
            return ReportFilter.from_mapping(filters)
        raise ConfigurationError(f"Unsupported filter type: {type(filters).__name__}")

    def _now(self) -> datetime:
        return to_naive_utc(self._clock())

    def _select(self, flt: ReportFilter, deadline: Deadline) -> list[IncidentRecord]:
        return [i for i in deadline.iterate(self._snapshot.incidents) if flt.matches(i)]

    def _is_closed(self, incident: IncidentRecord) -> bool:
        return incident.status in self._closed_statuses

    def _closed_hours(self, incident: IncidentRecord) -> Optional[float]:
        """Resolution hours of a closed incident, None for anything else."""
        if not self._is_closed(incident):
            return None
        return incident.resolution_hours

    def _trend_hours(self, incident: IncidentRecord, now: datetime) -> Optional[float]:
        if incident.resolution_date is not None:
            return incident.resolution_hours
        if self._policy == "provisional":
            return incident.elapsed_hours(now)
        return None

    def _result(self, name, row_model, compute) -> ReportResult:
        def run(deadline: Deadline) -> list:
            rows = compute(deadline)
            logger.debug("report_computed", report=name, rows=len(rows))
            return rows

        return ReportResult(name, row_model, run, self._deadline_seconds)

    # ── Monthly trend ────────────────────────────────────────────────────

    def monthly_trend(self, filters: FilterArg = None) -> ReportResult[MonthlyTrendRow]:
        """Per-month counts with month-over-month and year-over-year deltas.

        Months without incidents inside the covered span are materialized as
        zero-count rows before the lags are folded, so the year-over-year
        comparison always looks exactly 12 calendar months back.
        """
        flt = self.coerce_filter(filters)

        def compute(deadline: Deadline) -> list[MonthlyTrendRow]:
            now = self._now()
            buckets: dict[MonthKey, _MonthBucket] = {}
            for incident in self._select(flt, deadline):
                bucket = buckets.setdefault(MonthKey.of(incident.incident_date), _MonthBucket())
                bucket.count += 1
                if incident.severity is Severity.critical:
                    bucket.critical += 1
                elif incident.severity is Severity.high:
                    bucket.high += 1
                hours = self._trend_hours(incident, now)
                if hours is not None:
                    bucket.hours.append(hours)

            if flt.start is not None:
                first = MonthKey.of(flt.start)
            elif buckets:
                first = min(buckets)
            else:
                return []
            if flt.end is not None:
                last = last_month_before(flt.end)
            elif buckets:
                last = max(buckets)
            else:
                return []

            series = gap_fill(buckets, first, last, _MonthBucket)
            counts = [bucket.count for _, bucket in series]
            previous = lag(counts, 1)
            prior_year = lag(counts, 12)

            rows = []
            for (key, bucket), prev, year_ago in zip(series, previous, prior_year):
                deadline.check()
                rows.append(MonthlyTrendRow(
                    year=key.year,
                    month=key.month,
                    incident_count=bucket.count,
                    avg_resolution_hours=mean(bucket.hours),
                    critical_count=bucket.critical,
                    high_count=bucket.high,
                    mom_change=None if prev is None else bucket.count - prev,
                    mom_change_percent=change_percent(bucket.count, prev),
                    prior_year_same_month=year_ago,
                    yoy_change_percent=change_percent(bucket.count, year_ago),
                ))
            rows.reverse()
            return rows

        return self._result("monthly_trend", MonthlyTrendRow, compute)

    # ── Facility scorecard ───────────────────────────────────────────────

    def facility_scorecard(self, filters: FilterArg = None) -> ReportResult[FacilityScorecardRow]:
        """Per active facility totals, closure rate, cost and two dense ranks."""
        flt = self.coerce_filter(filters)

        def compute(deadline: Deadline) -> list[FacilityScorecardRow]:
            facilities = [
                f for f in self._snapshot.facilities.values()
                if f.is_active and flt.allows_facility(f.id)
            ]
            stats = {f.id: _GroupStats() for f in facilities}
            for incident in self._select(flt, deadline):
                group = stats.get(incident.facility_id)
                if group is None:
                    continue
                group.total += 1
                if incident.actual_cost is not None:
                    group.cost += incident.actual_cost
                if incident.severity is Severity.critical:
                    group.critical += 1
                if self._is_closed(incident):
                    group.closed += 1
                    hours = incident.resolution_hours
                    if hours is not None:
                        group.hours.append(hours)

            averages = [mean(stats[f.id].hours) for f in facilities]
            incident_ranks = dense_rank([stats[f.id].total for f in facilities], descending=True)
            performance_ranks = dense_rank(averages)

            rows = []
            for facility, avg, incident_rank, performance_rank in zip(
                facilities, averages, incident_ranks, performance_ranks
            ):
                group = stats[facility.id]
                rows.append(FacilityScorecardRow(
                    facility_id=facility.id,
                    facility_name=facility.name,
                    total_incidents=group.total,
                    closed_incidents=group.closed,
                    closure_rate=percent(group.closed, group.total),
                    avg_resolution_hours=avg,
                    critical_incidents=group.critical,
                    total_cost=group.cost if group.total else None,
                    incident_rank=incident_rank,
                    performance_rank=performance_rank,
                ))
            rows.sort(key=lambda r: (-r.total_incidents, r.facility_name, r.facility_id))
            return rows

        return self._result("facility_scorecard", FacilityScorecardRow, compute)

    # ── Category Pareto ──────────────────────────────────────────────────

    def category_pareto(self, filters: FilterArg = None) -> ReportResult[CategoryParetoRow]:
        """Categories by descending frequency with running cumulative share."""
        flt = self.coerce_filter(filters)

        def compute(deadline: Deadline) -> list[CategoryParetoRow]:
            stats: dict[int, _GroupStats] = defaultdict(_GroupStats)
            for incident in self._select(flt, deadline):
                category = self._snapshot.categories[incident.category_id]
                if not category.is_active:
                    continue
                group = stats[category.id]
                group.total += 1
                if incident.actual_cost is not None:
                    group.cost += incident.actual_cost
                hours = self._closed_hours(incident)
                if hours is not None:
                    group.hours.append(hours)

            ordered = sorted(
                stats.items(),
                key=lambda item: (-item[1].total, self._snapshot.categories[item[0]].name, item[0]),
            )
            counts = [group.total for _, group in ordered]
            grand_total = sum(counts)
            cumulative = running_total(counts)

            return [
                CategoryParetoRow(
                    category_id=category_id,
                    category_name=self._snapshot.categories[category_id].name,
                    incident_count=group.total,
                    percent_of_total=percent(group.total, grand_total),
                    running_total=running,
                    cumulative_percent=percent(running, grand_total),
                    avg_resolution_hours=mean(group.hours),
                    total_cost=group.cost,
                )
                for (category_id, group), running in zip(ordered, cumulative)
            ]

        return self._result("category_pareto", CategoryParetoRow, compute)

    # ── Severity distribution ────────────────────────────────────────────

    def severity_distribution(self, filters: FilterArg = None) -> ReportResult[SeverityDistributionRow]:
        """Per month and severity counts as a share of that month's total."""
        flt = self.coerce_filter(filters)

        def compute(deadline: Deadline) -> list[SeverityDistributionRow]:
            counts: dict[tuple[MonthKey, Severity], int] = defaultdict(int)
            month_totals: dict[MonthKey, int] = defaultdict(int)
            for incident in self._select(flt, deadline):
                key = MonthKey.of(incident.incident_date)
                counts[(key, incident.severity)] += 1
                month_totals[key] += 1

            ordered = sorted(counts, key=lambda k: (-k[0].ordinal, -k[1].urgency))
            return [
                SeverityDistributionRow(
                    year=key.year,
                    month=key.month,
                    severity=severity.value,
                    count=counts[(key, severity)],
                    percent_of_month=percent(counts[(key, severity)], month_totals[key]),
                )
                for key, severity in ordered
            ]

        return self._result("severity_distribution", SeverityDistributionRow, compute)

    # ── Peak times ───────────────────────────────────────────────────────

    def peak_times(self, filters: FilterArg = None) -> ReportResult[PeakTimeRow]:
        """Hour-of-day by day-of-week histogram, busiest buckets first."""
        flt = self.coerce_filter(filters)

        def compute(deadline: Deadline) -> list[PeakTimeRow]:
            stats: dict[tuple[int, int], _GroupStats] = defaultdict(_GroupStats)
            for incident in self._select(flt, deadline):
                when = incident.incident_date
                group = stats[(when.weekday(), when.hour)]
                group.total += 1
                hours = self._closed_hours(incident)
                if hours is not None:
                    group.hours.append(hours)

            ordered = sorted(stats.items(), key=lambda item: (-item[1].total, item[0][0], item[0][1]))
            return [
                PeakTimeRow(
                    hour_of_day=hour,
                    day_of_week=WEEKDAYS[weekday],
                    incident_count=group.total,
                    avg_resolution_hours=mean(group.hours),
                )
                for (weekday, hour), group in ordered
            ]

        return self._result("peak_times", PeakTimeRow, compute)

    # ── Resolution statistics ────────────────────────────────────────────

    def resolution_statistics(self, filters: FilterArg = None) -> ReportResult[ResolutionStatisticsRow]:
        """Distribution of resolution hours per category and severity.

        Only closed incidents with a valid resolution timestamp contribute;
        a pairing without any such incident produces no row. The standard
        deviation is the sample deviation and is None for a single
        observation.
        """
        flt = self.coerce_filter(filters)

        def compute(deadline: Deadline) -> list[ResolutionStatisticsRow]:
            groups: dict[tuple[int, Severity], list[float]] = defaultdict(list)
            for incident in self._select(flt, deadline):
                hours = self._closed_hours(incident)
                if hours is not None:
                    groups[(incident.category_id, incident.severity)].append(hours)

            rows = []
            for (category_id, severity), hours in deadline.iterate(groups.items()):
                values = np.asarray(hours, dtype=float)
                stddev = round(float(values.std(ddof=1)), 2) if values.size > 1 else None
                rows.append(ResolutionStatisticsRow(
                    category_name=self._snapshot.categories[category_id].name,
                    severity=severity.value,
                    incident_count=int(values.size),
                    min_resolution_hours=round(float(values.min()), 2),
                    avg_resolution_hours=round(float(values.mean()), 2),
                    max_resolution_hours=round(float(values.max()), 2),
                    stddev_resolution_hours=stddev,
                ))
            rows.sort(key=lambda r: (
                -r.avg_resolution_hours, r.category_name, -Severity.parse(r.severity).urgency,
            ))
            return rows

        return self._result("resolution_statistics", ResolutionStatisticsRow, compute)

    # ── Top-cost incidents ───────────────────────────────────────────────

    def top_cost_incidents(
        self, filters: FilterArg = None, limit: Optional[int] = None
    ) -> ReportResult[TopCostIncidentRow]:
        """The ``limit`` incidents with the highest positive actual cost."""
        flt = self.coerce_filter(filters)
        limit = self._top_cost_limit if limit is None else _validate_count(limit, "limit")

        def compute(deadline: Deadline) -> list[TopCostIncidentRow]:
            now = self._now()
            candidates = [
                i for i in self._select(flt, deadline)
                if i.actual_cost is not None and i.actual_cost > 0
            ]
            candidates.sort(key=lambda i: (-i.actual_cost, i.id))

            rows = []
            for incident in candidates[:limit]:
                hours = incident.elapsed_hours(now)
                hours = round(hours, 2) if hours is not None else None
                rows.append(TopCostIncidentRow(
                    incident_id=incident.id,
                    facility_name=self._snapshot.facilities[incident.facility_id].name,
                    category_name=self._snapshot.categories[incident.category_id].name,
                    severity=incident.severity.value,
                    incident_date=incident.incident_date,
                    title=incident.title,
                    actual_cost=incident.actual_cost,
                    hours_to_resolve=hours,
                    cost_per_hour=round(float(incident.actual_cost) / hours, 2) if hours else None,
                ))
            return rows

        return self._result("top_cost_incidents", TopCostIncidentRow, compute)

    # ── Analysts ─────────────────────────────────────────────────────────

    def analyst_performance(
        self, filters: FilterArg = None, min_resolved: Optional[int] = None
    ) -> ReportResult[AnalystPerformanceRow]:
        """Resolution metrics per analyst with at least ``min_resolved`` closed incidents."""
        flt = self.coerce_filter(filters)
        minimum = self._analyst_min_resolved if min_resolved is None else _validate_count(min_resolved, "min_resolved")

        def compute(deadline: Deadline) -> list[AnalystPerformanceRow]:
            resolved: dict[int, list[float]] = defaultdict(list)
            for incident in self._select(flt, deadline):
                if incident.resolved_by_id is None:
                    continue
                hours = self._closed_hours(incident)
                if hours is not None:
                    resolved[incident.resolved_by_id].append(hours)

            rows = []
            for personnel_id, hours in resolved.items():
                if len(hours) < minimum:
                    continue
                person = self._snapshot.personnel[personnel_id]
                within = sum(1 for h in hours if h <= self._within_hours)
                rows.append(AnalystPerformanceRow(
                    personnel_id=personnel_id,
                    personnel_name=person.full_name,
                    role=person.role,
                    incidents_resolved=len(hours),
                    avg_resolution_hours=mean(hours),
                    resolved_within_24h=within,
                    percent_resolved_within_24h=percent(within, len(hours)),
                ))
            rows.sort(key=lambda r: (r.avg_resolution_hours, r.personnel_name, r.personnel_id))
            return rows

        return self._result("analyst_performance", AnalystPerformanceRow, compute)

    def analyst_workload(self, filters: FilterArg = None) -> ReportResult[AnalystWorkloadRow]:
        """Open workload per active analyst, derived from live incident state."""
        flt = self.coerce_filter(filters)

        def compute(deadline: Deadline) -> list[AnalystWorkloadRow]:
            active: dict[int, int] = defaultdict(int)
            assigned: dict[int, int] = defaultdict(int)
            for incident in self._select(flt, deadline):
                if incident.assigned_to_id is None:
                    continue
                assigned[incident.assigned_to_id] += 1
                if not incident.status.is_terminal:
                    active[incident.assigned_to_id] += 1

            rows = [
                AnalystWorkloadRow(
                    personnel_id=person.id,
                    personnel_name=person.full_name,
                    role=person.role,
                    active_incidents=active[person.id],
                    total_assigned=assigned[person.id],
                )
                for person in self._snapshot.personnel.values()
                if person.is_active
            ]
            rows.sort(key=lambda r: (-r.active_incidents, r.personnel_name, r.personnel_id))
            return rows

        return self._result("analyst_workload", AnalystWorkloadRow, compute)

    # ── Daily rollup ─────────────────────────────────────────────────────

    def daily_facility_metrics(
        self, filters: FilterArg = None, day: Optional[date] = None
    ) -> ReportResult[DailyFacilityMetricsRow]:
        """Per day and facility counts of the incidents detected that day."""
        flt = self.coerce_filter(filters)
        if day is not None and (isinstance(day, datetime) or not isinstance(day, date)):
            raise ConfigurationError(f"day must be a date, got {day!r}")

        def compute(deadline: Deadline) -> list[DailyFacilityMetricsRow]:
            stats: dict[tuple[date, int], _GroupStats] = defaultdict(_GroupStats)
            for incident in self._select(flt, deadline):
                detected_on = incident.incident_date.date()
                if day is not None and detected_on != day:
                    continue
                group = stats[(detected_on, incident.facility_id)]
                group.total += 1
                if incident.severity is Severity.critical:
                    group.critical += 1
                elif incident.severity is Severity.high:
                    group.high += 1
                if not incident.status.is_terminal:
                    group.open += 1
                if self._is_closed(incident):
                    group.closed += 1
                    hours = incident.resolution_hours
                    if hours is not None:
                        group.hours.append(hours)

            return [
                DailyFacilityMetricsRow(
                    metric_date=metric_date,
                    facility_id=facility_id,
                    total_incidents=group.total,
                    open_incidents=group.open,
                    closed_incidents=group.closed,
                    avg_resolution_hours=mean(group.hours),
                    high_severity_count=group.high,
                    critical_severity_count=group.critical,
                )
                for (metric_date, facility_id), group in sorted(stats.items())
            ]

        return self._result("daily_facility_metrics", DailyFacilityMetricsRow, compute)
