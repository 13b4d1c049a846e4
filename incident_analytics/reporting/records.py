"""Read-model records — the immutable snapshot the reporting engine aggregates.

A ``Snapshot`` is built once from the store (or directly in tests) and is
never mutated afterwards, so any number of reports can be evaluated against
it concurrently. Referential integrity is checked while the snapshot is
assembled; an orphaned reference fails the whole build.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

from ..exceptions import ConfigurationError, DataIntegrityError
from ..utils.logging import get_logger

logger = get_logger("reporting.records")


class Severity(str, Enum):
    low = "Low"
    medium = "Medium"
    high = "High"
    critical = "Critical"

    @classmethod
    def parse(cls, value) -> "Severity":
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).strip().lower()]
        except KeyError:
            raise ConfigurationError(f"Unknown severity: {value!r}") from None

    @property
    def urgency(self) -> int:
        """Higher is more urgent: Critical=4 ... Low=1."""
        return _URGENCY[self]


_URGENCY = {
    Severity.low: 1,
    Severity.medium: 2,
    Severity.high: 3,
    Severity.critical: 4,
}


class Status(str, Enum):
    open = "Open"
    in_progress = "In Progress"
    investigating = "Investigating"
    blocked = "Blocked"
    contained = "Contained"
    mitigated = "Mitigated"
    resolved = "Resolved"
    closed = "Closed"

    @classmethod
    def parse(cls, value) -> "Status":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return cls[key]
        except KeyError:
            raise ConfigurationError(f"Unknown status: {value!r}") from None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({Status.resolved, Status.closed})


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drop tzinfo after converting to UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form every stored timestamp takes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


@dataclass(frozen=True)
class FacilityRecord:
    id: int
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    name: str
    parent_id: Optional[int] = None
    is_active: bool = True


@dataclass(frozen=True)
class PersonnelRecord:
    id: int
    first_name: str
    last_name: str
    role: Optional[str] = None
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class IncidentRecord:
    id: int
    facility_id: int
    category_id: int
    incident_date: datetime
    severity: Severity
    status: Status = Status.open
    resolution_date: Optional[datetime] = None
    reported_by_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    resolved_by_id: Optional[int] = None
    actual_cost: Optional[Decimal] = None
    estimated_cost: Optional[Decimal] = None
    title: str = ""

    def __post_init__(self):
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        object.__setattr__(self, "status", Status.parse(self.status))
        object.__setattr__(self, "incident_date", to_naive_utc(self.incident_date))
        object.__setattr__(self, "resolution_date", to_naive_utc(self.resolution_date))
        for name in ("actual_cost", "estimated_cost"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))

    @property
    def has_reversed_resolution(self) -> bool:
        return self.resolution_date is not None and self.resolution_date < self.incident_date

    @property
    def resolution_hours(self) -> Optional[float]:
        """Hours from detection to resolution; None when unresolved or reversed."""
        if self.resolution_date is None or self.has_reversed_resolution:
            return None
        return hours_between(self.incident_date, self.resolution_date)

    def elapsed_hours(self, now: datetime) -> Optional[float]:
        """Hours to resolution, or to ``now`` while still unresolved."""
        if self.resolution_date is not None:
            return self.resolution_hours
        return max(hours_between(self.incident_date, now), 0.0)


@dataclass(frozen=True)
class Snapshot:
    """A consistent, read-only view of the incident store."""

    facilities: dict[int, FacilityRecord] = field(default_factory=dict)
    categories: dict[int, CategoryRecord] = field(default_factory=dict)
    personnel: dict[int, PersonnelRecord] = field(default_factory=dict)
    incidents: tuple[IncidentRecord, ...] = ()

    @classmethod
    def build(
        cls,
        facilities: Iterable[FacilityRecord] = (),
        categories: Iterable[CategoryRecord] = (),
        personnel: Iterable[PersonnelRecord] = (),
        incidents: Iterable[IncidentRecord] = (),
    ) -> "Snapshot":
        return cls(
            facilities={f.id: f for f in facilities},
            categories={c.id: c for c in categories},
            personnel={p.id: p for p in personnel},
            incidents=tuple(incidents),
        )

    def __post_init__(self):
        self.check_integrity()

    def check_integrity(self) -> None:
        """Fail fast on dangling references; flag reversed resolution pairs."""
        for category in self.categories.values():
            if category.parent_id is not None and category.parent_id not in self.categories:
                raise DataIntegrityError(
                    f"Category {category.id} references missing parent category {category.parent_id}"
                )
        reversed_ids = []
        for incident in self.incidents:
            if incident.facility_id not in self.facilities:
                raise DataIntegrityError(
                    f"Incident {incident.id} references missing facility {incident.facility_id}"
                )
            if incident.category_id not in self.categories:
                raise DataIntegrityError(
                    f"Incident {incident.id} references missing category {incident.category_id}"
                )
            for attr in ("reported_by_id", "assigned_to_id", "resolved_by_id"):
                person_id = getattr(incident, attr)
                if person_id is not None and person_id not in self.personnel:
                    raise DataIntegrityError(
                        f"Incident {incident.id} references missing personnel {person_id} ({attr})"
                    )
            if incident.has_reversed_resolution:
                reversed_ids.append(incident.id)
        if reversed_ids:
            logger.warning(
                "reversed_resolution_excluded",
                count=len(reversed_ids),
                incident_ids=reversed_ids[:20],
            )
