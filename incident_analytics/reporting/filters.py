"""Report filter — date range, facility and category restrictions."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from ..exceptions import ConfigurationError
from .records import IncidentRecord, to_naive_utc


def _coerce_datetime(value, name: str) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return to_naive_utc(datetime.fromisoformat(value))
        except ValueError:
            raise ConfigurationError(f"Malformed {name}: {value!r}") from None
    raise ConfigurationError(f"Malformed {name}: {value!r}")


def _coerce_ids(values, name: str) -> Optional[frozenset[int]]:
    if values is None:
        return None
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise ConfigurationError(f"{name} must be a collection of ids")
    ids = set()
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigurationError(f"Invalid id in {name}: {value!r}")
        ids.add(value)
    return frozenset(ids)


@dataclass(frozen=True)
class ReportFilter:
    """Restricts the incidents a report sees.

    ``start`` is inclusive and ``end`` exclusive, both compared against the
    incident's detection timestamp. Facility and category restrictions also
    narrow the facility and category dimensions of the reports.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    facility_ids: Optional[frozenset[int]] = None
    category_ids: Optional[frozenset[int]] = None

    def __post_init__(self):
        object.__setattr__(self, "start", _coerce_datetime(self.start, "start"))
        object.__setattr__(self, "end", _coerce_datetime(self.end, "end"))
        object.__setattr__(self, "facility_ids", _coerce_ids(self.facility_ids, "facility_ids"))
        object.__setattr__(self, "category_ids", _coerce_ids(self.category_ids, "category_ids"))
        if self.start is not None and self.end is not None and self.start >= self.end:
            raise ConfigurationError(
                f"Date range start {self.start.isoformat()} must be before end {self.end.isoformat()}"
            )

    @classmethod
    def from_mapping(cls, filters: Optional[Mapping]) -> "ReportFilter":
        """Build a filter from a plain dict, e.g. parsed from a job definition."""
        if not filters:
            return cls()
        unknown = set(filters) - {"start", "end", "facility_ids", "category_ids"}
        if unknown:
            raise ConfigurationError(f"Unknown filter keys: {sorted(unknown)}")
        return cls(
            start=filters.get("start"),
            end=filters.get("end"),
            facility_ids=filters.get("facility_ids"),
            category_ids=filters.get("category_ids"),
        )

    def allows_facility(self, facility_id: int) -> bool:
        return self.facility_ids is None or facility_id in self.facility_ids

    def allows_category(self, category_id: int) -> bool:
        return self.category_ids is None or category_id in self.category_ids

    def matches(self, incident: IncidentRecord) -> bool:
        if self.start is not None and incident.incident_date < self.start:
            return False
        if self.end is not None and incident.incident_date >= self.end:
            return False
        return self.allows_facility(incident.facility_id) and self.allows_category(incident.category_id)
