"""Calendar-month series and ordered folds used by the trend reports.

Lags are always taken over a gap-filled series, so "12 periods back" means
12 calendar months back even when some months have no incidents.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Mapping, Optional, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class MonthKey:
    year: int
    month: int

    @classmethod
    def of(cls, value: datetime) -> "MonthKey":
        return cls(value.year, value.month)

    @property
    def ordinal(self) -> int:
        return self.year * 12 + (self.month - 1)

    @classmethod
    def from_ordinal(cls, ordinal: int) -> "MonthKey":
        return cls(ordinal // 12, ordinal % 12 + 1)

    def shift(self, months: int) -> "MonthKey":
        return MonthKey.from_ordinal(self.ordinal + months)


def month_span(first: MonthKey, last: MonthKey) -> list[MonthKey]:
    """Every calendar month from ``first`` to ``last`` inclusive."""
    return [MonthKey.from_ordinal(o) for o in range(first.ordinal, last.ordinal + 1)]


def last_month_before(end: datetime) -> MonthKey:
    """Month containing the last instant before an exclusive ``end``."""
    return MonthKey.of(end - timedelta(microseconds=1))


def gap_fill(
    values: Mapping[MonthKey, T],
    first: MonthKey,
    last: MonthKey,
    empty: Callable[[], T],
) -> list[tuple[MonthKey, T]]:
    """Materialize a dense series, inserting ``empty()`` for missing months."""
    return [(key, values[key] if key in values else empty()) for key in month_span(first, last)]


def lag(values: Iterable[T], periods: int) -> list[Optional[T]]:
    """The value ``periods`` positions earlier, None before the series starts."""
    window: deque = deque(maxlen=periods)
    lagged: list[Optional[T]] = []
    for value in values:
        lagged.append(window[0] if len(window) == periods else None)
        window.append(value)
    return lagged


def running_total(values: Iterable[int]) -> list[int]:
    totals = []
    acc = 0
    for value in values:
        acc += value
        totals.append(acc)
    return totals


def percent(numerator, denominator) -> Optional[float]:
    """100 * numerator / denominator rounded to 2 places; None on a zero denominator."""
    if numerator is None or not denominator:
        return None
    return round(100.0 * float(numerator) / float(denominator), 2)


def change_percent(current: int, prior: Optional[int]) -> Optional[float]:
    if prior is None:
        return None
    return percent(current - prior, prior)


def mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def dense_rank(values: Sequence[Optional[float]], descending: bool = False) -> list[int]:
    """Dense rank of each value. Ties share a rank; None ranks after every value."""
    distinct = sorted({v for v in values if v is not None}, reverse=descending)
    ranks = {v: i + 1 for i, v in enumerate(distinct)}
    null_rank = len(distinct) + 1
    return [ranks[v] if v is not None else null_rank for v in values]
