"""Lazy, restartable report results with a cooperative computation deadline."""

import time
from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar

from ..exceptions import ReportTimeoutError
from .rows import ReportRow

RowT = TypeVar("RowT", bound=ReportRow)
T = TypeVar("T")


class Deadline:
    """Bounded computation window checked cooperatively inside aggregation loops."""

    def __init__(self, seconds: Optional[float], report: str = "report", check_every: int = 512):
        self.report = report
        self._expires_at = time.monotonic() + seconds if seconds else None
        self._check_every = max(check_every, 1)

    def check(self) -> None:
        if self._expires_at is not None and time.monotonic() > self._expires_at:
            raise ReportTimeoutError(f"{self.report} exceeded its computation deadline")

    def iterate(self, items: Iterable[T]) -> Iterator[T]:
        """Yield ``items``, checking the deadline every ``check_every`` items."""
        self.check()
        for i, item in enumerate(items, start=1):
            if i % self._check_every == 0:
                self.check()
            yield item


class ReportResult(Generic[RowT]):
    """Ordered rows of one report.

    Nothing is computed until the result is iterated, and every iteration
    recomputes from the snapshot. Rows are fully materialized before the
    first one is yielded, so a deadline or integrity failure never leaves a
    consumer holding a partial report.
    """

    def __init__(
        self,
        name: str,
        row_model: type[RowT],
        compute: Callable[[Deadline], list[RowT]],
        deadline_seconds: Optional[float] = None,
    ):
        self.name = name
        self.row_model = row_model
        self._compute = compute
        self._deadline_seconds = deadline_seconds

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self.row_model.model_fields)

    def rows(self) -> list[RowT]:
        deadline = Deadline(self._deadline_seconds, report=self.name)
        rows = self._compute(deadline)
        deadline.check()
        return rows

    def to_dicts(self) -> list[dict]:
        return [row.model_dump() for row in self.rows()]

    def __iter__(self) -> Iterator[RowT]:
        return iter(self.rows())

    def __repr__(self) -> str:
        return f"ReportResult(name={self.name!r}, columns={list(self.columns)})"
