"""Tests for ReportResult laziness and the computation Deadline."""

import itertools
from unittest.mock import MagicMock, patch

import pytest

from incident_analytics.exceptions import ReportTimeoutError
from incident_analytics.reporting.result import Deadline, ReportResult
from incident_analytics.reporting.rows import PeakTimeRow

_MONOTONIC = "incident_analytics.reporting.result.time.monotonic"


def _ticking(step):
    ticks = itertools.count(0, step)
    return lambda: next(ticks)


class TestReportResult:

    def test_nothing_computed_until_iterated(self):
        compute = MagicMock(return_value=[PeakTimeRow(hour_of_day=9, day_of_week="Monday", incident_count=1)])
        result = ReportResult("peak_times", PeakTimeRow, compute)

        compute.assert_not_called()
        assert len(list(result)) == 1
        assert len(list(result)) == 1
        assert compute.call_count == 2

    def test_columns_follow_row_model(self):
        result = ReportResult("peak_times", PeakTimeRow, MagicMock(return_value=[]))
        assert result.columns == ("hour_of_day", "day_of_week", "incident_count", "avg_resolution_hours")
        assert "peak_times" in repr(result)

    def test_to_dicts(self):
        row = PeakTimeRow(hour_of_day=1, day_of_week="Sunday", incident_count=2, avg_resolution_hours=1.5)
        result = ReportResult("peak_times", PeakTimeRow, MagicMock(return_value=[row]))
        assert result.to_dicts() == [{
            "hour_of_day": 1,
            "day_of_week": "Sunday",
            "incident_count": 2,
            "avg_resolution_hours": 1.5,
        }]

    def test_timeout_after_compute_discards_rows(self):
        compute = MagicMock(return_value=[])
        result = ReportResult("slow", PeakTimeRow, compute, deadline_seconds=5)
        with patch(_MONOTONIC, side_effect=_ticking(10)):
            with pytest.raises(ReportTimeoutError):
                result.rows()
        compute.assert_called_once()


class TestDeadline:

    def test_no_deadline_never_expires(self):
        deadline = Deadline(None)
        with patch(_MONOTONIC, side_effect=_ticking(1000)):
            assert list(deadline.iterate(range(5))) == [0, 1, 2, 3, 4]

    def test_iterate_checks_periodically(self):
        with patch(_MONOTONIC, side_effect=[0.0, 1.0, 2.0, 100.0]):
            deadline = Deadline(10, report="monthly_trend", check_every=2)
            consumed = []
            with pytest.raises(ReportTimeoutError, match="monthly_trend"):
                for item in deadline.iterate(range(10)):
                    consumed.append(item)
        assert consumed == [0, 1, 2]
