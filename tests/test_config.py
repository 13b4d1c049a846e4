"""Tests for IncidentAnalyticsConfig — defaults, env overrides and validation."""

import pytest
from pydantic import ValidationError

from incident_analytics.config import IncidentAnalyticsConfig


class TestConfig:

    def test_defaults(self):
        config = IncidentAnalyticsConfig(_env_file=None)
        assert config.database_url == "sqlite+aiosqlite:///./incidents.db"
        assert config.db_busy_timeout == 5000
        assert config.report_top_cost_limit == 20
        assert config.report_analyst_min_resolved == 5
        assert config.report_open_resolution_policy == "exclude"
        assert config.report_closed_statuses == ["Closed"]
        assert config.report_deadline_seconds == 30.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("REPORT_TOP_COST_LIMIT", "5")
        monkeypatch.setenv("REPORT_OPEN_RESOLUTION_POLICY", "Provisional")
        monkeypatch.setenv("REPORT_CLOSED_STATUSES", '["Resolved", "Closed"]')
        config = IncidentAnalyticsConfig(_env_file=None)

        assert config.report_top_cost_limit == 5
        assert config.report_open_resolution_policy == "provisional"
        assert config.report_closed_statuses == ["Resolved", "Closed"]

    @pytest.mark.parametrize("field,value", [
        ("report_open_resolution_policy", "optimistic"),
        ("report_top_cost_limit", -1),
        ("report_analyst_min_resolved", -3),
        ("report_deadline_seconds", -0.5),
        ("db_busy_timeout", -1),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            IncidentAnalyticsConfig(_env_file=None, **{field: value})
