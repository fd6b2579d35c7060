"""
Tests for configuration and component wiring.
"""

import logging

import pytest
from decimal import Decimal

from cycletrack.audit import configure_logging
from cycletrack.config import (
    AppSettings,
    EngineSettings,
    get_settings,
    validate_all_settings,
)
from cycletrack.orchestrator import (
    BudgetCycleFlow,
    GoalCycleFlow,
    LiabilityCycleFlow,
    create_app_components,
)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    for name in (
        "GOOGLE_SHEETS_CREDENTIALS_PATH",
        "GOOGLE_SHEETS_SPREADSHEET_ID",
        "CYCLES_DAYS_IN_YEAR",
        "CYCLES_GOAL_AMOUNT_TOLERANCE",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestEngineSettings:
    """Tests for engine defaults."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.default_max_cycles == 12
        assert settings.liability_tolerance_days == 7
        assert settings.liability_amount_tolerance == Decimal("0.01")
        assert settings.goal_amount_tolerance == Decimal("0.05")
        assert settings.budget_warning_percent == 90.0
        assert settings.days_in_year == 365

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CYCLES_GOAL_AMOUNT_TOLERANCE", "0.1")
        monkeypatch.setenv("CYCLES_DAYS_IN_YEAR", "360")

        settings = EngineSettings()
        assert settings.goal_amount_tolerance == Decimal("0.1")
        assert settings.days_in_year == 360

    def test_rejects_odd_day_count(self, monkeypatch):
        monkeypatch.setenv("CYCLES_DAYS_IN_YEAR", "400")
        with pytest.raises(ValueError, match="days_in_year"):
            EngineSettings()


class TestAppSettings:
    """Tests for application settings."""

    def test_log_level_is_normalised(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert AppSettings().log_level == "DEBUG"

    def test_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        with pytest.raises(ValueError):
            AppSettings()


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def restore_level(self):
        package_logger = logging.getLogger("cycletrack")
        previous = package_logger.level
        yield
        package_logger.setLevel(previous)

    def test_level_from_environment(self, monkeypatch):
        """LOG_LEVEL sets the package logger level."""
        monkeypatch.setenv("LOG_LEVEL", "warning")
        configure_logging()
        assert logging.getLogger("cycletrack").level == logging.WARNING

    def test_explicit_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        configure_logging("DEBUG")
        assert logging.getLogger("cycletrack.engine.matcher").getEffectiveLevel() == logging.DEBUG


class TestValidateAllSettings:
    """Tests for validate_all_settings."""

    def test_missing_sheets_config_is_reported(self):
        results = validate_all_settings()

        assert results["engine"] is True
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results


class TestComponentFactory:
    """Tests for create_app_components."""

    def test_in_memory_components(self):
        liability_flow, budget_flow, goal_flow, sheets_client = create_app_components(use_storage=False)

        assert isinstance(liability_flow, LiabilityCycleFlow)
        assert isinstance(budget_flow, BudgetCycleFlow)
        assert isinstance(goal_flow, GoalCycleFlow)
        assert sheets_client is None

    def test_falls_back_without_sheets_config(self):
        *flows, sheets_client = create_app_components(use_storage=True)

        assert len(flows) == 3
        assert sheets_client is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
