"""Unit tests for AppSettings."""

import pytest
from pydantic import ValidationError

from spendwise.domain.settings import AppSettings


class TestAppSettings:
    """Tests for AppSettings model."""

    def test_default_settings(self):
        """Default settings are created correctly."""
        settings = AppSettings()

        assert settings.ui_state.show_overall_balance is True
        assert settings.ui_state.items_per_page == 25
        assert settings.store.strict_invariants is False
        assert settings.logging.level == "INFO"

    def test_items_per_page_validation(self):
        """Items per page must be between 1 and 500."""
        settings = AppSettings()

        settings.ui_state.items_per_page = 500
        assert settings.ui_state.items_per_page == 500

        with pytest.raises(ValidationError):
            settings.ui_state.items_per_page = 0

        with pytest.raises(ValidationError):
            settings.ui_state.items_per_page = 501

    def test_invalid_log_level_raises_error(self):
        """Log level must be a standard level name."""
        settings = AppSettings()

        settings.logging.level = "DEBUG"
        assert settings.logging.level == "DEBUG"

        with pytest.raises(ValidationError):
            settings.logging.level = "verbose"

    def test_extra_fields_forbidden(self):
        """Unknown top-level settings are rejected."""
        with pytest.raises(ValidationError):
            AppSettings.model_validate({"theme": {"mode": "dark"}})

    def test_serialization_round_trip(self):
        """Settings survive JSON serialization."""
        settings = AppSettings()
        settings.ui_state.show_overall_balance = False
        settings.store.strict_invariants = True

        restored = AppSettings.model_validate_json(settings.model_dump_json())

        assert restored == settings
