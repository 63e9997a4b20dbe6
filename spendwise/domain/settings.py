"""Application settings with Pydantic validation.

Settings are stored as JSON and validated using Pydantic models.
"""

from pydantic import BaseModel, Field


class UIStateSettings(BaseModel):
    """Selection state to persist across sessions."""

    show_overall_balance: bool = True
    items_per_page: int = Field(default=25, ge=1, le=500)

    model_config = {"validate_assignment": True}


class StoreSettings(BaseModel):
    """Selection store behaviour.

    With strict_invariants enabled an invariant violation raises instead of
    being normalized to the nearest valid state.
    """

    strict_invariants: bool = False

    model_config = {"validate_assignment": True}


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    model_config = {"validate_assignment": True}


class AppSettings(BaseModel):
    """Application settings with validation.

    Example:
        >>> settings = AppSettings()
        >>> settings.ui_state.items_per_page = 50
        >>> settings.store.strict_invariants = True
    """

    ui_state: UIStateSettings = Field(default_factory=UIStateSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {
        "validate_assignment": True,  # Validate on attribute assignment
        "extra": "forbid",  # Forbid extra fields
    }
