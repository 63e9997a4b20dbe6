"""JSON storage for AppSettings between sessions."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as SettingsValidationError

from spendwise.domain.settings import AppSettings

logger = logging.getLogger(__name__)


class SettingsStore:
    """Reads and writes AppSettings as a JSON document.

    A missing or unreadable file is never fatal: load() falls back to the
    defaults so a session can always start.

    Example:
        >>> store = SettingsStore(Path("/tmp/spendwise.json"))
        >>> settings = store.load()
        >>> settings.ui_state.items_per_page = 50
        >>> store.save(settings)
    """

    DEFAULT_PATH = Path.home() / ".spendwise_settings.json"

    def __init__(self, path: Optional[Path] = None):
        self._path = path or self.DEFAULT_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppSettings:
        """Read settings, or the defaults if there is nothing usable on disk."""
        try:
            raw = self._path.read_text()
        except FileNotFoundError:
            return AppSettings()
        except OSError as e:
            logger.warning(f"Settings file {self._path} unreadable, using defaults: {e}")
            return AppSettings()

        try:
            return AppSettings.model_validate(json.loads(raw))
        except (ValueError, SettingsValidationError) as e:
            logger.warning(f"Settings file {self._path} invalid, using defaults: {e}")
            return AppSettings()

    def save(self, settings: AppSettings) -> None:
        """Write settings, replacing the file in one step.

        The document goes to a sibling temp file first, so an interrupted
        save leaves the previous settings intact.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        pending = self._path.with_name(self._path.name + ".tmp")
        pending.write_text(settings.model_dump_json(indent=2))
        pending.replace(self._path)
