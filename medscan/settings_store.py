"""Persistence helpers for user configuration."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import AppConfig

logger = logging.getLogger(__name__)

SETTINGS_ENV = "MEDSCAN_SETTINGS"

# Environment variables that override individual settings, e.g. for a deployed endpoint.
ENV_OVERRIDES = {
    "MEDSCAN_PROVIDER": "provider_name",
    "MEDSCAN_REMOTE_BASE_URL": "remote_base_url",
    "MEDSCAN_REMOTE_MODEL": "remote_model",
    "MEDSCAN_ENDPOINT_URL": "endpoint_url",
}


class SettingsStore:
    """Load and save application settings to a well-known path."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or default_settings_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppConfig:
        """Return the saved settings with environment overrides applied."""
        data = self._load_file().as_dict()
        overrides = environment_overrides()
        if not overrides:
            return AppConfig.model_validate(data)
        logger.debug("Applying environment overrides: %s", ", ".join(sorted(overrides)))
        return AppConfig.model_validate({**data, **overrides})

    def save(self, config: AppConfig) -> None:
        config.save(self._path)

    def update(self, **changes: Any) -> AppConfig:
        """Persist ``changes`` and return the settings with environment overrides reapplied."""
        merged = AppConfig.model_validate({**self._load_file().as_dict(), **changes})
        self.save(merged)
        return self.load()

    def _load_file(self) -> AppConfig:
        if not self._path.exists():
            return AppConfig()
        return AppConfig.load(self._path)


def environment_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for variable, field_name in ENV_OVERRIDES.items():
        value = os.getenv(variable)
        if value:
            overrides[field_name] = value
    return overrides


def default_settings_path() -> Path:
    explicit = os.getenv(SETTINGS_ENV)
    if explicit:
        return Path(explicit).expanduser()
    if os.name == "nt":
        base = Path(os.getenv("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base.expanduser() / "medscan" / "settings.yaml"
