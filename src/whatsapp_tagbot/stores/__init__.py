"""Settings store implementations."""

from .json_settings_store import JsonSettingsStore

__all__ = ["JsonSettingsStore"]
