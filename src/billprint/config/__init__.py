"""Configuration for billprint."""

from billprint.config.settings import AppSettings, get_settings
from billprint.config.store import PrintSettings, PrintSettingsStore

__all__ = [
    "AppSettings",
    "get_settings",
    "PrintSettings",
    "PrintSettingsStore",
]
