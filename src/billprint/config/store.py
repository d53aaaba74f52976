"""Persistent print settings.

The record is a small JSON document in the user data directory:

    {"width": 88, "height": 279, "scaleFactor": 1.0,
     "silentPrinting": true, "deviceName": null}

Every field is validated on its own, so one bad value never throws away
the rest of the record.
"""

from __future__ import annotations

import json
import logging
import math
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from billprint.errors import SettingsError

logger = logging.getLogger(__name__)


class PrintSettings(BaseModel):
    """Physical print configuration consumed by every job."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    width: float = 88.0  # mm
    height: float = 279.0  # mm
    scale_factor: float = Field(default=1.0, alias="scaleFactor")
    silent_printing: bool = Field(default=True, alias="silentPrinting")
    device_name: Optional[str] = Field(default=None, alias="deviceName")

    def to_record(self) -> Dict[str, Any]:
        """Serialize with the keys of the persistence record."""
        return self.model_dump(by_alias=True)


DEFAULT_SETTINGS = PrintSettings()


def parse_positive_float(value: Any, default: float) -> float:
    """Parse a positive, finite float or return the default."""
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number <= 0:
        return default
    return number


def _device_name(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def normalize_settings(values: Mapping[str, Any], strict_bool: bool = False) -> PrintSettings:
    """Build settings from a raw record, falling back per field.

    Args:
        values: Raw record using the persistence keys
        strict_bool: Coerce silentPrinting to ``value is True`` instead of
            falling back to the default for non-boolean values
    """
    silent = values.get("silentPrinting")
    if strict_bool:
        silent = silent is True
    elif not isinstance(silent, bool):
        silent = DEFAULT_SETTINGS.silent_printing

    return PrintSettings(
        width=parse_positive_float(values.get("width"), DEFAULT_SETTINGS.width),
        height=parse_positive_float(values.get("height"), DEFAULT_SETTINGS.height),
        scale_factor=parse_positive_float(values.get("scaleFactor"), DEFAULT_SETTINGS.scale_factor),
        silent_printing=silent,
        device_name=_device_name(values.get("deviceName")),
    )


class PrintSettingsStore:
    """File-backed store holding the process-wide current print settings.

    Jobs take a snapshot of ``current`` when they are created; ``save``
    swaps the whole value, so jobs already in flight are unaffected.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._current = DEFAULT_SETTINGS

    @property
    def path(self) -> Path:
        return self._path

    @property
    def current(self) -> PrintSettings:
        """Settings snapshot for newly started jobs."""
        return self._current

    def load(self) -> PrintSettings:
        """Load the record from disk into ``current``.

        Returns:
            The loaded settings (defaults if the record is missing or corrupt)
        """
        self._current = self._read()
        logger.info(f"Print settings loaded: {self._current.to_record()}")
        return self._current

    def _read(self) -> PrintSettings:
        if not self._path.exists():
            logger.info(f"No print settings at {self._path}, using defaults")
            return DEFAULT_SETTINGS

        try:
            loaded = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading settings, falling back to defaults: {e}")
            return DEFAULT_SETTINGS

        if not isinstance(loaded, dict):
            logger.error("Print settings record is not an object, using defaults")
            return DEFAULT_SETTINGS

        return normalize_settings(loaded)

    def save(self, values: Union[PrintSettings, Mapping[str, Any]]) -> PrintSettings:
        """Normalize, persist atomically and replace ``current``.

        Args:
            values: A PrintSettings instance or a raw record from the
                settings dialog

        Returns:
            The settings that were saved

        Raises:
            SettingsError: If the record could not be written
        """
        if isinstance(values, PrintSettings):
            values = values.to_record()
        settings = normalize_settings(values, strict_bool=True)

        try:
            self._write_atomic(settings.to_record())
        except OSError as e:
            logger.error(f"Error saving settings: {e}")
            raise SettingsError(f"Could not save print settings: {e}") from e

        self._current = settings
        logger.info(f"Print settings saved to: {self._path}")
        return settings

    def _write_atomic(self, record: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".print-settings-", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def to_query_params(self) -> Dict[str, str]:
        """Current values as query parameters for the settings dialog."""
        current = self._current
        params = {
            "width": f"{current.width:g}",
            "height": f"{current.height:g}",
            "scaleFactor": f"{current.scale_factor:g}",
            "silentPrinting": "true" if current.silent_printing else "false",
        }
        if current.device_name:
            params["deviceName"] = current.device_name
        return params
