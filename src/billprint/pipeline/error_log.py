"""Durable error log for print failures.

Appends one record per failure to a plain text file in the data dir:

    2026-01-31T18:02:11.512Z - ERROR: Print failed: printer offline

followed by a blank line.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ErrorLog:
    """Append-only failure log. Writing never raises."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def record(self, message: str) -> bool:
        """
        Append a failure record.

        Args:
            message: Human readable failure description

        Returns:
            True if the record was written
        """
        entry = f"{_timestamp()} - ERROR: {message}\n\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(entry)
            return True
        except OSError as e:
            logger.error(f"Failed to write error log {self.path}: {e}")
            return False

    def read(self) -> str:
        """Return the whole log, or an empty string if there is none."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
