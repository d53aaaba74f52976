"""
Application settings using Pydantic.

Settings are loaded from environment variables with .env file support.
Physical print settings (page size, device) live in the print settings
store instead, because the user edits them at runtime.
"""

import sys
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# src/billprint/config -> src/billprint -> src -> project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent

BRIDGE_EXECUTABLE = "print-raw.exe"


def is_packaged() -> bool:
    """True when running from a frozen (bundled) build."""
    return bool(getattr(sys, "frozen", False))


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="BILLPRINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".billprint")
    settings_file: str = "print-settings.json"
    error_log_file: str = "billprint-log.txt"
    artifact_dir: Optional[Path] = None
    bridge_path: Optional[Path] = None

    # Pipeline strategy
    delivery_mode: Literal["native", "raw"] = "native"
    ready_strategy: Literal["handshake", "marker"] = "handshake"

    # Timing (seconds)
    job_timeout: float = Field(default=20.0, gt=0)
    cleanup_delay: float = Field(default=1.5, ge=0)
    poll_interval: float = Field(default=0.5, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)

    # Appended to the print URL so the page lays out for the paper width
    render_width_hint: Optional[int] = Field(default=None, gt=0)

    @property
    def settings_path(self) -> Path:
        """Path to the persisted print settings record."""
        return self.data_dir / self.settings_file

    @property
    def error_log_path(self) -> Path:
        """Path to the plain-text error log."""
        return self.data_dir / self.error_log_file

    def resolve_artifact_dir(self) -> Path:
        """Writable directory for ESC/POS job files."""
        if self.artifact_dir is not None:
            return self.artifact_dir
        if is_packaged():
            return Path(tempfile.gettempdir()) / "billprint"
        return PROJECT_ROOT / "print_jobs"

    def resolve_bridge_path(self) -> Path:
        """Location of the spooling bridge executable."""
        if self.bridge_path is not None:
            return self.bridge_path
        if is_packaged():
            return Path(sys.executable).resolve().parent / BRIDGE_EXECUTABLE
        return PROJECT_ROOT / "bin" / BRIDGE_EXECUTABLE


@lru_cache
def get_settings() -> AppSettings:
    """Get cached settings instance."""
    return AppSettings()
