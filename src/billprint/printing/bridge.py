"""Client for the raw spooling bridge.

The bridge is a small external executable that takes one argument, the
path of a file holding raw printer bytes, and writes those bytes
unchanged to the default printer's spool. It prints ``Success`` or
``Failed`` on stdout.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Union

from billprint.errors import BridgeLaunchFailure, PrintFailure

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def artifact_path(directory: Union[str, Path], kind: str, document_id: str, suffix: str) -> Path:
    """Predictable artifact filename, e.g. ``bill_1234.bin``."""
    safe_id = _UNSAFE_NAME_CHARS.sub("_", str(document_id)).strip("_") or "unknown"
    return Path(directory) / f"{kind}_{safe_id}{suffix}"


def write_artifact(path: Path, data: bytes) -> Path:
    """Write bytes to an artifact path, creating the directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.debug(f"Wrote {len(data)} bytes to {path}")
    return path


class SpoolingBridge:
    """Runs the bridge executable without blocking the event loop."""

    def __init__(self, executable: Union[str, Path], timeout: float = 15.0):
        """Initialize the bridge client.

        Args:
            executable: Path to the bridge executable
            timeout: Seconds to wait for the bridge to exit
        """
        self._executable = Path(executable)
        self._timeout = timeout

    @property
    def executable(self) -> Path:
        return self._executable

    async def send(self, path: Union[str, Path]) -> str:
        """Spool a file of raw bytes.

        Args:
            path: File produced by the encoder or image capture

        Returns:
            The bridge's stdout

        Raises:
            BridgeLaunchFailure: Executable missing or could not start
            PrintFailure: Bridge ran but reported failure
        """
        if not self._executable.exists():
            raise BridgeLaunchFailure(f"Spooling bridge not found: {self._executable}")

        logger.info(f"Spooling {path} via {self._executable.name}")
        try:
            process = await asyncio.create_subprocess_exec(
                str(self._executable),
                str(path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BridgeLaunchFailure(f"Could not start spooling bridge: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError:
            self._kill(process)
            await process.wait()
            raise PrintFailure(f"Spooling bridge timed out after {self._timeout:g}s")
        except asyncio.CancelledError:
            # Job was abandoned (timeout); do not leave the child running
            self._kill(process)
            raise

        output = stdout.decode(errors="replace").strip()
        errors = stderr.decode(errors="replace").strip()
        logger.debug(f"Bridge exited {process.returncode}: {output!r}")

        if process.returncode != 0:
            raise BridgeLaunchFailure(
                f"Spooling bridge exited with code {process.returncode}: {errors or output}"
            )
        if "Success" not in output:
            raise PrintFailure(output or "Spooling bridge reported no result")

        return output

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
