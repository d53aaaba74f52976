"""CUPS command line helpers: printer discovery and child process cleanup."""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List

from billprint.errors import PrintFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrinterInfo:
    """One print destination known to CUPS."""

    name: str
    status: str  # idle, printing, disabled, ...
    enabled: bool = True
    is_default: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "enabled": self.enabled,
            "isDefault": self.is_default,
        }


def kill_process(process: asyncio.subprocess.Process) -> None:
    """Kill a child that is still running."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass


def parse_lpstat(output: str) -> List[PrinterInfo]:
    """Parse ``lpstat -p -d`` output (C locale).

    Example::

        printer POS-80 is idle.  enabled since Mon 01 Jan 2024 10:00:00
        printer Office disabled since Mon 01 Jan 2024 10:00:00 -
            reason unknown
        system default destination: POS-80
    """
    default = None
    entries = []
    for line in output.splitlines():
        if line.startswith("system default destination:"):
            default = line.split(":", 1)[1].strip() or None
            continue
        words = line.split()
        if len(words) < 3 or words[0] != "printer":
            continue
        name = words[1]
        if words[2] == "disabled":
            entries.append((name, "disabled", False))
        else:
            status = words[3].rstrip(".") if words[2] in ("is", "now") and len(words) > 3 else words[2]
            entries.append((name, status, True))

    return [
        PrinterInfo(name=name, status=status, enabled=enabled, is_default=name == default)
        for name, status, enabled in entries
    ]


async def list_printers(command: str = "lpstat", timeout: float = 10.0) -> List[PrinterInfo]:
    """List the print destinations with the default flagged.

    Raises:
        PrintFailure: If CUPS cannot be queried
    """
    try:
        process = await asyncio.create_subprocess_exec(
            command, "-p", "-d",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env={**os.environ, "LC_ALL": "C"},
        )
    except OSError as e:
        raise PrintFailure(f"Printer list unavailable: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        kill_process(process)
        await process.wait()
        raise PrintFailure(f"{command} timed out after {timeout:g}s")
    except asyncio.CancelledError:
        kill_process(process)
        raise

    printers = parse_lpstat(stdout.decode(errors="replace"))
    errors = stderr.decode(errors="replace").strip()
    # lpstat exits 1 when no destinations are configured
    if process.returncode != 0 and not printers and "No destinations" not in errors:
        raise PrintFailure(errors or f"{command} exited with {process.returncode}")

    logger.debug(f"Found {len(printers)} printer(s)")
    return printers
