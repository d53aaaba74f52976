"""HTTP rendering sandbox.

Loads the receipt page with its own aiohttp session (separate cookies and
connection pool per job) and polls it until the content is ready.
Native printing hands the loaded page to CUPS via ``lp``.
"""

import asyncio
import logging
import os
import tempfile
from typing import List, Optional

import aiohttp

from billprint.core.events import EventBus
from billprint.errors import LoadFailure
from billprint.sandbox.base import PrintOptions, PrintResult, RenderingSandbox
from billprint.sandbox.cups import kill_process
from billprint.sandbox.signals import find_ready_marker, has_printable_container
from billprint.sandbox.snapshot import page_text_lines, render_text_image

logger = logging.getLogger(__name__)


class HttpSandbox(RenderingSandbox):
    """Sandbox that fetches the page over HTTP.

    With the ``handshake`` strategy the page is ready once the printable
    container is in the markup. With ``marker`` the response body is
    scanned for a ready marker followed by the document JSON. Scripts are
    not executed, so a marker only counts when it is in the served text
    with its JSON written out literally (a marker built at runtime, e.g.
    ``console.log(MARKER + JSON.stringify(doc))``, is never seen).

    Page capture is a text snapshot of the printable container; see
    ``billprint.sandbox.snapshot``.
    """

    def __init__(
        self,
        event_bus: EventBus,
        strategy: str = "handshake",
        poll_interval: float = 0.5,
        request_timeout: float = 10.0,
        lp_command: str = "lp",
    ) -> None:
        super().__init__(event_bus)
        self._strategy = strategy
        self._poll_interval = poll_interval
        self._request_timeout = request_timeout
        self._lp_command = lp_command
        self._session: Optional[aiohttp.ClientSession] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._content: str = ""

    async def load(self, url: str) -> None:
        """Fetch the page once; start polling if it is not ready yet."""
        self.url = url
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._request_timeout)
        )
        self._content = await self._fetch()

        if not self._check_ready(self._content):
            self._poll_task = asyncio.create_task(self._poll())

    async def _fetch(self) -> str:
        if self._session is None or self.url is None:
            raise LoadFailure("Sandbox has no page loaded")
        try:
            async with self._session.get(self.url) as response:
                if response.status >= 400:
                    raise LoadFailure(f"HTTP {response.status} {response.reason or ''}".strip())
                return await response.text()
        except aiohttp.ClientError as e:
            raise LoadFailure(str(e) or e.__class__.__name__) from e
        except asyncio.TimeoutError as e:
            raise LoadFailure(f"Timed out loading {self.url}") from e
        except (UnicodeDecodeError, LookupError) as e:
            raise LoadFailure(f"Undecodable response from {self.url}: {e}") from e

    def _check_ready(self, content: str) -> bool:
        if self._strategy == "marker":
            marker = find_ready_marker(content)
            if marker is None:
                return False
            self._signal_ready(kind=marker.kind, payload=marker.payload)
            return True

        if has_printable_container(content):
            self._signal_ready()
            return True
        return False

    async def _poll(self) -> None:
        """Re-fetch until ready, failed or closed."""
        while not self.is_destroyed:
            await asyncio.sleep(self._poll_interval)
            if self.is_destroyed:
                return
            try:
                self._content = await self._fetch()
            except LoadFailure as e:
                self._signal_load_failed(e.reason)
                return
            except Exception as e:
                logger.exception(f"Polling {self.url} failed")
                self._signal_load_failed(str(e) or e.__class__.__name__)
                return
            if self._check_ready(self._content):
                return

    async def capture_image(self) -> Optional[bytes]:
        """PNG text snapshot of the loaded page, or None if it has no text."""
        lines = page_text_lines(self._content)
        if not lines:
            return None
        return await asyncio.to_thread(render_text_image, lines)

    async def print_page(self, options: PrintOptions) -> PrintResult:
        """Submit the loaded page to CUPS with the given options."""
        if not self._content:
            return False, "Nothing loaded to print"
        if not options.silent:
            logger.info("Print dialog not available for HTTP sandbox, printing silently")

        fd, path = tempfile.mkstemp(prefix="billprint-", suffix=".html")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(self._content)

            try:
                process = await asyncio.create_subprocess_exec(
                    *self._lp_args(options, path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                return False, f"Print facility unavailable: {e}"

            try:
                stdout, stderr = await process.communicate()
            except asyncio.CancelledError:
                # Job was abandoned (timeout); do not leave lp running
                kill_process(process)
                raise

            if process.returncode != 0:
                reason = stderr.decode(errors="replace").strip() or f"lp exited with {process.returncode}"
                return False, reason

            logger.info(f"lp accepted job: {stdout.decode(errors='replace').strip()}")
            return True, None
        finally:
            os.unlink(path)

    def _lp_args(self, options: PrintOptions, path: str) -> List[str]:
        width_mm = options.page_width / 1000
        height_mm = options.page_height / 1000
        args = [self._lp_command]
        if options.device_name:
            args += ["-d", options.device_name]
        args += [
            "-o", f"media=Custom.{width_mm:g}x{height_mm:g}mm",
            "-o", f"scaling={round(options.scale_factor * 100)}",
        ]
        for side, margin in zip(("top", "bottom", "left", "right"), options.margins):
            args += ["-o", f"page-{side}={margin}"]
        args.append(path)
        return args

    async def _teardown(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        if self._session is not None:
            await self._session.close()
            self._session = None
