"""Print job orchestrator: turns intercepted receipt URLs into print jobs."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set
from urllib.parse import urlparse

from billprint.config.store import PrintSettingsStore
from billprint.core.events import EventBus, print_status_event
from billprint.pipeline.error_log import ErrorLog
from billprint.pipeline.job import PrintJob, receipt_kind
from billprint.printing.delivery import Delivery
from billprint.sandbox.manager import SandboxManager

logger = logging.getLogger(__name__)


def is_receipt_url(url: str) -> bool:
    """True if navigating to the URL should print instead of open a window."""
    return receipt_kind(url) is not None


def build_print_url(url: str, width_hint: Optional[int] = None) -> str:
    """URL loaded in the sandbox: the page is told not to open its own print UI."""
    separator = "&" if urlparse(url).query else "?"
    print_url = f"{url}{separator}print=false"
    if width_hint:
        print_url += f"&width={width_hint}"
    return print_url


class PrintJobOrchestrator:
    """Runs one independent print job per intercepted receipt URL.

    Jobs run concurrently on the event loop. Each has its own sandbox,
    timer and settings snapshot, and removes itself from the active set
    once it has cleaned up.
    """

    def __init__(
        self,
        event_bus: EventBus,
        sandbox_manager: SandboxManager,
        delivery: Delivery,
        settings_store: PrintSettingsStore,
        error_log: ErrorLog,
        job_timeout: float = 20.0,
        cleanup_delay: float = 1.5,
        width_hint: Optional[int] = None,
    ) -> None:
        self._event_bus = event_bus
        self._sandboxes = sandbox_manager
        self._delivery = delivery
        self._settings = settings_store
        self._error_log = error_log
        self._job_timeout = job_timeout
        self._cleanup_delay = cleanup_delay
        self._width_hint = width_hint
        self._jobs: Dict[str, PrintJob] = {}
        self._tasks: Set[asyncio.Task[object]] = set()

    @property
    def active_jobs(self) -> List[PrintJob]:
        return list(self._jobs.values())

    def handle_navigation(self, url: str) -> bool:
        """Navigation intercept.

        Returns:
            True if the navigation was diverted into a print job (the
            caller must not open a window), False to let it through
        """
        if not is_receipt_url(url):
            return False
        self.start_job(url)
        return True

    def start_job(self, url: str) -> Optional[PrintJob]:
        """Create a job for a receipt URL and schedule it on the loop.

        Returns:
            The job, or None if no sandbox could be created for it
        """
        settings = self._settings.current
        try:
            sandbox = self._sandboxes.create()
        except Exception as e:
            logger.error(f"Could not create sandbox for {url}: {e}")
            self._error_log.record(f"Print failed for {url}: {e}")
            self._event_bus.emit(print_status_event(False, f"Print failed: {e}"))
            return None

        job = PrintJob(
            url=url,
            print_url=build_print_url(url, self._width_hint),
            sandbox=sandbox,
            manager=self._sandboxes,
            delivery=self._delivery,
            settings=settings,
            event_bus=self._event_bus,
            error_log=self._error_log,
            job_timeout=self._job_timeout,
            cleanup_delay=self._cleanup_delay,
            on_finished=self._release,
        )
        self._jobs[sandbox.id] = job

        task = asyncio.create_task(job.run(), name=f"print-job-{sandbox.id[:8]}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Started {job.kind} print job for {url}")
        return job

    def _release(self, job: PrintJob) -> None:
        self._jobs.pop(job.sandbox.id, None)
        logger.debug(f"Job for {job.url} released ({len(self._jobs)} active)")

    async def wait_idle(self) -> None:
        """Wait until every scheduled job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop every running job and close all sandboxes."""
        if self._tasks:
            logger.info(f"Shutting down {len(self._tasks)} print job(s)")
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()

        for job in self.active_jobs:
            await job.cleanup()
        await self._sandboxes.close_all()
