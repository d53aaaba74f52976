"""
A single print job: one receipt URL, one sandbox, one outcome.

The job drives its sandbox through load, readiness and delivery, and is
bounded by a hard timeout. Whatever happens, the sandbox is closed
exactly once and exactly one outcome is reported.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from billprint.config.store import PrintSettings
from billprint.core.events import Event, EventBus, EventType, print_status_event
from billprint.core.state import JobState, JobStateMachine
from billprint.errors import LoadFailure, PrintFailure, PrintPipelineError, ReadyTimeout
from billprint.pipeline.error_log import ErrorLog
from billprint.printing.delivery import Delivery, DeliveryRequest
from billprint.sandbox.base import RenderingSandbox
from billprint.sandbox.manager import SandboxManager

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Print job sent!"
CANCELLED_MESSAGE = "Print cancelled"

RECEIPT_KINDS = ("bill", "kot")


def receipt_kind(url: str) -> Optional[str]:
    """Return ``"bill"`` or ``"kot"`` for a receipt URL, else None."""
    path = urlparse(url).path
    for kind in RECEIPT_KINDS:
        if f"/{kind}/" in path:
            return kind
    return None


def document_id_from_url(url: str) -> str:
    """Last non-empty path segment of the URL (the order or bill id)."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    return segments[-1] if segments else "document"


class PrintJob:
    """
    One in-flight print job.

    Args:
        url: Receipt URL as the user navigated to it
        print_url: URL actually loaded in the sandbox
        sandbox: Fresh sandbox owned by this job
        manager: Sandbox manager used to close the sandbox
        delivery: Delivery strategy
        settings: Settings snapshot taken when the job was created
        event_bus: Bus carrying sandbox signals and status events
        error_log: Durable failure log
        job_timeout: Hard ceiling for the whole job, in seconds
        cleanup_delay: Pause before closing the sandbox after a successful print
        on_finished: Called once with the job after cleanup
    """

    def __init__(
        self,
        url: str,
        print_url: str,
        sandbox: RenderingSandbox,
        manager: SandboxManager,
        delivery: Delivery,
        settings: PrintSettings,
        event_bus: EventBus,
        error_log: ErrorLog,
        job_timeout: float = 20.0,
        cleanup_delay: float = 1.5,
        on_finished: Optional[Callable[["PrintJob"], None]] = None,
    ) -> None:
        self.url = url
        self.print_url = print_url
        self.kind = receipt_kind(url) or "bill"
        self.document_id = document_id_from_url(url)
        self.sandbox = sandbox
        self.settings = settings
        self.created_at = time.time()
        self.failure_reason: Optional[str] = None

        self._manager = manager
        self._delivery = delivery
        self._event_bus = event_bus
        self._error_log = error_log
        self._job_timeout = job_timeout
        self._cleanup_delay = cleanup_delay
        self._on_finished = on_finished

        self._machine = JobStateMachine(name=f"{self.kind}:{sandbox.id[:8]}")
        self._machine.add_listener(self._on_state_change)

        self._ready: Optional[asyncio.Future[Event]] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task[Any]] = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._cleaned_up = False

    @property
    def state(self) -> JobState:
        return self._machine.state

    @property
    def is_finished(self) -> bool:
        return self._cleaned_up

    async def run(self) -> JobState:
        """Drive the job to a terminal state and clean up.

        Returns:
            The terminal state
        """
        loop = asyncio.get_running_loop()
        self._task = asyncio.current_task()
        self._ready = loop.create_future()
        self._unsubscribers = [
            self._event_bus.subscribe(EventType.SANDBOX_READY, self._on_sandbox_ready),
            self._event_bus.subscribe(EventType.SANDBOX_LOAD_FAILED, self._on_sandbox_load_failed),
        ]
        self._timeout_handle = loop.call_later(self._job_timeout, self._on_timeout)

        try:
            await self._drive(self._ready)
        except PrintPipelineError as e:
            self._fail(e.reason)
        except asyncio.CancelledError:
            if self.state is not JobState.TIMED_OUT:
                # Cancelled from outside (shutdown)
                self._fail("shutdown", report=False)
                raise
        except Exception as e:
            logger.exception(f"Unexpected error in print job for {self.url}")
            self._fail(str(e) or e.__class__.__name__)
        finally:
            await self.cleanup(delay=self.state is JobState.COMPLETED)

        return self.state

    async def _drive(self, ready_future: "asyncio.Future[Event]") -> None:
        self._machine.transition(JobState.LOADING)
        logger.info(f"Loading {self.print_url} in sandbox {self.sandbox.id[:8]}")
        await self.sandbox.load(self.print_url)

        self._machine.transition(JobState.AWAITING_READY)
        ready = await ready_future

        self._machine.transition(JobState.PRINTING)
        request = DeliveryRequest(
            sandbox=self.sandbox,
            kind=ready.data.get("kind") or self.kind,
            document_id=self.document_id,
            payload=ready.data.get("payload"),
        )
        result = await self._delivery.deliver(request, self.settings)

        if result.success:
            self._complete()
        elif result.cancelled:
            self._cancelled()
        else:
            raise PrintFailure(result.reason or "unknown error")

    # Sandbox signals (filtered by sandbox id)

    def _on_sandbox_ready(self, event: Event) -> None:
        if event.data.get("sandbox_id") != self.sandbox.id:
            return
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(event)

    def _on_sandbox_load_failed(self, event: Event) -> None:
        if event.data.get("sandbox_id") != self.sandbox.id:
            return
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(LoadFailure(event.data.get("reason", "load failed")))

    # Outcomes

    def _complete(self) -> None:
        if self._machine.is_terminal or not self._machine.transition(JobState.COMPLETED):
            return
        logger.info(f"Print job sent for {self.url}")
        self._event_bus.emit(print_status_event(True, SUCCESS_MESSAGE))

    def _cancelled(self) -> None:
        if self._machine.is_terminal or not self._machine.transition(JobState.FAILED):
            return
        self.failure_reason = "cancelled"
        logger.info(f"Print cancelled for {self.url}")
        self._event_bus.emit(print_status_event(False, CANCELLED_MESSAGE))

    def _fail(self, reason: str, report: bool = True) -> None:
        if self._machine.is_terminal or not self._machine.transition(JobState.FAILED):
            return
        self.failure_reason = reason
        if not report:
            logger.info(f"Print job for {self.url} stopped: {reason}")
            return
        logger.error(f"Print failed for {self.url}: {reason}")
        self._error_log.record(f"Print failed for {self.url}: {reason}")
        self._event_bus.emit(print_status_event(False, f"Print failed: {reason}"))

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self._machine.is_terminal or not self._machine.transition(JobState.TIMED_OUT):
            return

        error = ReadyTimeout(
            f"Print job for {self.print_url} timed out after {self._job_timeout:g} seconds."
        )
        self.failure_reason = error.reason
        logger.error(error.reason)
        self._error_log.record(error.reason)
        self._event_bus.emit(Event(
            EventType.PRINT_TIMEOUT,
            data={"url": self.url, "timeout": self._job_timeout},
            source="print_job",
        ))

        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _on_state_change(self, old: JobState, new: JobState) -> None:
        if new.is_terminal:
            self._cancel_timer()
        self._event_bus.emit(Event(
            EventType.JOB_STATE_CHANGED,
            data={"url": self.url, "sandbox_id": self.sandbox.id, "from": old.name, "to": new.name},
            source="print_job",
        ))

    def _cancel_timer(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    async def cleanup(self, delay: bool = False) -> None:
        """Release everything the job holds. Safe to call more than once."""
        if self._cleaned_up:
            return
        self._cleaned_up = True

        self._cancel_timer()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self._ready is not None:
            if not self._ready.done():
                self._ready.cancel()
            elif not self._ready.cancelled():
                self._ready.exception()  # mark a late load failure as retrieved

        try:
            if delay and self._cleanup_delay > 0:
                await asyncio.sleep(self._cleanup_delay)
        finally:
            await self._manager.destroy(self.sandbox)
            if self._on_finished is not None:
                try:
                    self._on_finished(self)
                except Exception as e:
                    logger.error(f"Error in job finished callback: {e}")
