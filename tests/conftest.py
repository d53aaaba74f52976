"""Shared fixtures: an in-memory sandbox and a wired-up pipeline."""

import asyncio
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

from billprint.config.store import PrintSettingsStore
from billprint.core.events import EventBus, EventType
from billprint.errors import LoadFailure
from billprint.pipeline.error_log import ErrorLog
from billprint.pipeline.orchestrator import PrintJobOrchestrator
from billprint.printing.delivery import Delivery, NativePrintDelivery
from billprint.sandbox.base import PrintOptions, PrintResult, RenderingSandbox
from billprint.sandbox.manager import SandboxManager


class FakeSandbox(RenderingSandbox):
    """Sandbox that loads nothing and prints into a list."""

    def __init__(
        self,
        event_bus: EventBus,
        ready_on_load: bool = True,
        fail_load: Optional[str] = None,
        kind: Optional[str] = None,
        payload: Any = None,
        print_result: PrintResult = (True, None),
        print_delay: float = 0.0,
        image: Optional[bytes] = None,
    ) -> None:
        super().__init__(event_bus)
        self.ready_on_load = ready_on_load
        self.fail_load = fail_load
        self.kind = kind
        self.payload = payload
        self.print_result = print_result
        self.print_delay = print_delay
        self.image = image
        self.loaded_urls: List[str] = []
        self.print_calls: List[PrintOptions] = []
        self.teardown_count = 0

    async def load(self, url: str) -> None:
        self.url = url
        self.loaded_urls.append(url)
        if self.fail_load:
            raise LoadFailure(self.fail_load)
        if self.ready_on_load:
            self.fire_ready()

    def fire_ready(self) -> None:
        self._signal_ready(kind=self.kind, payload=self.payload)

    def fire_load_failed(self, reason: str) -> None:
        self._signal_load_failed(reason)

    async def print_page(self, options: PrintOptions) -> PrintResult:
        self.print_calls.append(options)
        if self.print_delay:
            await asyncio.sleep(self.print_delay)
        return self.print_result

    async def capture_image(self) -> Optional[bytes]:
        return self.image

    async def _teardown(self) -> None:
        self.teardown_count += 1


def status_messages(bus: EventBus) -> List[dict]:
    return [e.data for e in bus.get_history(EventType.PRINT_STATUS, limit=100)]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def make_pipeline(tmp_path):
    """Factory for an orchestrator wired to fake sandboxes.

    Sandbox options passed as keyword arguments apply to every sandbox
    the factory creates.
    """

    def _make(
        delivery: Optional[Delivery] = None,
        job_timeout: float = 5.0,
        cleanup_delay: float = 0.0,
        width_hint: Optional[int] = None,
        **sandbox_options: Any,
    ) -> SimpleNamespace:
        bus = EventBus()
        sandboxes: List[FakeSandbox] = []

        def factory(event_bus: EventBus) -> FakeSandbox:
            sandbox = FakeSandbox(event_bus, **sandbox_options)
            sandboxes.append(sandbox)
            return sandbox

        manager = SandboxManager(bus, factory)
        store = PrintSettingsStore(tmp_path / "print-settings.json")
        error_log = ErrorLog(tmp_path / "billprint-log.txt")
        orchestrator = PrintJobOrchestrator(
            event_bus=bus,
            sandbox_manager=manager,
            delivery=delivery or NativePrintDelivery(),
            settings_store=store,
            error_log=error_log,
            job_timeout=job_timeout,
            cleanup_delay=cleanup_delay,
            width_hint=width_hint,
        )
        return SimpleNamespace(
            bus=bus,
            manager=manager,
            store=store,
            error_log=error_log,
            orchestrator=orchestrator,
            sandboxes=sandboxes,
        )

    return _make
