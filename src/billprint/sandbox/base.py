"""
Abstract base class for rendering sandboxes.

A sandbox is an isolated, invisible surface that loads one receipt URL.
It reports readiness and late load failures as events on the bus,
tagged with its own id so concurrent jobs never mix up signals.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from billprint.core.events import EventBus, sandbox_load_failed_event, sandbox_ready_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrintOptions:
    """Options for the host's native print facility.

    Page size is in micrometres.
    """

    silent: bool
    page_width: int
    page_height: int
    scale_factor: float = 1.0
    print_background: bool = False
    margins: Tuple[int, int, int, int] = (0, 0, 0, 0)  # top, bottom, left, right
    device_name: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "silent": self.silent,
            "printBackground": self.print_background,
            "pageSize": {"width": self.page_width, "height": self.page_height},
            "margins": dict(zip(("top", "bottom", "left", "right"), self.margins)),
            "scaleFactor": self.scale_factor,
        }
        if self.device_name:
            options["deviceName"] = self.device_name
        return options


# (success, failure reason)
PrintResult = Tuple[bool, Optional[str]]


class RenderingSandbox(ABC):
    """Abstract base class for rendering sandboxes."""

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus
        self._id = uuid.uuid4().hex
        self._destroyed = False
        self._ready_sent = False
        self.url: Optional[str] = None

    @property
    def id(self) -> str:
        """Opaque identity token used to correlate signals."""
        return self._id

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @abstractmethod
    async def load(self, url: str) -> None:
        """
        Navigate to the URL.

        Raises:
            LoadFailure: If navigation fails
        """
        ...

    @abstractmethod
    async def print_page(self, options: PrintOptions) -> PrintResult:
        """Rasterize the loaded page through the host print facility."""
        ...

    async def capture_image(self) -> Optional[bytes]:
        """Capture the rendered page as image bytes, if supported."""
        return None

    async def close(self) -> None:
        """Tear the sandbox down. Only the first call does anything."""
        if self._destroyed:
            return
        self._destroyed = True
        try:
            await self._teardown()
        finally:
            logger.debug(f"Sandbox {self._id[:8]} destroyed")

    @abstractmethod
    async def _teardown(self) -> None:
        """Release the underlying resources."""
        ...

    def _signal_ready(self, kind: Optional[str] = None, payload: Any = None) -> None:
        """Emit the readiness signal (at most once)."""
        if self._destroyed or self._ready_sent:
            return
        self._ready_sent = True
        logger.info(f"Sandbox {self._id[:8]} content ready ({kind or 'handshake'})")
        self._event_bus.emit(sandbox_ready_event(self._id, kind=kind, payload=payload))

    def _signal_load_failed(self, reason: str) -> None:
        if self._destroyed:
            return
        logger.warning(f"Sandbox {self._id[:8]} load failed: {reason}")
        self._event_bus.emit(sandbox_load_failed_event(self._id, reason))
