"""Delivery strategies: how a ready page becomes paper.

- NativePrintDelivery: the sandbox rasterizes the page through the host
  print facility using the physical print settings.
- RawSpoolDelivery: the page's document payload (or a captured image of
  the page) is encoded to ESC/POS and written straight to the printer
  spool by the bridge.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from billprint.config.store import PrintSettings
from billprint.errors import EncodeFailure
from billprint.printing.bridge import SpoolingBridge, artifact_path, write_artifact
from billprint.printing.document import parse_document
from billprint.printing.receipt import ReceiptEncoder
from billprint.sandbox.base import PrintOptions, RenderingSandbox

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


@dataclass(frozen=True)
class DeliveryRequest:
    """What the orchestrator hands to a delivery strategy."""

    sandbox: RenderingSandbox
    kind: str
    document_id: str
    payload: Any = None  # document JSON from a ready marker, if any


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome reported by the printing facility."""

    success: bool
    reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return not self.success and self.reason == CANCELLED


def build_print_options(settings: PrintSettings) -> PrintOptions:
    """Translate print settings (mm) to native options (micrometres)."""
    return PrintOptions(
        silent=settings.silent_printing,
        page_width=round(settings.width * 1000),
        page_height=round(settings.height * 1000),
        scale_factor=settings.scale_factor,
        print_background=False,
        margins=(0, 0, 0, 0),
        device_name=settings.device_name,
    )


class Delivery(ABC):
    """Abstract base class for delivery strategies."""

    @abstractmethod
    async def deliver(self, request: DeliveryRequest, settings: PrintSettings) -> DeliveryResult:
        """
        Print the ready page.

        Returns:
            Result reported by the facility

        Raises:
            PrintPipelineError: For encode, bridge or facility errors
        """
        ...


class NativePrintDelivery(Delivery):
    """Rasterized print through the sandbox's native print facility."""

    async def deliver(self, request: DeliveryRequest, settings: PrintSettings) -> DeliveryResult:
        options = build_print_options(settings)
        logger.info(f"Native print of {request.kind} {request.document_id}: {options.as_dict()}")

        success, reason = await request.sandbox.print_page(options)
        if success:
            return DeliveryResult(success=True)
        return DeliveryResult(success=False, reason=reason or "unknown error")


class RawSpoolDelivery(Delivery):
    """ESC/POS encode (or captured image) and raw spool via the bridge."""

    def __init__(
        self,
        bridge: SpoolingBridge,
        artifact_dir: Union[str, Path],
        encoder: Optional[ReceiptEncoder] = None,
    ) -> None:
        self._bridge = bridge
        self._artifact_dir = Path(artifact_dir)
        self._encoder = encoder or ReceiptEncoder()

    async def deliver(self, request: DeliveryRequest, settings: PrintSettings) -> DeliveryResult:
        if request.payload is not None:
            path = self._write_encoded(request)
        else:
            path = await self._write_capture(request)

        output = await self._bridge.send(path)
        logger.info(f"Bridge result for {path.name}: {output}")
        return DeliveryResult(success=True)

    def _write_encoded(self, request: DeliveryRequest) -> Path:
        document = parse_document(request.kind, request.payload)
        receipt = self._encoder.encode(document)
        logger.debug(f"Receipt preview:\n{receipt.preview}")
        path = artifact_path(self._artifact_dir, receipt.kind, receipt.document_id, ".bin")
        return write_artifact(path, receipt.raw_commands)

    async def _write_capture(self, request: DeliveryRequest) -> Path:
        image = await request.sandbox.capture_image()
        if not image:
            raise EncodeFailure("Page produced neither a document payload nor an image")
        # Dithering a full page is CPU bound
        receipt = await asyncio.to_thread(
            self._encoder.encode_image, request.kind, request.document_id, image
        )
        path = artifact_path(self._artifact_dir, receipt.kind, receipt.document_id, ".bin")
        return write_artifact(path, receipt.raw_commands)
