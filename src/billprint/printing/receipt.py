"""Receipt encoder for order tickets and bills.

Turns a decoded document into a receipt layout and renders it to an
ESC/POS byte stream:
- Header (store or ticket title)
- Order metadata and notes
- Items, extra charges and totals (bills)
- Footer with tax ids and QR codes (bills)
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from billprint.printing.document import BillDocument, Document, OrderDocument
from billprint.printing.escpos import (
    Alignment,
    format_amount,
    format_money,
    format_quantity,
)
from billprint.printing.layout import LayoutEngine, ReceiptLayout

logger = logging.getLogger(__name__)

UAE = "United Arab Emirates"


@dataclass
class Receipt:
    """An encoded receipt ready for spooling."""

    kind: str
    document_id: str
    layout: ReceiptLayout
    raw_commands: bytes
    preview: str


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)


def _format_timestamp(value: Optional[str]) -> str:
    """Format an ISO timestamp for the ticket, keeping unparsable input."""
    if not value:
        return ""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.strftime("%d/%m/%Y %I:%M %p")


class ReceiptEncoder:
    """Encoder for order tickets (KOT) and bills.

    Pure: the same document always produces the same bytes.
    """

    def __init__(self, engine: Optional[LayoutEngine] = None):
        self._layout_engine = engine or LayoutEngine()

    def encode(self, document: Document) -> Receipt:
        """Encode a document.

        Args:
            document: Decoded order ticket or bill

        Returns:
            Receipt with the ESC/POS bytes and a text preview
        """
        if isinstance(document, BillDocument):
            layout = self._create_bill_receipt(document)
        else:
            layout = self._create_order_receipt(document)

        raw_commands = self._layout_engine.render(layout)
        preview = self._layout_engine.preview_text(layout)

        logger.debug(f"Encoded {document.kind} {document.id}: {len(raw_commands)} bytes")
        return Receipt(
            kind=document.kind,
            document_id=document.id,
            layout=layout,
            raw_commands=raw_commands,
            preview=preview,
        )

    def encode_image(self, kind: str, document_id: str, image_data: bytes) -> Receipt:
        """Encode a captured page image as a raster receipt.

        Raises:
            EncodeFailure: If the image cannot be decoded
        """
        layout = ReceiptLayout().add_image(image_data)
        raw_commands = self._layout_engine.render(layout)

        logger.debug(f"Encoded {kind} {document_id} image: {len(raw_commands)} bytes")
        return Receipt(
            kind=kind,
            document_id=document_id,
            layout=layout,
            raw_commands=raw_commands,
            preview=self._layout_engine.preview_text(layout),
        )

    def _add_left(self, layout: ReceiptLayout, text: str, bold: bool = False) -> None:
        layout.add_text(text, alignment=Alignment.LEFT, bold=bold)

    def _add_kv(self, layout: ReceiptLayout, label: str, value: Any) -> None:
        if value:
            self._add_left(layout, f"{label}: {value}")

    def _add_notes(self, layout: ReceiptLayout, notes: Optional[str]) -> None:
        if notes:
            layout.add_space(1)
            self._add_left(layout, "Notes:", bold=True)
            self._add_left(layout, notes)

    def _create_header(self, layout: ReceiptLayout, title: str) -> None:
        layout.add_text(title, bold=True)
        layout.add_separator()

    def _create_order_receipt(self, document: OrderDocument) -> ReceiptLayout:
        """Kitchen order ticket: what to cook, no prices."""
        layout = ReceiptLayout()
        self._create_header(layout, "KITCHEN ORDER TICKET")

        self._add_kv(layout, "Order", f"#{document.reference}")
        self._add_kv(layout, "Date", _format_timestamp(document.created_at))
        self._add_kv(layout, "Type", document.type)
        self._add_notes(layout, document.notes)
        layout.add_separator()

        for item in document.items:
            self._add_left(layout, f"{format_quantity(item.quantity)} x {item.name}", bold=True)
            if item.notes:
                self._add_left(layout, f"   Note: {item.notes}")
            layout.add_space(1)

        layout.add_separator()
        return layout

    def _create_bill_receipt(self, document: BillDocument) -> ReceiptLayout:
        """Customer bill with prices, taxes and payment QR."""
        layout = ReceiptLayout()
        self._create_header(layout, document.store_name or "BILL")

        if document.address:
            layout.add_text(document.address)
        if document.phone:
            layout.add_text(f"Ph: {document.phone}")

        self._add_kv(layout, "Bill No", f"#{document.reference}")
        self._add_kv(layout, "Date", _format_timestamp(document.created_at))
        self._add_kv(layout, "Type", document.type)
        self._add_kv(layout, "Customer", document.customer_name)
        self._add_kv(layout, "Phone", document.customer_phone)
        self._add_kv(layout, "Address", document.delivery_address)
        self._add_notes(layout, document.notes)
        layout.add_separator()

        for item in document.order_items:
            line_total = _decimal(item.quantity) * _decimal(item.price)
            layout.add_pair(
                f"{format_quantity(item.quantity)} x {item.name}",
                format_amount(line_total),
            )

        if document.extra_charges:
            layout.add_separator()
            for charge in document.extra_charges:
                layout.add_pair(charge.name, format_amount(charge.price))

        calculations = document.calculations
        if calculations is not None:
            layout.add_separator()
            self._create_totals(layout, document)

        layout.add_separator()
        self._create_bill_footer(layout, document)
        return layout

    def _create_totals(self, layout: ReceiptLayout, document: BillDocument) -> None:
        calc = document.calculations
        currency = document.currency

        layout.add_pair("Subtotal:", format_money(currency, calc.subtotal))

        if calc.gst_percentage or calc.gst_amount:
            label = "VAT" if document.country == UAE else "GST"
            layout.add_pair(
                f"{label} ({calc.gst_percentage:g}%):",
                format_money(currency, calc.gst_amount),
            )

        layout.add_pair("TOTAL:", format_money(currency, calc.grand_total), bold=True)

    def _create_bill_footer(self, layout: ReceiptLayout, document: BillDocument) -> None:
        layout.add_space(1)
        layout.add_text("Thank you! Visit again.")

        if document.gst_no:
            label = "TRN" if document.country == UAE else "GSTIN"
            layout.add_text(f"{label}: {document.gst_no}")
        if document.fssai_licence_no:
            layout.add_text(f"FSSAI Lic. No: {document.fssai_licence_no}")

        location = document.delivery_location
        if location is not None and location.google_maps_link:
            layout.add_space(1)
            layout.add_text("Scan for location")
            layout.add_qr(location.google_maps_link)

        if document.payment_upi_string:
            layout.add_space(1)
            layout.add_text("Scan to pay")
            layout.add_qr(document.payment_upi_string)
            if document.calculations is not None:
                layout.add_text(
                    format_money(document.currency, document.calculations.grand_total),
                    bold=True,
                )

        if document.show_powered_by_cravings:
            layout.add_space(1)
            layout.add_text("Powered by Cravings")


_default_encoder = ReceiptEncoder()


def encode_document(document: Document) -> bytes:
    """Encode a document to ESC/POS bytes."""
    return _default_encoder.encode(document).raw_commands
