"""Printing module for billprint - ESC/POS receipts and delivery."""

from billprint.printing.document import BillDocument, OrderDocument, parse_document
from billprint.printing.layout import LayoutEngine, ReceiptLayout, TextBlock
from billprint.printing.receipt import Receipt, ReceiptEncoder, encode_document
from billprint.printing.bridge import SpoolingBridge
from billprint.printing.delivery import (
    Delivery,
    DeliveryRequest,
    DeliveryResult,
    NativePrintDelivery,
    RawSpoolDelivery,
)

__all__ = [
    # Documents
    "BillDocument",
    "OrderDocument",
    "parse_document",
    # Receipt
    "Receipt",
    "ReceiptEncoder",
    "encode_document",
    # Layout
    "LayoutEngine",
    "ReceiptLayout",
    "TextBlock",
    # Delivery
    "SpoolingBridge",
    "Delivery",
    "DeliveryRequest",
    "DeliveryResult",
    "NativePrintDelivery",
    "RawSpoolDelivery",
]
