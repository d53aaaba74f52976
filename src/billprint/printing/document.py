"""Typed order ticket (KOT) and bill documents.

Documents arrive as JSON emitted by the receipt page. They are decoded
into frozen models here and never modified afterwards; the encoder only
reads them.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from billprint.errors import EncodeFailure

logger = logging.getLogger(__name__)

Quantity = Union[int, float]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null means "not given": fall back to the field default
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class OrderItem(_Frozen):
    name: str = ""
    quantity: Quantity = 1
    notes: Optional[str] = None


class BillItem(_Frozen):
    name: str = ""
    quantity: Quantity = 1
    price: float = 0.0


class ExtraCharge(_Frozen):
    name: str = ""
    price: float = 0.0


class Calculations(_Frozen):
    subtotal: float = 0.0
    gst_percentage: float = 0.0
    gst_amount: float = 0.0
    grand_total: float = 0.0


class DeliveryLocation(_Frozen):
    google_maps_link: Optional[str] = None


class OrderDocument(_Frozen):
    """Kitchen order ticket."""

    kind: Literal["kot"] = "kot"
    id: str
    display_id: Optional[str] = None
    type: str = ""
    created_at: Optional[str] = None
    notes: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)

    @property
    def reference(self) -> str:
        """Human-facing order number."""
        return self.display_id or self.id


class BillDocument(_Frozen):
    """Customer-facing bill."""

    kind: Literal["bill"] = "bill"
    id: str
    display_id: Optional[str] = None
    type: str = ""
    created_at: Optional[str] = None
    notes: Optional[str] = None

    store_name: str = ""
    address: Optional[str] = None
    phone: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None

    order_items: List[BillItem] = Field(default_factory=list)
    extra_charges: List[ExtraCharge] = Field(default_factory=list)
    calculations: Optional[Calculations] = None

    currency: str = ""
    country: str = ""
    payment_upi_string: Optional[str] = None
    delivery_location: Optional[DeliveryLocation] = None
    gst_no: Optional[str] = None
    fssai_licence_no: Optional[str] = None
    show_powered_by_cravings: bool = False

    @property
    def reference(self) -> str:
        return self.display_id or self.id


Document = Union[OrderDocument, BillDocument]

_KIND_ALIASES = {
    "kot": "kot",
    "order": "kot",
    "bill": "bill",
}


def normalize_kind(kind: Optional[str]) -> str:
    """Map a document kind (or alias) to ``"kot"`` or ``"bill"``.

    Raises:
        EncodeFailure: For unknown kinds
    """
    normalized = _KIND_ALIASES.get((kind or "").strip().lower())
    if normalized is None:
        raise EncodeFailure(f"Unknown document kind: {kind!r}")
    return normalized


def parse_document(kind: Optional[str], payload: Any) -> Document:
    """Decode a ready payload into a document.

    Args:
        kind: ``"kot"``/``"order"`` or ``"bill"``
        payload: JSON text or an already-decoded dict

    Returns:
        OrderDocument or BillDocument

    Raises:
        EncodeFailure: If the payload is not a valid document
    """
    normalized = normalize_kind(kind)

    if isinstance(payload, (str, bytes, bytearray)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise EncodeFailure(f"Malformed {normalized} payload: {e}") from e

    if not isinstance(payload, dict):
        raise EncodeFailure(
            f"Expected a JSON object for {normalized}, got {type(payload).__name__}"
        )

    data = dict(payload)
    data["kind"] = normalized
    model = OrderDocument if normalized == "kot" else BillDocument

    try:
        document = model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) for err in e.errors()
        )
        raise EncodeFailure(f"Invalid {normalized} document ({fields})") from e

    logger.debug(f"Decoded {normalized} document {document.id}")
    return document
