"""ESC/POS command builders and text helpers.

Each builder returns an immutable ``bytes`` slice; the layout engine
concatenates them. Text is always sanitized to plain printable ASCII
before it is encoded, so the only other bytes in a receipt come from
the framed binary commands below.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, List

# Receipt printer font A on 80mm paper
LINE_WIDTH = 48

# Printable dots per line on 80mm paper at 203 dpi
RASTER_WIDTH = 576

ESC = b'\x1b'
GS = b'\x1d'
LF = b'\x0a'

# Currency glyphs the printer code page cannot show
CURRENCY_CODES = {
    "₹": "Rs.",  # Indian rupee
    "€": "EUR",
    "£": "GBP",
    "$": "USD",
}

# Line breaks and tabs become spaces; every other control byte is dropped
_CONTROL_CHARS = {code: None for code in [*range(0x20), 0x7F]}
_CONTROL_CHARS.update({ord("\t"): " ", ord("\r"): " ", ord("\n"): " "})

QR_MODULE_SIZE = 6
QR_ERROR_LEVEL_M = 0x31


class Alignment(Enum):
    """Text alignment options."""

    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


def init() -> bytes:
    """ESC @ - reset formatting to power-on defaults."""
    return ESC + b'@'


def align(alignment: Alignment) -> bytes:
    """ESC a n - set justification."""
    align_byte = {
        Alignment.LEFT: b'\x00',
        Alignment.CENTER: b'\x01',
        Alignment.RIGHT: b'\x02',
    }
    return ESC + b'a' + align_byte.get(alignment, b'\x00')


def bold(enabled: bool) -> bytes:
    """ESC E n - emphasized mode."""
    return ESC + b'E' + (b'\x01' if enabled else b'\x00')


def feed(lines: int = 1) -> bytes:
    """ESC d n - print and feed n lines."""
    lines = max(0, min(int(lines), 255))
    return ESC + b'd' + bytes([lines])


def cut(full: bool = True) -> bytes:
    """GS V m - cut paper (m = 0 full, 1 partial)."""
    return GS + b'V' + (b'\x00' if full else b'\x01')


def raster_image(width_bytes: int, height: int, data: bytes) -> bytes:
    """GS v 0 - print a raster bit image.

    Args:
        width_bytes: Bytes per row (8 dots each)
        height: Rows in dots
        data: Packed rows, most significant bit first, 1 = black
    """
    if len(data) != width_bytes * height:
        raise ValueError(f"Raster data is {len(data)} bytes, expected {width_bytes * height}")
    if not (0 < width_bytes <= 0xFFFF and 0 < height <= 0xFFFF):
        raise ValueError(f"Raster size out of range: {width_bytes}x{height}")
    return b''.join([
        GS + b'v0',
        b'\x00',  # m = normal density
        bytes([width_bytes & 0xFF, width_bytes >> 8]),
        bytes([height & 0xFF, height >> 8]),
        data,
    ])


# QR code (GS ( k, cn = 49)

def _qr_function(params: bytes) -> bytes:
    return GS + b'(k' + qr_length_prefix(len(params) - 3) + params


def qr_length_prefix(length: int) -> bytes:
    """pL pH for a QR store command carrying ``length`` data bytes.

    The count covers the three function bytes (cn, fn, m) plus the data.
    """
    total = length + 3
    return bytes([total % 256, total // 256])


def qr_module_size(size: int = QR_MODULE_SIZE) -> bytes:
    """Function 167: module size in dots (1-16)."""
    size = max(1, min(int(size), 16))
    return _qr_function(b'1C' + bytes([size]))


def qr_error_correction(level: int = QR_ERROR_LEVEL_M) -> bytes:
    """Function 169: error correction level (0x30 L .. 0x33 H)."""
    return _qr_function(b'1E' + bytes([level]))


def qr_store(data: bytes) -> bytes:
    """Function 180: store symbol data in the printer buffer."""
    return GS + b'(k' + qr_length_prefix(len(data)) + b'1P0' + data


def qr_print() -> bytes:
    """Function 181: print the stored symbol."""
    return _qr_function(b'1Q0')


def qr_block(payload: str, size: int = QR_MODULE_SIZE) -> bytes:
    """Full QR sequence: size, error level, store, print."""
    data = encode_text(payload)
    if len(data) + 3 > 0xFFFF:
        raise ValueError(f"QR payload too long: {len(data)} bytes")
    return b''.join([
        qr_module_size(size),
        qr_error_correction(),
        qr_store(data),
        qr_print(),
    ])


# Text helpers

def sanitize_text(value: Any) -> str:
    """Make a user-supplied value safe for the printer.

    Currency glyphs become ASCII codes and everything else outside ASCII
    is dropped. Control bytes are removed so page data cannot smuggle
    printer commands in; tabs and line breaks become spaces, keeping one
    value on one printed line. None becomes an empty string.
    """
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    for glyph, code in CURRENCY_CODES.items():
        text = text.replace(glyph, code)
    text = text.encode("ascii", errors="ignore").decode("ascii")
    return text.translate(_CONTROL_CHARS)


def encode_text(text: Any) -> bytes:
    """Sanitize and encode text as strict single-byte ASCII."""
    return sanitize_text(text).encode("ascii")


def format_amount(value: Any) -> str:
    """Two decimals, rounding half away from zero."""
    try:
        amount = Decimal(str(value if value is not None else 0))
    except InvalidOperation:
        amount = Decimal(0)
    if not amount.is_finite():
        amount = Decimal(0)
    return f"{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):.2f}"


def format_money(currency: Any, value: Any) -> str:
    """Amount prefixed with the sanitized currency, e.g. ``Rs. 40.00``."""
    code = sanitize_text(currency).strip()
    amount = format_amount(value)
    return f"{code} {amount}" if code else amount


def format_quantity(quantity: Any) -> str:
    if isinstance(quantity, float) and quantity.is_integer():
        return str(int(quantity))
    return sanitize_text(quantity)


def pair_line(left: str, right: str, width: int = LINE_WIDTH) -> List[str]:
    """Left label and right value on one line padded to ``width``.

    When both do not fit with at least one space between them, the label
    gets its own line and the value is right-justified on the next.
    Nothing is truncated.
    """
    left = sanitize_text(left)
    right = sanitize_text(right)
    if len(left) + len(right) >= width:
        return [left, right.rjust(width)]
    return [left + " " * (width - len(left) - len(right)) + right]
