"""Content-ready detection for receipt pages.

Two strategies are supported:

- handshake: the page is ready once the printable container element
  (``id="printable-content"``) is present.
- marker: the page emits a diagnostic line containing a marker
  immediately followed by the document JSON, e.g. ``BILL_PRINT_DATA:{"id": ...}``.
"""

import json
import re
from dataclasses import dataclass
from typing import Optional

PRINTABLE_CONTAINER_ID = "printable-content"

KOT_MARKER = "KOT_PRINT_DATA:"
BILL_MARKER = "BILL_PRINT_DATA:"

READY_MARKERS = {
    KOT_MARKER: "kot",
    BILL_MARKER: "bill",
}

_JSON = json.JSONDecoder()

_CONTAINER_RE = re.compile(
    r"""\bid\s*=\s*["']?""" + re.escape(PRINTABLE_CONTAINER_ID) + r"""["'\s>]"""
)


@dataclass(frozen=True)
class ReadyMarker:
    """A matched marker line: document kind and the raw JSON text."""

    kind: str
    payload: str


def match_ready_marker(line: str) -> Optional[ReadyMarker]:
    """Match one diagnostic line against the ready markers.

    The marker may sit anywhere on the line, e.g. inside an inline
    ``console.log('BILL_PRINT_DATA:{...}')``. When a JSON value follows
    it, the payload is exactly that JSON text; otherwise it is the rest
    of the line.
    """
    if not line:
        return None
    found = [(line.find(prefix), prefix) for prefix in READY_MARKERS]
    found = [(index, prefix) for index, prefix in found if index >= 0]
    if not found:
        return None

    index, prefix = min(found)
    rest = line[index + len(prefix):].strip()
    try:
        _, end = _JSON.raw_decode(rest)
    except ValueError:
        return ReadyMarker(kind=READY_MARKERS[prefix], payload=rest)
    return ReadyMarker(kind=READY_MARKERS[prefix], payload=rest[:end])


def find_ready_marker(text: str) -> Optional[ReadyMarker]:
    """First marker line in a block of text, if any."""
    for line in (text or "").splitlines():
        marker = match_ready_marker(line)
        if marker is not None:
            return marker
    return None


def has_printable_container(html: str) -> bool:
    """True once the printable container element is in the markup."""
    return bool(html) and _CONTAINER_RE.search(html) is not None
