"""Text snapshots of loaded receipt pages.

The HTTP sandbox has no browser engine, so its page capture is the text
of the printable container (or of the whole body when the page has no
container) drawn line by line onto a white canvas one receipt wide.
"""

import logging
from html.parser import HTMLParser
from io import BytesIO
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from billprint.sandbox.signals import PRINTABLE_CONTAINER_ID

logger = logging.getLogger(__name__)

CANVAS_WIDTH = 576  # dots on 80mm paper
MARGIN = 8
FONT_SIZE = 22
LINE_SPACING = 6

FONT_PATHS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
    "/System/Library/Fonts/Menlo.ttc",
    "C:\\Windows\\Fonts\\consola.ttf",
]

# Tags that end the current printed line
BLOCK_TAGS = frozenset({
    "address", "article", "br", "dd", "div", "dl", "dt", "footer", "h1", "h2",
    "h3", "h4", "h5", "h6", "header", "hr", "li", "ol", "p", "pre", "section",
    "table", "tbody", "tfoot", "thead", "tr", "ul",
})
VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta",
    "source", "track", "wbr",
})
HIDDEN_TAGS = frozenset({"head", "noscript", "script", "style", "template", "title"})


class _PageText(HTMLParser):
    """Collects visible text per line, for the page and for the container."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.page_lines: List[str] = []
        self.container_lines: List[str] = []
        self.found_container = False
        self._page: List[str] = []
        self._container: List[str] = []
        self._depth = 0
        self._container_depth: Optional[int] = None
        self._hidden = 0

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if tag in BLOCK_TAGS:
            self._break()
        if tag in VOID_TAGS:
            return
        self._depth += 1
        if tag in HIDDEN_TAGS:
            self._hidden += 1
        if not self.found_container and dict(attrs).get("id") == PRINTABLE_CONTAINER_ID:
            self.found_container = True
            self._container_depth = self._depth

    def handle_endtag(self, tag: str) -> None:
        if tag in VOID_TAGS:
            return
        if tag in BLOCK_TAGS:
            self._break()
        if tag in HIDDEN_TAGS and self._hidden:
            self._hidden -= 1
        if self._container_depth is not None and self._depth == self._container_depth:
            self._break()
            self._container_depth = None
        self._depth = max(0, self._depth - 1)

    def handle_data(self, data: str) -> None:
        if self._hidden:
            return
        self._page.append(data)
        if self._container_depth is not None:
            self._container.append(data)

    def close(self) -> None:
        super().close()
        self._break()

    def _break(self) -> None:
        for parts, lines in ((self._page, self.page_lines), (self._container, self.container_lines)):
            text = " ".join("".join(parts).split())
            if text:
                lines.append(text)
            parts.clear()


def page_text_lines(html: str) -> List[str]:
    """Visible text lines of the printable container, or of the page."""
    parser = _PageText()
    parser.feed(html or "")
    parser.close()
    return parser.container_lines if parser.found_container else parser.page_lines


_font_cache: Dict[int, Any] = {}


def _get_font(size: int):
    """Monospace system font, else Pillow's built-in font."""
    if size in _font_cache:
        return _font_cache[size]

    for path in FONT_PATHS:
        try:
            font = ImageFont.truetype(path, size)
            break
        except OSError:
            continue
    else:
        logger.debug("No system monospace font found, using Pillow's default")
        font = ImageFont.load_default(size=size)

    _font_cache[size] = font
    return font


def _wrap(text: str, font, max_width: int) -> List[str]:
    """Greedy word wrap by rendered width; long words are split."""
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if font.getlength(candidate) <= max_width:
            current = candidate
            continue
        if current:
            lines.append(current)
        current = ""
        if font.getlength(word) <= max_width:
            current = word
            continue
        for char in word:
            if current and font.getlength(current + char) > max_width:
                lines.append(current)
                current = ""
            current += char
    if current:
        lines.append(current)
    return lines


def render_text_image(lines: List[str], width: int = CANVAS_WIDTH, font_size: int = FONT_SIZE) -> bytes:
    """Draw text lines black on white and return PNG bytes."""
    font = _get_font(font_size)
    wrapped: List[str] = []
    for line in lines:
        wrapped += _wrap(line, font, width - 2 * MARGIN)

    line_height = font.getbbox("Ag")[3] + LINE_SPACING
    height = max(1, len(wrapped) * line_height + 2 * MARGIN)

    img = Image.new("L", (width, height), 255)
    draw = ImageDraw.Draw(img)
    y = MARGIN
    for line in wrapped:
        draw.text((MARGIN, y), line, font=font, fill=0)
        y += line_height

    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
