"""Layout engine for thermal printer receipts.

A receipt is a list of blocks (text, label/value pairs, QR symbols,
raster images, separators, spacing) rendered to one ESC/POS stream for
80mm printers (48 columns in font A, 576 dots per raster line).
"""

import logging
import textwrap
from dataclasses import dataclass, field
from io import BytesIO
from typing import List, Union

from PIL import Image, UnidentifiedImageError

from billprint.errors import EncodeFailure
from billprint.printing import escpos
from billprint.printing.escpos import Alignment, LINE_WIDTH, RASTER_WIDTH

logger = logging.getLogger(__name__)

# Pillow packs 1-bit rows with 1 = white; the printer wants 1 = black
_INVERT = bytes(255 - value for value in range(256))


@dataclass
class TextBlock:
    """A block of text for the receipt."""

    text: str
    alignment: Alignment = Alignment.CENTER
    bold: bool = False


@dataclass
class PairBlock:
    """Label on the left, value right-aligned to the line width."""

    left: str
    right: str
    bold: bool = False


@dataclass
class QRBlock:
    """A QR symbol printed by the printer's own QR generator."""

    payload: str
    size: int = escpos.QR_MODULE_SIZE


@dataclass
class ImageBlock:
    """An encoded image (PNG, JPEG, ...) printed as a raster bit image."""

    image_data: bytes
    width: int = RASTER_WIDTH  # max dots; wider images are scaled down
    dither: bool = True


@dataclass
class SeparatorBlock:
    """A full-width rule."""

    char: str = "-"


@dataclass
class SpacerBlock:
    """Vertical spacing."""

    lines: int = 1


Block = Union[TextBlock, PairBlock, QRBlock, ImageBlock, SeparatorBlock, SpacerBlock]


@dataclass
class ReceiptLayout:
    """Complete receipt layout definition."""

    blocks: List[Block] = field(default_factory=list)

    def add_text(
        self,
        text: str,
        alignment: Alignment = Alignment.CENTER,
        bold: bool = False,
    ) -> "ReceiptLayout":
        """Add a text block."""
        self.blocks.append(TextBlock(text=text, alignment=alignment, bold=bold))
        return self

    def add_pair(self, left: str, right: str, bold: bool = False) -> "ReceiptLayout":
        """Add a label/value pair line."""
        self.blocks.append(PairBlock(left=left, right=right, bold=bold))
        return self

    def add_qr(self, payload: str, size: int = escpos.QR_MODULE_SIZE) -> "ReceiptLayout":
        """Add a QR symbol."""
        self.blocks.append(QRBlock(payload=payload, size=size))
        return self

    def add_image(self, image_data: bytes, dither: bool = True) -> "ReceiptLayout":
        """Add a raster image."""
        self.blocks.append(ImageBlock(image_data=image_data, dither=dither))
        return self

    def add_separator(self) -> "ReceiptLayout":
        """Add a separator line."""
        self.blocks.append(SeparatorBlock())
        return self

    def add_space(self, lines: int = 1) -> "ReceiptLayout":
        """Add vertical spacing."""
        self.blocks.append(SpacerBlock(lines=lines))
        return self


class LayoutEngine:
    """Engine for rendering receipt layouts to printer commands.

    Every stream starts with ESC @ and ends with a feed and a full cut.
    All text goes through the ASCII sanitizer first.
    """

    TRAILING_FEED = 3

    def __init__(self, line_width: int = LINE_WIDTH, raster_width: int = RASTER_WIDTH):
        self.line_width = line_width
        self.raster_width = raster_width

    def _wrap_text(self, text: str) -> List[str]:
        """Wrap sanitized text to the line width, keeping its indent."""
        indent = text[:len(text) - len(text.lstrip(" "))]
        lines = textwrap.wrap(
            text,
            width=self.line_width,
            subsequent_indent=indent,
            break_on_hyphens=False,
        )
        return lines or [""]

    def render(self, layout: ReceiptLayout) -> bytes:
        """Render a receipt layout to printer commands.

        Args:
            layout: The receipt layout to render

        Returns:
            ESC/POS command bytes ready to send to printer

        Raises:
            EncodeFailure: If an image block cannot be decoded
        """
        commands = [escpos.init()]

        for block in layout.blocks:
            if isinstance(block, TextBlock):
                commands.append(self._render_text(block))
            elif isinstance(block, PairBlock):
                commands.append(self._render_pair(block))
            elif isinstance(block, QRBlock):
                commands.append(self._render_qr(block))
            elif isinstance(block, ImageBlock):
                commands.append(self._render_image(block))
            elif isinstance(block, SeparatorBlock):
                commands.append(self._render_text(TextBlock(self._separator_text(block))))
            elif isinstance(block, SpacerBlock):
                commands.append(escpos.LF * block.lines)

        commands.append(escpos.feed(self.TRAILING_FEED))
        commands.append(escpos.cut(full=True))

        return b''.join(commands)

    def _render_text(self, block: TextBlock) -> bytes:
        commands = [escpos.align(block.alignment), escpos.bold(block.bold)]
        for line in self._wrap_text(escpos.sanitize_text(block.text)):
            commands.append(escpos.encode_text(line))
            commands.append(escpos.LF)
        commands.append(escpos.bold(False))
        return b''.join(commands)

    def _render_pair(self, block: PairBlock) -> bytes:
        """Render a pair line; the width is fixed so alignment is left."""
        commands = [escpos.align(Alignment.LEFT), escpos.bold(block.bold)]
        for line in escpos.pair_line(block.left, block.right, self.line_width):
            commands.append(escpos.encode_text(line))
            commands.append(escpos.LF)
        commands.append(escpos.bold(False))
        return b''.join(commands)

    def _render_qr(self, block: QRBlock) -> bytes:
        """Render a QR symbol centered, followed by a line feed."""
        return b''.join([
            escpos.align(Alignment.CENTER),
            escpos.qr_block(block.payload, block.size),
            escpos.LF,
        ])

    def _render_image(self, block: ImageBlock) -> bytes:
        """Render an image block as a centered raster bit image.

        The image is flattened onto white, scaled down to fit the
        raster width and reduced to 1 bit.
        """
        try:
            with Image.open(BytesIO(block.image_data)) as source:
                img = source.convert("RGBA")
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise EncodeFailure(f"Image is not readable: {e}") from e

        img = Image.alpha_composite(Image.new("RGBA", img.size, "white"), img).convert("L")

        target_width = min(block.width, self.raster_width)
        if img.width > target_width:
            target_height = max(1, round(img.height * target_width / img.width))
            img = img.resize((target_width, target_height), Image.Resampling.LANCZOS)

        dither = Image.Dither.FLOYDSTEINBERG if block.dither else Image.Dither.NONE
        bitmap = img.convert("1", dither=dither)
        logger.debug(f"Rasterizing {bitmap.width}x{bitmap.height} image")

        return escpos.align(Alignment.CENTER) + self._image_to_raster(bitmap) + escpos.LF

    def _image_to_raster(self, bitmap: Image.Image) -> bytes:
        """Convert a 1-bit Pillow image to a GS v 0 command."""
        width, height = bitmap.size

        # Rows are sent in whole bytes; pad with white
        padded_width = (width + 7) // 8 * 8
        if padded_width != width:
            canvas = Image.new("1", (padded_width, height), 255)
            canvas.paste(bitmap, (0, 0))
            bitmap = canvas

        data = bitmap.tobytes().translate(_INVERT)
        return escpos.raster_image(padded_width // 8, height, data)

    def _separator_text(self, block: SeparatorBlock) -> str:
        return (block.char * self.line_width)[:self.line_width]

    def preview_text(self, layout: ReceiptLayout) -> str:
        """Plain text picture of the receipt for logs and the CLI."""
        width = self.line_width
        justify = {
            Alignment.LEFT: str.ljust,
            Alignment.CENTER: str.center,
            Alignment.RIGHT: str.rjust,
        }
        rows: List[str] = []

        for block in layout.blocks:
            if isinstance(block, TextBlock):
                fit = justify.get(block.alignment, str.ljust)
                rows += [fit(line, width) for line in self._wrap_text(escpos.sanitize_text(block.text))]
            elif isinstance(block, PairBlock):
                rows += escpos.pair_line(block.left, block.right, width)
            elif isinstance(block, QRBlock):
                rows.append("[QR]".center(width))
            elif isinstance(block, ImageBlock):
                rows.append("[IMAGE]".center(width))
            elif isinstance(block, SeparatorBlock):
                rows.append(self._separator_text(block))
            elif isinstance(block, SpacerBlock):
                rows += [""] * block.lines

        border = "+" + "-" * width + "+"
        body = ["|" + row.ljust(width) + "|" for row in rows]
        return "\n".join([border, *body, border])
