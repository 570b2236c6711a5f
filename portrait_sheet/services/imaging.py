"""
Pillow primitives for the portrait pipeline.

Every tile is a 144x144 PNG; the sheet is a 4x2 grid of tiles on a
transparent canvas.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Sequence, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from portrait_sheet.errors import CompositionError, DecodeError
from portrait_sheet.models.emotions import TOTAL_STEPS

logger = logging.getLogger(__name__)

TILE_SIZE = 144
SHEET_COLUMNS = 4
SHEET_ROWS = 2
SHEET_WIDTH = TILE_SIZE * SHEET_COLUMNS  # 576
SHEET_HEIGHT = TILE_SIZE * SHEET_ROWS  # 288


def _encode_png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _decode(data: bytes) -> Image.Image:
    if not data:
        raise DecodeError("Image data is empty.")
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc
    return image


def normalize_frame(data: bytes, size: int = TILE_SIZE) -> bytes:
    """
    Crop-to-cover resize arbitrary image bytes to a `size` x `size` PNG.

    The aspect ratio is preserved by cropping the centered overflow, never by
    stretching. The output is RGBA so source transparency survives.
    """
    image = _decode(data)
    # Respect camera orientation before cropping.
    image = ImageOps.exif_transpose(image)
    if image.mode != "RGBA":
        image = image.convert("RGBA")

    tile = ImageOps.fit(
        image,
        (size, size),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5),
    )
    return _encode_png(tile)


def tile_offset(index: int) -> Tuple[int, int]:
    """Pixel offset (left, top) of tile `index` on the sheet, row-major."""
    col = index % SHEET_COLUMNS
    row = index // SHEET_COLUMNS
    return col * TILE_SIZE, row * TILE_SIZE


def compose_sheet(tiles: Sequence[bytes]) -> bytes:
    """Place exactly eight tiles on a transparent 576x288 canvas."""
    if len(tiles) != TOTAL_STEPS:
        raise CompositionError(
            f"Sheet needs exactly {TOTAL_STEPS} tiles, got {len(tiles)}."
        )

    sheet = Image.new("RGBA", (SHEET_WIDTH, SHEET_HEIGHT), (0, 0, 0, 0))
    for index, tile_bytes in enumerate(tiles):
        tile = _decode(tile_bytes).convert("RGBA")
        if tile.size != (TILE_SIZE, TILE_SIZE):
            raise CompositionError(
                f"Tile {index} is {tile.size[0]}x{tile.size[1]}, expected {TILE_SIZE}x{TILE_SIZE}."
            )
        sheet.paste(tile, tile_offset(index))

    logger.debug("Composed %d tiles into %dx%d sheet", len(tiles), SHEET_WIDTH, SHEET_HEIGHT)
    return _encode_png(sheet)
