"""
Tests for the tile normalizer and sheet composer.
"""

from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from conftest import make_png
from portrait_sheet.errors import CompositionError, DecodeError
from portrait_sheet.services.imaging import (
    SHEET_HEIGHT,
    SHEET_WIDTH,
    TILE_SIZE,
    compose_sheet,
    normalize_frame,
    tile_offset,
)

DISTINCT_COLORS = [
    (255, 0, 0, 255),
    (0, 255, 0, 255),
    (0, 0, 255, 255),
    (255, 255, 0, 255),
    (0, 255, 255, 255),
    (255, 0, 255, 255),
    (128, 128, 128, 255),
    (255, 255, 255, 255),
]


def _open(data: bytes) -> Image.Image:
    image = Image.open(BytesIO(data))
    image.load()
    return image


@pytest.mark.parametrize(
    "size",
    [(300, 200), (200, 300), (144, 144), (50, 20), (1024, 1024), (1, 1), (3000, 17)],
)
def test_normalize_frame_always_yields_144_square_png(size):
    """Any source dimension or aspect ratio ends up as a 144x144 PNG."""
    result = _open(normalize_frame(make_png(size)))

    assert result.format == "PNG"
    assert result.size == (TILE_SIZE, TILE_SIZE)


def test_normalize_frame_reencodes_other_formats_as_png():
    buffer = BytesIO()
    Image.new("RGB", (400, 250), color=(10, 20, 30)).save(buffer, format="JPEG")

    result = _open(normalize_frame(buffer.getvalue()))

    assert result.format == "PNG"
    assert result.size == (TILE_SIZE, TILE_SIZE)
    assert result.mode == "RGBA"


def test_normalize_frame_crops_to_cover_instead_of_stretching():
    """A wide image keeps its centered third; the outer bands are cropped away."""
    wide = Image.new("RGB", (300, 100), color=(255, 0, 0))
    wide.paste((0, 255, 0), (100, 0, 200, 100))
    wide.paste((0, 0, 255), (200, 0, 300, 100))
    buffer = BytesIO()
    wide.save(buffer, format="PNG")

    tile = np.array(_open(normalize_frame(buffer.getvalue())))

    assert tuple(tile[72, 72][:3]) == (0, 255, 0)
    # Well inside the tile no red or blue survives the crop.
    inner = tile[20:124, 20:124, :3]
    assert (inner[..., 0] == 0).all()
    assert (inner[..., 2] == 0).all()


def test_normalize_frame_keeps_transparency():
    tile = np.array(_open(normalize_frame(make_png((200, 200), color=(0, 0, 0, 0)))))
    assert (tile[..., 3] == 0).all()


@pytest.mark.parametrize("data", [b"", b"definitely not an image"])
def test_normalize_frame_rejects_undecodable_bytes(data):
    with pytest.raises(DecodeError):
        normalize_frame(data)


def test_tile_offsets_are_row_major():
    assert [tile_offset(i) for i in range(8)] == [
        (0, 0), (144, 0), (288, 0), (432, 0),
        (0, 144), (144, 144), (288, 144), (432, 144),
    ]


def test_compose_sheet_places_each_tile_at_its_grid_cell():
    tiles = [make_png((TILE_SIZE, TILE_SIZE), color=color) for color in DISTINCT_COLORS]

    sheet_image = _open(compose_sheet(tiles))
    sheet = np.array(sheet_image)

    assert sheet_image.format == "PNG"
    assert sheet_image.mode == "RGBA"
    assert sheet_image.size == (SHEET_WIDTH, SHEET_HEIGHT) == (576, 288)
    for index, tile_bytes in enumerate(tiles):
        left, top = 144 * (index % 4), 144 * (index // 4)
        region = sheet[top:top + TILE_SIZE, left:left + TILE_SIZE]
        expected = np.array(_open(tile_bytes).convert("RGBA"))
        assert np.array_equal(region, expected), f"tile {index} misplaced"


def test_compose_sheet_is_deterministic():
    tiles = [make_png((TILE_SIZE, TILE_SIZE), color=color) for color in DISTINCT_COLORS]
    assert compose_sheet(tiles) == compose_sheet(list(tiles))


def test_compose_sheet_background_is_transparent():
    tiles = [make_png((TILE_SIZE, TILE_SIZE), color=(0, 0, 0, 0)) for _ in range(8)]
    sheet = np.array(_open(compose_sheet(tiles)))
    assert (sheet[..., 3] == 0).all()


@pytest.mark.parametrize("count", [0, 1, 7, 9])
def test_compose_sheet_requires_exactly_eight_tiles(count):
    tiles = [make_png((TILE_SIZE, TILE_SIZE)) for _ in range(count)]
    with pytest.raises(CompositionError):
        compose_sheet(tiles)


def test_compose_sheet_rejects_wrong_tile_size():
    tiles = [make_png((TILE_SIZE, TILE_SIZE)) for _ in range(7)] + [make_png((100, 100))]
    with pytest.raises(CompositionError):
        compose_sheet(tiles)
