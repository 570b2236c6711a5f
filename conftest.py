"""
Pytest configuration and fixtures for the portrait sheet tests.
"""

import threading
from io import BytesIO
from typing import Callable, List, Optional, Tuple

import pytest
from PIL import Image

from portrait_sheet.errors import GenerationError


def make_png(size: Tuple[int, int] = (300, 200), color=(200, 120, 80, 255), mode: str = "RGBA") -> bytes:
    """Encode a solid-color image as PNG bytes."""
    image = Image.new(mode, size, color=color)
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeGenerator:
    """
    In-process stand-in for the variant generator.

    Returns a distinct solid color per call (at a non-tile size so the
    pipeline has to re-normalize), counts calls and can fail on a given
    1-based call number.
    """

    def __init__(
        self,
        fail_on: Optional[int] = None,
        on_call: Optional[Callable[[int, str], None]] = None,
    ) -> None:
        self.fail_on = fail_on
        self.on_call = on_call
        self.calls = 0
        self.labels: List[str] = []
        self._lock = threading.Lock()

    def generate(self, base_tile: bytes, emotion_label: str) -> bytes:
        with self._lock:
            self.calls += 1
            call = self.calls
            self.labels.append(emotion_label)
        if self.on_call is not None:
            self.on_call(call, emotion_label)
        if self.fail_on is not None and call == self.fail_on:
            raise GenerationError(
                "Images edit failed 500: upstream exploded",
                status_code=500,
                body="upstream exploded",
            )
        shade = (call * 30) % 256
        return make_png((256, 256), color=(shade, 255 - shade, 90, 255))


@pytest.fixture
def portrait_png() -> bytes:
    """A 300x200 neutral portrait stand-in."""
    return make_png((300, 200))


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()
