from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True, slots=True)
class Emotion:
    """One entry of the emotion catalog."""

    key: str
    label: str


# Order defines both generation order and tile position on the sheet.
# Entry 0 is the unmodified baseline and is never sent to the provider.
EMOTIONS: Tuple[Emotion, ...] = (
    Emotion("neutral", "Neutral"),
    Emotion("happy", "Happy"),
    Emotion("serious", "Serious/Determined"),
    Emotion("angry", "Angry"),
    Emotion("sad", "Sad"),
    Emotion("surprised", "Surprised"),
    Emotion("thinking", "Thinking/Concerned"),
    Emotion("embarrassed", "Embarrassed"),
)

TOTAL_STEPS = len(EMOTIONS)
