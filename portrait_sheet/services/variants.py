from __future__ import annotations

import logging
from typing import Protocol

from portrait_sheet.errors import GenerationError, ProviderError

logger = logging.getLogger(__name__)


class ImageEditor(Protocol):
    """Remote capability: edit an image following a text instruction."""

    def edit(
        self,
        image: bytes,
        prompt: str,
        input_fidelity: str = "high",
        output_format: str = "png",
    ) -> bytes: ...


def emotion_prompt(emotion_label: str) -> str:
    """Instruction text sent with the base tile for one emotion."""
    return " ".join(
        [
            "You are editing the provided reference image.",
            "Generate a single 144x144 PNG portrait that preserves the original subject identity and art style.",
            "Keep the same framing, pose, head size, clothing, accessories, lighting, and background as the input image.",
            "Do not add or remove characters or major elements.",
            "Do not add text, captions, logos, borders, or watermarks.",
            f"Change only facial expression and subtle body language to clearly convey: {emotion_label}.",
            "Make the emotion readable but do not drastically exaggerate proportions or change the character design.",
            "Return a clean portrait suitable for an RPG dialog portrait sheet.",
        ]
    )


class VariantGenerator:
    """
    Produces one emotion variant of a base tile via the remote editor.

    The returned bytes are whatever the provider sent back; callers must
    re-normalize them to a tile.
    """

    def __init__(self, editor: ImageEditor) -> None:
        self._editor = editor

    def generate(self, base_tile: bytes, emotion_label: str) -> bytes:
        prompt = emotion_prompt(emotion_label)
        try:
            result = self._editor.edit(
                base_tile,
                prompt,
                input_fidelity="high",
                output_format="png",
            )
        except GenerationError:
            raise
        except ProviderError as exc:
            raise GenerationError(str(exc), status_code=exc.status_code, body=exc.body) from exc

        if not result:
            raise GenerationError("No image returned from API", body="")
        logger.info("Generated %s variant (%d bytes)", emotion_label, len(result))
        return result
