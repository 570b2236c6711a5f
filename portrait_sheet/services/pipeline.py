from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Protocol, Sequence

from portrait_sheet.models.emotions import EMOTIONS, Emotion
from portrait_sheet.models.jobs import UploadedImage
from portrait_sheet.services import storage
from portrait_sheet.services.imaging import compose_sheet, normalize_frame
from portrait_sheet.services.jobs import JobStore

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_WORKERS = 8


class Generator(Protocol):
    def generate(self, base_tile: bytes, emotion_label: str) -> bytes: ...


class SheetPipeline:
    """
    Drives one job from upload to written sheet.

    Steps run strictly in order: output folder check, neutral tile, one
    provider call per remaining emotion, composition, write. Progress goes to
    the job store after every finished step. The first failure ends the job
    in `error`; nothing is written unless every tile exists.

    Provider calls run on a pool owned by the pipeline, apart from the
    loop's default executor that local file and image work uses. A provider
    that never answers can only hold provider workers.
    """

    def __init__(
        self,
        store: JobStore,
        generator: Generator,
        normalize: Callable[[bytes], bytes] = normalize_frame,
        compose: Callable[[Sequence[bytes]], bytes] = compose_sheet,
        catalog: Sequence[Emotion] = EMOTIONS,
        provider_workers: int = DEFAULT_PROVIDER_WORKERS,
    ) -> None:
        if provider_workers <= 0:
            raise ValueError("provider_workers must be positive")
        self._store = store
        self._generator = generator
        self._normalize = normalize
        self._compose = compose
        self._catalog = tuple(catalog)
        self._provider_executor = ThreadPoolExecutor(
            max_workers=provider_workers,
            thread_name_prefix="provider",
        )

    @property
    def total(self) -> int:
        return len(self._catalog)

    def close(self) -> None:
        """Stop accepting provider calls. Calls already running are not interrupted."""
        self._provider_executor.shutdown(wait=False, cancel_futures=True)

    async def run(self, job_id: str, image: UploadedImage, output_dir: str) -> None:
        """Run the job to a terminal state. Never raises."""
        if self._store.get(job_id) is None:
            logger.error("Job %s vanished before it could start", job_id)
            return

        try:
            await self._run_steps(job_id, image, output_dir)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Job %s aborted", job_id)
            self._store.mark_failed(job_id, str(exc) or exc.__class__.__name__)

    async def _run_steps(self, job_id: str, image: UploadedImage, output_dir: str) -> None:
        store = self._store
        total = self.total

        store.mark_running(job_id, "Validating output folder")
        # Runs before every provider call.
        directory = await asyncio.to_thread(storage.ensure_writable, output_dir)
        store.set_output_dir(job_id, str(directory))

        run_id = storage.new_run_id()

        neutral = self._catalog[0]
        store.set_message(job_id, f"Preparing {neutral.key} (1/{total})")
        base_tile = await asyncio.to_thread(self._normalize, image.data)
        store.record_progress(job_id, 1, f"{neutral.label} ready (1/{total})")

        tiles: List[bytes] = [base_tile]
        for index, emotion in enumerate(self._catalog[1:], start=1):
            step = index + 1
            store.set_message(job_id, f"Generating {emotion.label} ({step}/{total})")

            raw = await asyncio.get_running_loop().run_in_executor(
                self._provider_executor, self._generator.generate, base_tile, emotion.label
            )
            tiles.append(await asyncio.to_thread(self._normalize, raw))

            store.record_progress(job_id, step, f"Finished {emotion.label} ({step}/{total})")

        store.set_message(job_id, "Composing and saving sheet")
        sheet = await asyncio.to_thread(self._compose, tiles)

        sheet_path: Path = directory / storage.sheet_filename(image.filename, run_id)
        await asyncio.to_thread(storage.write_bytes, sheet_path, sheet)

        store.mark_done(job_id, str(sheet_path))
