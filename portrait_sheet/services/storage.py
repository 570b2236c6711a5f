from __future__ import annotations

import logging
import os
import re
import secrets
from pathlib import Path

from portrait_sheet.errors import DirectoryError

logger = logging.getLogger(__name__)

_UNSAFE_STEM_CHARS = re.compile(r"[^\w\-]+", re.ASCII)
MAX_STEM_LENGTH = 80


def resolve_output_dir(raw: str) -> Path:
    """Expand `~` and make the caller-supplied directory absolute."""
    return Path(os.path.abspath(os.path.expanduser(raw.strip())))


def ensure_writable(raw: str) -> Path:
    """
    Make sure `raw` is a directory this process can write into.

    Creates the directory if absent and probes it with a scratch file that is
    removed again. Returns the resolved path.
    """
    directory = resolve_output_dir(raw)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except FileExistsError as exc:
        raise DirectoryError(f"Output path exists but is not a directory: {directory}") from exc
    except OSError as exc:
        raise DirectoryError(f"Cannot create output folder {directory}: {exc}") from exc

    if not directory.is_dir():
        raise DirectoryError(f"Output path exists but is not a directory: {directory}")

    probe = directory / f".portrait_write_test_{secrets.token_hex(4)}.tmp"
    try:
        probe.write_text("ok", encoding="utf-8")
        probe.unlink()
    except OSError as exc:
        raise DirectoryError(f"Output folder is not writable: {directory}: {exc}") from exc

    logger.debug("Output folder %s is writable", directory)
    return directory


def write_bytes(path: Path, data: bytes) -> Path:
    """Persist `data` at `path`, creating the parent directory if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def safe_stem(filename: str) -> str:
    """Filesystem-safe stem of an uploaded file name."""
    base = os.path.basename(filename or "")
    stem = os.path.splitext(base)[0]
    return _UNSAFE_STEM_CHARS.sub("_", stem)[:MAX_STEM_LENGTH] or "image"


def new_run_id() -> str:
    """Short random suffix that keeps repeated runs of one input apart."""
    return secrets.token_hex(4)


def sheet_filename(source_filename: str, run_id: str) -> str:
    return f"{safe_stem(source_filename)}_sheet_576x288_{run_id}.png"
