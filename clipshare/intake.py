"""Sanity checks on a selected source before it enters the pipeline."""

import math
import mimetypes
import os
import shutil
import tempfile
from pathlib import Path

from clipshare.models import SourceAsset


class IntakeError(ValueError):
    """The selected file cannot be trimmed; the user must pick another."""


class UnsupportedMediaTypeError(IntakeError):
    pass


class NonFiniteDurationError(IntakeError):
    pass


class UnusableSourceError(IntakeError):
    pass


def guess_media_type(filename: str) -> str:
    media_type, _ = mimetypes.guess_type(filename)
    return media_type or "application/octet-stream"


def check_media_type(media_type: str | None) -> None:
    if not media_type or not media_type.lower().startswith("video/"):
        raise UnsupportedMediaTypeError("Please select a valid video file.")


def check_duration(duration: float) -> None:
    if not math.isfinite(duration):
        raise NonFiniteDurationError(
            "Could not determine video duration. Please try a different video."
        )
    if duration <= 0:
        raise UnusableSourceError("The selected video has no playable duration.")


def spool_source(
    filename: str,
    data: bytes | Path,
    work_dir: Path,
    media_type: str | None = None,
    max_bytes: int | None = None,
) -> SourceAsset:
    """Validate the declared type and copy the source into ``work_dir``.

    ``data`` is either the raw bytes or a path to copy from.
    """
    media_type = media_type or guess_media_type(filename)
    check_media_type(media_type)

    size = data.stat().st_size if isinstance(data, Path) else len(data)
    if size == 0:
        raise UnusableSourceError("The selected file is empty.")
    if max_bytes is not None and size > max_bytes:
        raise UnusableSourceError("The selected file is too large.")

    work_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(filename).suffix or ".mp4"
    fd, name = tempfile.mkstemp(prefix="source_", suffix=suffix, dir=work_dir)
    with os.fdopen(fd, "wb") as fh:
        if isinstance(data, Path):
            with data.open("rb") as src:
                shutil.copyfileobj(src, fh)
        else:
            fh.write(data)

    return SourceAsset(
        path=Path(name),
        filename=Path(filename).name,
        media_type=media_type,
        size=size,
    )
