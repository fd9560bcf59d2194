"""Session-scoped ffmpeg engine that trims a source and grabs a thumbnail.

The engine owns a private scratch directory that plays the part of a
virtual filesystem: every invocation writes the same fixed file names into
it, so at most one invocation may run at a time, and every invocation
removes its files before returning, successful or not.
"""

import logging
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path

from clipshare import ffutil
from clipshare.config import ClipShareConfig
from clipshare.models import ProcessedOutput, TimeRange

logger = logging.getLogger(__name__)

INPUT_NAME = "input.mp4"
OUTPUT_NAME = "output.mp4"
THUMBNAIL_NAME = "thumbnail.jpg"


class EngineLoadError(RuntimeError):
    """The engine could not be started; uploads are unavailable this session."""


class EngineClosedError(RuntimeError):
    pass


class EngineBusyError(RuntimeError):
    pass


class ProcessingError(RuntimeError):
    """Trimming or thumbnail extraction failed for this range."""


def describe_ffmpeg_error(e: subprocess.CalledProcessError) -> str:
    stderr = e.stderr if isinstance(e.stderr, str) else (e.stderr or b"").decode(errors="replace")
    return f"ffmpeg failed: {stderr[-500:]}" if stderr else str(e)


class TranscodeEngine:
    def __init__(
        self,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        thumbnail_offset: float = 1.0,
        timeout: float | None = None,
        scratch_parent: Path | None = None,
    ) -> None:
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.thumbnail_offset = thumbnail_offset
        self.timeout = timeout
        self.scratch_parent = scratch_parent
        self._scratch: Path | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ClipShareConfig) -> "TranscodeEngine":
        return cls(
            ffmpeg=config.ffmpeg,
            ffprobe=config.ffprobe,
            thumbnail_offset=config.thumbnail_offset,
            timeout=config.ffmpeg_timeout,
            scratch_parent=config.work_dir,
        )

    @property
    def loaded(self) -> bool:
        return self._scratch is not None

    @property
    def scratch_dir(self) -> Path | None:
        return self._scratch

    def load(self) -> None:
        if self.loaded:
            return
        try:
            ffutil.check_ffmpeg(self.ffmpeg, self.ffprobe)
            if self.scratch_parent is not None:
                self.scratch_parent.mkdir(parents=True, exist_ok=True)
            self._scratch = Path(
                tempfile.mkdtemp(prefix="clipshare_engine_", dir=self.scratch_parent)
            )
        except (ffutil.FFmpegNotFoundError, OSError) as e:
            raise EngineLoadError(f"Failed to load video processing: {e}") from e
        logger.info("Transcode engine loaded at %s", self._scratch)

    def list_files(self) -> list[str]:
        """Names currently present in the scratch directory."""
        if self._scratch is None or not self._scratch.exists():
            return []
        return sorted(p.name for p in self._scratch.iterdir())

    def thumbnail_seek(self, span: float) -> float:
        # Seeking past the end of a short clip yields no frame.
        return self.thumbnail_offset if span >= self.thumbnail_offset else 0.0

    def process(self, source: bytes, time_range: TimeRange) -> ProcessedOutput:
        """Stream-copy ``time_range`` of ``source`` and extract one still frame."""
        scratch = self._scratch
        if scratch is None:
            raise EngineClosedError("Transcode engine is not loaded")
        if not self._lock.acquire(blocking=False):
            raise EngineBusyError("Another clip is already being processed")

        input_path = scratch / INPUT_NAME
        output_path = scratch / OUTPUT_NAME
        thumb_path = scratch / THUMBNAIL_NAME
        try:
            try:
                input_path.write_bytes(source)
                ffutil.trim_copy(
                    input_path, time_range, output_path,
                    ffmpeg=self.ffmpeg, timeout=self.timeout,
                )
                ffutil.extract_frame(
                    output_path, self.thumbnail_seek(time_range.span), thumb_path,
                    ffmpeg=self.ffmpeg, timeout=self.timeout,
                )
                trimmed = output_path.read_bytes()
                thumbnail = thumb_path.read_bytes()
            except subprocess.CalledProcessError as e:
                raise ProcessingError(describe_ffmpeg_error(e)) from e
            except subprocess.TimeoutExpired as e:
                raise ProcessingError("ffmpeg timed out while processing the clip") from e
            except OSError as e:
                raise ProcessingError(f"Processing failed: {e}") from e
            finally:
                for path in (input_path, output_path, thumb_path):
                    path.unlink(missing_ok=True)
        finally:
            self._lock.release()

        if not trimmed or not thumbnail:
            raise ProcessingError("Processing produced an empty clip or thumbnail")

        return ProcessedOutput(
            trimmed_video=trimmed,
            thumbnail=thumbnail,
            duration_seconds=round(time_range.span, 2),
        )

    def unload(self) -> None:
        scratch, self._scratch = self._scratch, None
        if scratch is not None:
            shutil.rmtree(scratch, ignore_errors=True)
            logger.info("Transcode engine unloaded")

    def __enter__(self) -> "TranscodeEngine":
        self.load()
        return self

    def __exit__(self, *exc) -> None:
        self.unload()
