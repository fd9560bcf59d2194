"""Orchestrator — drives one upload from source selection to a created clip.

The pipeline is a single enumerated stage plus the data each stage owns.
Every stage change goes through ``_transition``, which rejects moves that
are not in ``_TRANSITIONS``. Slow work (engine load, processing, upload)
runs on daemon threads; each is tagged with the session generation it
started in and its result is dropped if the session was reset meanwhile.
"""

import dataclasses
import logging
import tempfile
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx

from clipshare.client import ClipShareClient, SubmissionError
from clipshare.config import ClipShareConfig
from clipshare.intake import IntakeError, spool_source
from clipshare.models import ClipMetadata, ProcessedOutput, SourceAsset, TimeRange
from clipshare.playback import MediaElement, PlaybackSync, ProbedMedia
from clipshare.timeline import TrimController
from clipshare.transcode import EngineLoadError, TranscodeEngine

logger = logging.getLogger(__name__)


class Stage(Enum):
    SELECTING = "selecting"
    TRIMMING = "trimming"
    PROCESSING = "processing"
    AWAITING_METADATA = "awaiting_metadata"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[Stage, set[Stage]] = {
    Stage.SELECTING: {Stage.TRIMMING},
    Stage.TRIMMING: {Stage.PROCESSING, Stage.SELECTING},
    Stage.PROCESSING: {Stage.AWAITING_METADATA, Stage.FAILED, Stage.SELECTING},
    Stage.AWAITING_METADATA: {Stage.UPLOADING, Stage.SELECTING},
    Stage.UPLOADING: {Stage.SUCCEEDED, Stage.FAILED, Stage.SELECTING},
    Stage.FAILED: {Stage.TRIMMING, Stage.UPLOADING, Stage.SELECTING},
    Stage.SUCCEEDED: {Stage.SELECTING},
}


class InvalidTransitionError(RuntimeError):
    pass


class UploadPipeline:
    def __init__(
        self,
        engine: TranscodeEngine,
        client: ClipShareClient,
        config: ClipShareConfig | None = None,
        media_factory: Callable[[Path], MediaElement] | None = None,
        navigate: Callable[[str], None] | None = None,
        on_change: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.config = config or ClipShareConfig()
        self.engine = engine
        self.client = client
        self._media_factory = media_factory or (
            lambda path: ProbedMedia(path, ffprobe=self.config.ffprobe)
        )
        self._navigate = navigate
        self._on_change = on_change
        self.work_dir = self.config.work_dir or Path(tempfile.mkdtemp(prefix="clipshare_"))

        self.lock = threading.RLock()
        self._generation = 0
        self._workers: list[threading.Thread] = []
        self._processing: threading.Thread | None = None
        self._mounted = False
        self._engine_ready = threading.Event()
        self.engine_error: str | None = None
        self.categories = []
        self.closed = False
        self.stage = Stage.SELECTING
        self._clear()

    def _clear(self) -> None:
        self.source: SourceAsset | None = None
        self.playback: PlaybackSync | None = None
        self.timeline: TrimController | None = None
        self.output: ProcessedOutput | None = None
        self.metadata: ClipMetadata | None = None
        self.error: str | None = None
        self.failed_from: Stage | None = None
        self.clip_id: str | None = None
        self.clip_url: str | None = None

    # -- state machine ----------------------------------------------------

    def _transition(self, to: Stage) -> None:
        if to not in _TRANSITIONS[self.stage]:
            raise InvalidTransitionError(
                f"Cannot move from {self.stage.value} to {to.value}"
            )
        logger.info("Upload stage %s -> %s", self.stage.value, to.value)
        self.stage = to
        self._notify()

    def _require(self, *stages: Stage) -> None:
        if self.closed:
            raise InvalidTransitionError("Upload pipeline is closed")
        if self.stage not in stages:
            raise InvalidTransitionError(
                f"Not allowed while {self.stage.value}"
            )

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())

    def _spawn(self, target: Callable, *args) -> threading.Thread:
        self._workers = [w for w in self._workers if w.is_alive()]
        worker = threading.Thread(target=target, args=args, daemon=True)
        self._workers.append(worker)
        worker.start()
        return worker

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug("Dropping result from superseded session %d", generation)
            return True
        return False

    @property
    def time_range(self) -> TimeRange | None:
        return self.playback.time_range if self.playback else None

    @property
    def waiting_for_processing(self) -> bool:
        return self.stage is Stage.PROCESSING and self.metadata is not None

    # -- lifecycle --------------------------------------------------------

    def mount(self) -> None:
        """Start loading the engine and fetching categories in the background."""
        with self.lock:
            if self._mounted:
                return
            self._mounted = True
            self._spawn(self._mount_worker)

    def _mount_worker(self) -> None:
        try:
            self.engine.load()
        except EngineLoadError as e:
            logger.error("%s", e)
            with self.lock:
                self.engine_error = str(e)
                self._notify()
        finally:
            self._engine_ready.set()

        with self.lock:
            if self.closed:
                self.engine.unload()
                return

        try:
            categories = self.client.list_categories()
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning("Could not load categories: %s", e)
            return
        except RuntimeError as e:
            # close() shut the client while the request was being prepared
            logger.debug("Skipping categories: %s", e)
            return
        with self.lock:
            self.categories = categories
            self._notify()

    def reset(self) -> None:
        """Cancel whatever is in flight and go back to source selection."""
        with self.lock:
            self._generation += 1
            self._release_source()
            self._clear()
            if self.stage is Stage.SELECTING:
                self._notify()
            else:
                self._transition(Stage.SELECTING)

    def close(self) -> None:
        """Reset, terminate the engine and close the client; the pipeline cannot be reused."""
        with self.lock:
            if self.closed:
                return
            self.reset()
            self.closed = True
            self.engine.unload()
            self.client.close()

    def wait(self, timeout: float | None = None) -> None:
        """Block until background work started so far has finished."""
        while True:
            with self.lock:
                pending = [w for w in self._workers if w.is_alive()]
            if not pending:
                return
            for worker in pending:
                worker.join(timeout)
            if timeout is not None:
                return

    def _release_source(self) -> None:
        if self.source is not None and self.source.release():
            logger.debug("Released source %s", self.source.filename)

    # -- selecting / trimming ---------------------------------------------

    def select(
        self,
        filename: str,
        data: bytes | Path,
        media_type: str | None = None,
    ) -> TimeRange:
        """Accept a source file and enter trimming with the full range selected.

        Raises IntakeError (and stays in SELECTING) for non-video files and
        sources without a finite duration.
        """
        with self.lock:
            self._require(Stage.SELECTING)
            self.error = None
            try:
                source = spool_source(
                    filename, data, self.work_dir,
                    media_type=media_type, max_bytes=self.config.max_upload_bytes,
                )
            except IntakeError as e:
                self.error = str(e)
                self._notify()
                raise

            playback = PlaybackSync(self._media_factory(source.path))
            try:
                time_range = playback.load_metadata(self.config.min_span)
            except IntakeError as e:
                source.release()
                self.error = str(e)
                self._notify()
                raise

            self.source = source
            self.playback = playback
            self.timeline = TrimController(time_range, playback.seek)
            self._transition(Stage.TRIMMING)
            return time_range

    def trim_controls(self) -> TrimController:
        """The timeline controller, available only while trimming."""
        with self.lock:
            self._require(Stage.TRIMMING)
            return self.timeline

    def confirm_trim(self) -> bool:
        """Start processing the selected range.

        Returns False when processing is already running; the duplicate
        confirmation is dropped.
        """
        with self.lock:
            if self.stage is Stage.PROCESSING:
                logger.debug("Ignoring trim confirmation while processing")
                return False
            self._require(Stage.TRIMMING)
            if self.engine_error is not None:
                raise EngineLoadError(self.engine_error)

            self.mount()
            self.output = None
            self.error = None
            self.failed_from = None
            if self.timeline is not None:
                self.timeline.pointer_up()
            time_range = dataclasses.replace(self.time_range)
            self._transition(Stage.PROCESSING)
            # A superseded invocation may still hold the engine; queue behind it.
            self._processing = self._spawn(
                self._process_worker, self._generation, self.source, time_range, self._processing
            )
            return True

    def _process_worker(
        self,
        generation: int,
        source: SourceAsset,
        time_range: TimeRange,
        previous: threading.Thread | None = None,
    ) -> None:
        if previous is not None:
            previous.join()
        self._engine_ready.wait()
        output = None
        error = None
        try:
            if self.engine_error is not None:
                raise EngineLoadError(self.engine_error)
            output = self.engine.process(source.read_bytes(), time_range)
        except (RuntimeError, OSError) as e:
            error = str(e)
        except Exception as e:
            logger.exception("Unexpected processing failure")
            error = str(e)

        with self.lock:
            if self._is_stale(generation):
                return
            if error is not None:
                logger.warning("Processing failed: %s", error)
                self.output = None
                self.error = error
                self.failed_from = Stage.PROCESSING
                self._transition(Stage.FAILED)
                return
            self.output = output
            self._transition(Stage.AWAITING_METADATA)
            if self.metadata is not None:
                self._start_upload()

    # -- metadata / upload ------------------------------------------------

    def confirm_metadata(
        self,
        title: str,
        is_private: bool = False,
        category_ids: Iterable[str] = (),
    ) -> ClipMetadata:
        """Record title and visibility; uploads as soon as processing is done."""
        with self.lock:
            editable = (Stage.TRIMMING, Stage.PROCESSING, Stage.AWAITING_METADATA)
            if not (self.stage is Stage.FAILED and self.failed_from is Stage.PROCESSING):
                self._require(*editable)
            metadata = ClipMetadata(title, is_private, frozenset(category_ids))
            self.metadata = metadata
            if self.stage is Stage.AWAITING_METADATA:
                self._start_upload()
            else:
                self._notify()
            return metadata

    def _start_upload(self) -> None:
        if self.output is None or self.metadata is None:
            raise InvalidTransitionError("Nothing to upload yet")
        self.error = None
        self._transition(Stage.UPLOADING)
        self._spawn(self._upload_worker, self._generation, self.output, self.metadata)

    def _upload_worker(self, generation: int, output: ProcessedOutput, metadata: ClipMetadata) -> None:
        clip_id = None
        error = None
        try:
            clip_id = self.client.submit(output, metadata)
        except SubmissionError as e:
            error = str(e)
        except Exception as e:
            logger.exception("Unexpected upload failure")
            error = str(e)

        with self.lock:
            if self._is_stale(generation):
                return
            if error is not None:
                self.error = error
                self.failed_from = Stage.UPLOADING
                self._transition(Stage.FAILED)
                return
            self.clip_id = clip_id
            self.clip_url = self.client.clip_url(clip_id)
            self.output = None
            self._release_source()
            self._transition(Stage.SUCCEEDED)
            url = self.clip_url

        if self._navigate is not None:
            self._navigate(url)

    def resubmit(self) -> None:
        """Send the already processed clip again after an upload failure."""
        with self.lock:
            self._require(Stage.FAILED)
            if self.failed_from is not Stage.UPLOADING:
                raise InvalidTransitionError("Processing failed; adjust the range and retry")
            self._start_upload()

    def retry(self) -> None:
        """Leave FAILED: resubmit after an upload failure, else return to trimming."""
        with self.lock:
            self._require(Stage.FAILED)
            if self.failed_from is Stage.UPLOADING:
                self._start_upload()
                return
            self.error = None
            self.failed_from = None
            self._transition(Stage.TRIMMING)

    # -- reporting ----------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        with self.lock:
            r = self.time_range
            state = self.playback.state if self.playback else None
            return {
                "stage": self.stage.value,
                "error": self.error,
                "failed_from": self.failed_from.value if self.failed_from else None,
                "engine_ready": self._engine_ready.is_set() and self.engine_error is None,
                "engine_error": self.engine_error,
                "source": None if self.source is None else {
                    "filename": self.source.filename,
                    "media_type": self.source.media_type,
                    "size": self.source.size,
                },
                "range": None if r is None else {
                    "start": r.start,
                    "end": r.end,
                    "duration": r.duration,
                },
                "playback": None if state is None else dataclasses.asdict(state),
                "drag_mode": self.timeline.mode.value if self.timeline else None,
                "metadata": None if self.metadata is None else {
                    "title": self.metadata.title,
                    "private": self.metadata.is_private,
                    "categories": sorted(self.metadata.category_ids),
                },
                "waiting_for_processing": self.waiting_for_processing,
                "output": None if self.output is None else {
                    "duration_seconds": self.output.duration_seconds,
                    "video_bytes": len(self.output.trimmed_video),
                    "thumbnail_bytes": len(self.output.thumbnail),
                },
                "clip_id": self.clip_id,
                "clip_url": self.clip_url,
                "categories": [dataclasses.asdict(c) for c in self.categories],
            }
