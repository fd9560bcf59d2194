"""Keeps a media element's position and play state inside the trim range."""

import logging
import math
import subprocess
from pathlib import Path
from typing import Protocol

from clipshare import ffutil
from clipshare.intake import check_duration
from clipshare.models import MIN_SPAN, PlaybackState, TimeRange

logger = logging.getLogger(__name__)


class MediaElement(Protocol):
    duration: float
    current_time: float
    paused: bool
    volume: float
    muted: bool

    def play(self) -> None: ...

    def pause(self) -> None: ...


class ProbedMedia:
    """Headless media element backed by a local file.

    Duration comes from ffprobe on first access; the position only moves
    when a client reports it or ``advance`` is called while playing.
    """

    def __init__(self, path: Path, ffprobe: str = "ffprobe") -> None:
        self.path = path
        self.ffprobe = ffprobe
        self._duration: float | None = None
        self.current_time = 0.0
        self.paused = True
        self.volume = 1.0
        self.muted = False

    @property
    def duration(self) -> float:
        if self._duration is None:
            try:
                self._duration = ffutil.probe_duration(self.path, self.ffprobe)
            except (subprocess.CalledProcessError, ValueError) as e:
                logger.warning("Could not probe %s: %s", self.path, e)
                self._duration = math.nan
        return self._duration

    def play(self) -> None:
        self.paused = False

    def pause(self) -> None:
        self.paused = True

    def advance(self, dt: float) -> None:
        if not self.paused:
            self.current_time += dt


class PlaybackSync:
    def __init__(self, media: MediaElement, time_range: TimeRange | None = None) -> None:
        self.media = media
        self.time_range = time_range
        self.state = PlaybackState(
            current_time=media.current_time,
            is_playing=not media.paused,
            volume=media.volume,
            is_muted=media.muted,
        )

    def load_metadata(self, min_span: float = MIN_SPAN) -> TimeRange:
        """Read the media duration and select the whole of it.

        Raises NonFiniteDurationError for streams without a usable length.
        """
        duration = self.media.duration
        check_duration(duration)
        self.time_range = TimeRange.full(duration, min_span=min_span)
        return self.time_range

    def on_time_update(self) -> None:
        t = self.media.current_time
        self.state.current_time = t
        r = self.time_range
        if r is not None and r.end > 0 and t >= r.end:
            self.media.current_time = r.start
            self.state.current_time = r.start
            if self.state.is_playing:
                self.media.play()

    def play(self) -> None:
        self.media.play()
        self.state.is_playing = True

    def pause(self) -> None:
        self.media.pause()
        self.state.is_playing = False

    def toggle_play(self) -> bool:
        if self.state.is_playing:
            self.pause()
        else:
            self.play()
        return self.state.is_playing

    def seek(self, t: float) -> None:
        duration = self.media.duration
        if math.isfinite(duration):
            t = min(t, duration)
        t = max(0.0, t)
        self.media.current_time = t
        self.state.current_time = t

    def set_volume(self, volume: float) -> None:
        volume = max(0.0, min(1.0, volume))
        self.media.volume = volume
        self.state.volume = volume

    def set_muted(self, muted: bool) -> None:
        self.media.muted = muted
        self.state.is_muted = muted
