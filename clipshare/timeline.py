"""Pointer-driven trim handles and scrubbing over a fixed-width timeline."""

import logging
from enum import Enum
from typing import Callable

from clipshare.models import TimeRange
from clipshare.timecode import parse_timecode

logger = logging.getLogger(__name__)


class DragMode(Enum):
    IDLE = "idle"
    LEFT_HANDLE = "left"
    RIGHT_HANDLE = "right"
    SCRUBBING = "body"


_TARGETS = {
    "left": DragMode.LEFT_HANDLE,
    "right": DragMode.RIGHT_HANDLE,
    "body": DragMode.SCRUBBING,
}


class TrimController:
    """Translate pointer gestures into range edits and playhead moves.

    Pointer positions are widget-relative pixels but are not required to
    lie inside the widget: a drag that leaves the timeline keeps tracking
    and is clamped, and ``pointer_up`` always ends the gesture wherever it
    happens.
    """

    def __init__(
        self,
        time_range: TimeRange,
        seek: Callable[[float], None],
        width: float = 0.0,
    ) -> None:
        self.range = time_range
        self._seek = seek
        self.width = max(0.0, float(width))
        self.mode = DragMode.IDLE

    @property
    def duration(self) -> float:
        return self.range.duration

    def resize(self, width: float) -> None:
        self.width = max(0.0, float(width))

    def time_to_pixels(self, t: float) -> float:
        if self.duration <= 0 or self.width <= 0:
            return 0.0
        return (t / self.duration) * self.width

    def pixels_to_time(self, x: float) -> float:
        if self.duration <= 0 or self.width <= 0:
            return 0.0
        return (x / self.width) * self.duration

    def pointer_down(self, target: str, x: float = 0.0) -> DragMode:
        """Begin a gesture on ``left``, ``right`` or ``body``."""
        try:
            self.mode = _TARGETS[target]
        except KeyError:
            raise ValueError(f"Unknown timeline target: {target!r}") from None

        if self.mode is DragMode.SCRUBBING:
            self._scrub_to(x)
        return self.mode

    def pointer_move(self, x: float) -> None:
        if self.mode is DragMode.LEFT_HANDLE:
            self.range.set_start(self.pixels_to_time(x))
            self._seek(self.range.start)
        elif self.mode is DragMode.RIGHT_HANDLE:
            self.range.set_end(self.pixels_to_time(x))
            self._seek(self.range.end)
        elif self.mode is DragMode.SCRUBBING:
            self._scrub_to(x)

    def pointer_up(self) -> None:
        self.mode = DragMode.IDLE

    def _scrub_to(self, x: float) -> None:
        clamped = max(0.0, min(x, self.width))
        self._seek(self.pixels_to_time(clamped))

    # Manual entry: edits that do not describe a valid range are ignored.

    def set_start_text(self, text: str) -> bool:
        value = parse_timecode(text)
        if value is None or value >= self.range.end:
            logger.debug("Ignoring start entry %r", text)
            return False
        if self.range.end - value < self.range.min_span:
            logger.debug("Ignoring start entry %r: span below minimum", text)
            return False
        self.range.set_start(value)
        self._seek(self.range.start)
        return True

    def set_end_text(self, text: str) -> bool:
        value = parse_timecode(text)
        if value is None or value <= self.range.start or value > self.duration:
            logger.debug("Ignoring end entry %r", text)
            return False
        if value - self.range.start < self.range.min_span:
            logger.debug("Ignoring end entry %r: span below minimum", text)
            return False
        self.range.set_end(value)
        self._seek(self.range.end)
        return True
