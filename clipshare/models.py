"""Shared data types used across ClipShare."""

from dataclasses import dataclass, field
from pathlib import Path

MIN_SPAN = 0.1


@dataclass
class TimeRange:
    """A selected start/end interval of a media duration, in seconds.

    The setters are total: out-of-bounds candidates are clamped to the
    nearest valid value so a continuous stream of drag positions never
    raises.
    """

    start: float
    end: float
    duration: float = 0.0
    min_span: float = MIN_SPAN

    @classmethod
    def full(cls, duration: float, min_span: float = MIN_SPAN) -> "TimeRange":
        return cls(start=0.0, end=duration, duration=duration, min_span=min_span)

    @property
    def span(self) -> float:
        return self.end - self.start

    def _span_floor(self) -> float:
        # A source shorter than the minimum span can only be selected whole.
        return min(self.min_span, self.duration)

    def set_start(self, t: float) -> None:
        upper = self.end - self._span_floor()
        self.start = max(0.0, min(t, upper))

    def set_end(self, t: float) -> None:
        lower = self.start + self._span_floor()
        self.end = min(self.duration, max(t, lower))

    def set_range(self, start: float, end: float) -> None:
        """Set both bounds, keeping the start and shrinking the end as needed."""
        floor = self._span_floor()
        start = max(0.0, min(start, self.duration - floor))
        end = min(self.duration, max(end, start + floor))
        self.start, self.end = start, end

    def clamp_to_duration(self, duration: float) -> None:
        self.duration = max(0.0, duration)
        self.set_range(self.start, self.end)


@dataclass
class PlaybackState:
    """UI-facing mirror of the media element."""

    current_time: float = 0.0
    is_playing: bool = False
    volume: float = 1.0
    is_muted: bool = False


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int
    height: int
    fps: float
    codec_video: str
    codec_audio: str | None = None


@dataclass
class SourceAsset:
    """The user-selected raw video, spooled to a local file for preview."""

    path: Path
    filename: str
    media_type: str
    size: int = 0
    released: bool = False

    @property
    def preview_url(self) -> str:
        return self.path.resolve().as_uri()

    def read_bytes(self) -> bytes:
        if self.released:
            raise RuntimeError(f"Source {self.filename!r} has been released")
        return self.path.read_bytes()

    def release(self) -> bool:
        """Drop the spooled file. Returns True only for the call that released it."""
        if self.released:
            return False
        self.released = True
        self.path.unlink(missing_ok=True)
        return True


@dataclass
class ProcessedOutput:
    """Trimmed container plus its still-frame thumbnail."""

    trimmed_video: bytes
    thumbnail: bytes
    duration_seconds: float


@dataclass(frozen=True)
class ClipMetadata:
    """Title and visibility entered by the user; fixed once submission starts."""

    title: str
    is_private: bool = False
    category_ids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        title = (self.title or "").strip()
        if not title:
            raise ValueError("Clip title is required")
        object.__setattr__(self, "title", title)
        object.__setattr__(self, "category_ids", frozenset(self.category_ids))


@dataclass
class Category:
    id: str
    name: str
