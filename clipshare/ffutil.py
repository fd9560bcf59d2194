"""FFmpeg/ffprobe subprocess helpers."""

import json
import math
import shutil
import subprocess
from pathlib import Path

from clipshare.models import ProbeResult, TimeRange


class FFmpegNotFoundError(RuntimeError):
    pass


def check_ffmpeg(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in (ffmpeg, ffprobe):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def _probe_json(input_path: Path, ffprobe: str) -> dict:
    cmd = [
        ffprobe,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    return json.loads(result.stdout or "{}")


def _parse_duration(raw) -> float:
    # Streams without a container duration report "N/A" or omit it.
    try:
        return float(raw)
    except (TypeError, ValueError):
        return math.inf


def probe(input_path: Path, ffprobe: str = "ffprobe") -> ProbeResult:
    """Extract media metadata via ffprobe."""
    data = _probe_json(input_path, ffprobe)
    streams = data.get("streams", [])

    video_stream = next(
        (s for s in streams if s.get("codec_type") == "video"), None
    )
    audio_stream = next(
        (s for s in streams if s.get("codec_type") == "audio"), None
    )

    if video_stream is None:
        raise ValueError(f"No video stream found in {input_path}")

    # Parse fps from r_frame_rate (e.g. "30/1")
    num, _, den = video_stream.get("r_frame_rate", "0/1").partition("/")
    fps = int(num) / int(den) if den and int(den) else 0.0

    return ProbeResult(
        duration=_parse_duration(data.get("format", {}).get("duration")),
        width=int(video_stream.get("width", 0)),
        height=int(video_stream.get("height", 0)),
        fps=fps,
        codec_video=video_stream.get("codec_name", "unknown"),
        codec_audio=audio_stream.get("codec_name") if audio_stream else None,
    )


def probe_duration(input_path: Path, ffprobe: str = "ffprobe") -> float:
    """Container duration in seconds; ``inf`` when it cannot be determined."""
    data = _probe_json(input_path, ffprobe)
    return _parse_duration(data.get("format", {}).get("duration"))


def format_seconds(value: float) -> str:
    """Two-decimal seconds, the precision ffmpeg receives for seeks."""
    return f"{value:.2f}"


def trim_copy(
    input_path: Path,
    time_range: TimeRange,
    output_path: Path,
    ffmpeg: str = "ffmpeg",
    timeout: float | None = None,
) -> None:
    """Stream-copy ``time_range`` of the input into a new container."""
    cmd = [
        ffmpeg, "-y",
        "-ss", format_seconds(time_range.start),
        "-i", str(input_path),
        "-t", format_seconds(time_range.span),
        "-c", "copy",
        str(output_path),
    ]
    subprocess.run(cmd, capture_output=True, check=True, timeout=timeout)


def extract_frame(
    input_path: Path,
    offset: float,
    output_path: Path,
    ffmpeg: str = "ffmpeg",
    timeout: float | None = None,
) -> None:
    """Write the single frame at ``offset`` seconds as an image."""
    cmd = [
        ffmpeg, "-y",
        "-i", str(input_path),
        "-ss", format_seconds(offset),
        "-frames:v", "1",
        str(output_path),
    ]
    subprocess.run(cmd, capture_output=True, check=True, timeout=timeout)
