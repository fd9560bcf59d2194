"""Formatting and parsing of the m:ss timecodes shown next to the trimmer."""

import math
import re

_TIMECODE_RE = re.compile(r"^(?:(\d+):)?(\d+):(\d+(?:\.\d+)?)$")


def format_timecode(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0.0
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def parse_timecode(text: str) -> float | None:
    """Parse ``m:ss``, ``h:mm:ss`` or bare seconds.

    Returns None for anything that is not a finite, non-negative time.
    """
    text = text.strip()
    if not text:
        return None

    try:
        value = float(text)
    except ValueError:
        match = _TIMECODE_RE.match(text)
        if match is None:
            return None
        hours = int(match.group(1) or 0)
        minutes = int(match.group(2))
        secs = float(match.group(3))
        if secs >= 60 or (match.group(1) is not None and minutes >= 60):
            return None
        value = hours * 3600 + minutes * 60 + secs

    if not math.isfinite(value) or value < 0:
        return None
    return value
