#!/usr/bin/env python3
"""Generate a synthetic test video for trying the ClipShare upload flow.

Produces a 30-second video of six 5-second colour blocks, each with its own
tone, so a trimmed range is easy to recognise by eye and ear:
  0-5s   blue    440 Hz
  5-10s  red     550 Hz
  10-15s green   660 Hz
  15-20s yellow  770 Hz
  20-25s purple  880 Hz
  25-30s white   990 Hz

A keyframe every second keeps stream-copy trims close to the requested range.
"""

import subprocess
import sys
from pathlib import Path

COLORS = ["blue", "red", "green", "yellow", "purple", "white"]
BLOCK_SECONDS = 5


def generate_test_video(output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    n = len(COLORS)
    audio_parts = [
        f"sine=f={440 + 110 * i}:d={BLOCK_SECONDS}[a{i}]" for i in range(n)
    ]
    video_parts = [
        f"color=c={c}:s=320x240:d={BLOCK_SECONDS}:r=30[v{i}]"
        for i, c in enumerate(COLORS)
    ]
    audio_labels = "".join(f"[a{i}]" for i in range(n))
    video_labels = "".join(f"[v{i}]" for i in range(n))

    filter_complex = ";".join(
        audio_parts
        + [f"{audio_labels}concat=n={n}:v=0:a=1[aout]"]
        + video_parts
        + [f"{video_labels}concat=n={n}:v=1:a=0[vout]"]
    )

    cmd = [
        "ffmpeg", "-y",
        "-filter_complex", filter_complex,
        "-map", "[vout]",
        "-map", "[aout]",
        "-c:v", "libx264",
        "-g", "30",
        "-c:a", "aac",
        "-shortest",
        str(output),
    ]
    subprocess.run(cmd, check=True)
    print(f"Generated: {output}")


if __name__ == "__main__":
    out = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("synthetic.mp4")
    generate_test_video(out)
