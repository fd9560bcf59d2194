"""Runtime settings — dataclass defaults, optionally loaded from JSON."""

import json
from dataclasses import dataclass, fields
from pathlib import Path

from clipshare.models import MIN_SPAN


@dataclass
class ClipShareConfig:
    """Settings shared by the CLI, the web surface and the pipeline."""

    server_url: str = "http://127.0.0.1:3000"
    upload_path: str = "/api/upload"
    categories_path: str = "/api/categories"
    clip_path: str = "/clip/{clip_id}"
    request_timeout: float = 60.0
    min_span: float = MIN_SPAN
    thumbnail_offset: float = 1.0
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    ffmpeg_timeout: float | None = 600.0
    work_dir: Path | None = None
    max_upload_bytes: int = 10 * 1024 * 1024 * 1024  # 10 GB
    session_ttl: float = 3600.0


def load_config(path: str | Path) -> ClipShareConfig:
    """Load settings from a JSON object whose keys match ClipShareConfig."""
    path = Path(path)
    data = json.loads(path.read_text())

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a JSON object")

    known = {f.name for f in fields(ClipShareConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {', '.join(unknown)}")

    if data.get("work_dir") is not None:
        data["work_dir"] = Path(data["work_dir"])

    return ClipShareConfig(**data)
