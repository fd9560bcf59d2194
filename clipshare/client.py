"""HTTP client for the clip server's category and upload endpoints."""

import logging
import math

import httpx

from clipshare.config import ClipShareConfig
from clipshare.models import Category, ClipMetadata, ProcessedOutput

logger = logging.getLogger(__name__)


class SubmissionError(RuntimeError):
    """The server rejected the upload or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def encode_length(duration_seconds: float) -> str:
    """Whole seconds as sent in the ``length`` field; never below one."""
    return str(max(1, math.floor(duration_seconds + 0.5)))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        if message:
            return str(message)
    return response.reason_phrase or f"Upload failed with status {response.status_code}"


class ClipShareClient:
    def __init__(
        self,
        config: ClipShareConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or ClipShareConfig()
        self._http = httpx.Client(
            base_url=self.config.server_url,
            timeout=self.config.request_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "ClipShareClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def clip_url(self, clip_id: str) -> str:
        path = self.config.clip_path.format(clip_id=clip_id)
        return self.config.server_url.rstrip("/") + path

    def list_categories(self) -> list[Category]:
        response = self._http.get(self.config.categories_path)
        response.raise_for_status()
        data = response.json()
        if isinstance(data, dict):
            data = data.get("categories", [])
        return [Category(id=str(c["id"]), name=str(c["name"])) for c in data]

    def submit(self, output: ProcessedOutput, metadata: ClipMetadata) -> str:
        """POST the processed clip; returns the id of the created clip."""
        files = {
            "video": ("trimmed-video.mp4", output.trimmed_video, "video/mp4"),
            "thumbnail": ("thumbnail.jpg", output.thumbnail, "image/jpeg"),
        }
        data = {
            "clipName": metadata.title,
            "length": encode_length(output.duration_seconds),
            "private": "true" if metadata.is_private else "false",
        }
        if metadata.category_ids:
            data["categories"] = ",".join(sorted(metadata.category_ids))

        try:
            response = self._http.post(self.config.upload_path, data=data, files=files)
        except httpx.HTTPError as e:
            logger.warning("Upload transport error: %s", e)
            raise SubmissionError(f"Could not reach the server: {e}") from e

        if not response.is_success:
            message = _error_message(response)
            logger.warning("Upload rejected (%s): %s", response.status_code, message)
            raise SubmissionError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise SubmissionError("Server returned an unreadable response") from e
        clip_id = (body.get("id") or body.get("clipId")) if isinstance(body, dict) else None
        if not clip_id:
            raise SubmissionError("Server response did not include a clip id")
        return str(clip_id)
