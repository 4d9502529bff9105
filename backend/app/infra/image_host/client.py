"""Unsigned-upload client for the external image host."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence

import requests

from ...config import ImageHostConfig
from ..logging import get_logger

__all__ = [
    "ImageHostClient",
    "ImageUploadError",
    "ImageUploader",
    "UploadSource",
    "upload_batch",
]

logger = get_logger(__name__)

URL_FIELD = "secure_url"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class UploadSource:
    """A single local file selected for upload."""

    filename: str
    content: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


class ImageUploadError(RuntimeError):
    """Raised when the host response does not carry a public URL."""

    def __init__(
        self,
        filename: str,
        *,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(f"Upload failed for {filename}")
        self.filename = filename
        self.status_code = status_code
        self.reason = reason


class ImageUploader(Protocol):  # pragma: no cover - structural typing hook
    def upload(self, source: UploadSource) -> str: ...


class ImageHostClient(ImageUploader):
    """Posts one file per request and returns the hosted URL."""

    def __init__(
        self,
        config: ImageHostConfig,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()

    @property
    def upload_url(self) -> str:
        return self._config.upload_url

    def upload(self, source: UploadSource) -> str:
        files = {
            "file": (
                source.filename,
                source.content,
                source.content_type or DEFAULT_CONTENT_TYPE,
            )
        }
        data = {"upload_preset": self._config.upload_preset or ""}
        try:
            response = self._session.post(
                self.upload_url,
                data=data,
                files=files,
                timeout=self._config.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning(
                "image_upload_transport_error",
                extra={"upload_filename": source.filename, "error": str(exc)},
            )
            raise ImageUploadError(source.filename, reason=str(exc)) from exc

        url = _extract_url(response)
        if url is None:
            logger.warning(
                "image_upload_rejected",
                extra={
                    "upload_filename": source.filename,
                    "status_code": response.status_code,
                },
            )
            raise ImageUploadError(
                source.filename,
                status_code=response.status_code,
                reason="response did not include a URL",
            )
        logger.debug(
            "image_upload_succeeded",
            extra={"upload_filename": source.filename, "url": url},
        )
        return url


def upload_batch(
    uploader: ImageUploader, sources: Sequence[UploadSource]
) -> List[str]:
    """Upload ``sources`` one at a time, in order, stopping at the first failure.

    Files uploaded before the failure are left on the host; their URLs are
    logged so they can be cleaned up by hand.
    """

    urls: List[str] = []
    for position, source in enumerate(sources, start=1):
        try:
            urls.append(uploader.upload(source))
        except ImageUploadError:
            logger.warning(
                "image_upload_batch_aborted",
                extra={
                    "failed_filename": source.filename,
                    "failed_position": position,
                    "batch_size": len(sources),
                    "orphaned_urls": list(urls),
                },
            )
            raise
    return urls


def _extract_url(response: requests.Response) -> Optional[str]:
    try:
        payload: Any = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    url = payload.get(URL_FIELD)
    if not isinstance(url, str) or not url.strip():
        return None
    return url
