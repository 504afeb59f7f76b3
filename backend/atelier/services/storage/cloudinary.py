"""
Content storage for inspiration photos and catalog images.

Talks to the Cloudinary upload API over httpx with signed requests.
Uploads retry a fixed number of times with a fixed delay and raise
``UpstreamUnavailableError`` when every attempt fails; deletes are
best-effort and only log failures.
"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from atelier.core.config import Settings, get_settings
from atelier.core.exceptions import UpstreamUnavailableError
from atelier.core.logging import get_logger, log_performance

logger = get_logger(__name__)

DEFAULT_FOLDER = "atelier"


@dataclass(frozen=True)
class StoredObject:
    """Public URL and storage identifier of an uploaded object."""

    url: str
    storage_id: str


@dataclass(frozen=True)
class ImageUpload:
    """Raw image bytes received from a client."""

    data: bytes
    filename: Optional[str] = None


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """
    Cloudinary request signature.

    Parameters are sorted by name, joined as ``k=v`` with ``&``, suffixed
    with the API secret and hashed with SHA-1.
    """
    to_sign = "&".join(
        f"{key}={value}" for key, value in sorted(params.items()) if value not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryStorage:
    """
    Cloudinary-backed content storage.

    Args:
        settings: Application settings (credentials and retry policy)
        client: Optional preconfigured httpx client, used by tests
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.cloud_name = self.settings.cloudinary_cloud_name
        self.api_key = self.settings.cloudinary_api_key
        self.api_secret = self.settings.cloudinary_api_secret
        self.attempts = self.settings.storage_upload_attempts
        self.retry_delay = self.settings.storage_retry_delay_seconds
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.settings.cloudinary_api_base,
            timeout=self.settings.storage_timeout,
        )

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        signed = {key: value for key, value in params.items() if value not in (None, "")}
        signed["timestamp"] = int(time.time())
        signed["signature"] = sign_params(signed, self.api_secret)
        signed["api_key"] = self.api_key
        return signed

    async def upload(
        self,
        data: bytes,
        category: str = DEFAULT_FOLDER,
        filename: Optional[str] = None,
    ) -> StoredObject:
        """
        Upload bytes into the ``category`` folder.

        Raises:
            UpstreamUnavailableError: If every attempt fails
        """
        url = f"/v1_1/{self.cloud_name}/auto/upload"
        last_exception: Optional[Exception] = None

        with log_performance(logger, "content_upload", category=category, size=len(data)):
            for attempt in range(self.attempts):
                try:
                    response = await self.client.post(
                        url,
                        data=self._signed({"folder": category}),
                        files={"file": (filename or "upload", data)},
                    )
                    response.raise_for_status()
                    payload = response.json()
                    stored = StoredObject(
                        url=payload["secure_url"],
                        storage_id=payload["public_id"],
                    )
                    logger.info(
                        "Content uploaded",
                        storage_id=stored.storage_id,
                        attempt=attempt + 1,
                    )
                    return stored

                except (httpx.HTTPError, KeyError, ValueError) as e:
                    last_exception = e
                    logger.warning(
                        "Upload attempt failed",
                        attempt=attempt + 1,
                        attempts=self.attempts,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    if attempt < self.attempts - 1:
                        await asyncio.sleep(self.retry_delay)

            raise UpstreamUnavailableError(
                f"Content upload failed after {self.attempts} attempts",
                category=category,
                last_error=str(last_exception),
            ) from last_exception

    async def delete(self, storage_id: str) -> None:
        """Delete an object; failures are logged and ignored."""
        if not storage_id:
            return

        url = f"/v1_1/{self.cloud_name}/image/destroy"
        try:
            response = await self.client.post(url, data=self._signed({"public_id": storage_id}))
            response.raise_for_status()
            logger.info("Content deleted", storage_id=storage_id)
        except httpx.HTTPError as e:
            logger.warning(
                "Content delete failed",
                storage_id=storage_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
