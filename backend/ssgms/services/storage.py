"""Grant document storage.

Blobs live flat in one public bucket, named ``<grant_id>_<epoch_ms>.<ext>``.
The grant row keeps the public URL; removal goes by the URL's last path
segment.
"""
from __future__ import annotations

import logging
import time

import httpx

from ssgms.config import settings
from ssgms.exceptions import ConfigurationError, StorageError, ValidationError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 25 * 1024 * 1024  # 25 MB
CACHE_CONTROL_SECONDS = 3600


def document_object_name(grant_id: int, filename: str, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    ext = filename.rsplit(".", 1)[-1] if "." in filename else filename
    return f"{grant_id}_{now_ms}.{ext}"


def object_name_from_url(url: str) -> str | None:
    name = (url or "").split("?", 1)[0].rstrip("/").split("/")[-1]
    return name or None


class DocumentStorage:
    """Async client for the storage REST API."""

    def __init__(
        self,
        base_url: str | None,
        service_role_key: str | None,
        bucket: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.service_role_key = service_role_key
        self.bucket = bucket
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        if not self.base_url or not self.service_role_key:
            raise ConfigurationError("Missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY")
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                return await client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning(f"Storage unreachable: {exc}")
            raise StorageError(f"Storage unreachable: {exc}")

    def public_url(self, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{name}"

    async def upload(self, name: str, data: bytes, content_type: str | None = None) -> str:
        """Store *data* under *name* (never overwriting) and return its public URL."""
        if not data:
            raise ValidationError("Uploaded file is empty.")
        if len(data) > MAX_FILE_SIZE_BYTES:
            raise ValidationError(
                f"File size ({len(data):,} bytes) exceeds the "
                f"{MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB limit."
            )

        headers = {
            **self._headers(),
            "cache-control": f"max-age={CACHE_CONTROL_SECONDS}",
            "x-upsert": "false",
            "content-type": content_type or "application/octet-stream",
        }
        resp = await self._send(
            "POST",
            f"/storage/v1/object/{self.bucket}/{name}",
            content=data,
            headers=headers,
        )
        if resp.status_code >= 400:
            raise StorageError(f"Upload failed: {resp.status_code} {resp.text[:200]}")

        logger.info(f"Uploaded {name} ({len(data)} bytes) to {self.bucket}")
        return self.public_url(name)

    async def remove(self, name: str) -> None:
        resp = await self._send(
            "DELETE",
            f"/storage/v1/object/{self.bucket}",
            json={"prefixes": [name]},
            headers=self._headers(),
        )
        if resp.status_code >= 400:
            raise StorageError(f"Delete failed: {resp.status_code} {resp.text[:200]}")
        logger.info(f"Removed {name} from {self.bucket}")


def get_document_storage() -> DocumentStorage:
    return DocumentStorage(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_ROLE_KEY,
        settings.DOCUMENTS_BUCKET,
        timeout=settings.IDENTITY_TIMEOUT_SECONDS,
    )
