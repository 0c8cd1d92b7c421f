"""Supabase Storage adapter for archiving generated assets."""

from __future__ import annotations

import logging

import httpx

from matrixai.core.logging_safety import safe_log_url
from matrixai.errors import AssetRelocationError

logger = logging.getLogger(__name__)


class SupabaseAssetStorage:
    """Copies a remotely hosted asset into an owned Storage bucket."""

    def __init__(self, base_url: str, service_key: str, bucket: str, *, client: httpx.AsyncClient) -> None:
        self._storage_url = f"{base_url.rstrip('/')}/storage/v1"
        self._service_key = service_key
        self._bucket = bucket
        self._client = client

    def public_url(self, path: str) -> str:
        return f"{self._storage_url}/object/public/{self._bucket}/{path}"

    async def relocate(self, source_url: str, path: str, *, content_type: str) -> str:
        """Download ``source_url`` and upload it to ``path``; returns the public URL."""
        try:
            download = await self._client.get(
                source_url,
                headers={"User-Agent": "MatrixAI-VideoProcessor/1.0"},
                follow_redirects=True,
            )
        except httpx.TimeoutException as exc:
            raise AssetRelocationError("Asset download timed out") from exc
        except httpx.HTTPError as exc:
            raise AssetRelocationError(f"Asset download failed: {type(exc).__name__}") from exc

        if download.status_code >= 400:
            raise AssetRelocationError(f"Failed to download asset: {download.status_code} {download.reason_phrase}")

        try:
            upload = await self._client.post(
                f"{self._storage_url}/object/{self._bucket}/{path}",
                headers={
                    "apikey": self._service_key,
                    "Authorization": f"Bearer {self._service_key}",
                    "Content-Type": content_type,
                    "x-upsert": "true",
                },
                content=download.content,
            )
        except httpx.HTTPError as exc:
            raise AssetRelocationError(f"Asset upload failed: {type(exc).__name__}") from exc

        if upload.status_code >= 400:
            raise AssetRelocationError(f"Failed to upload asset to storage: {upload.status_code} {upload.text}")

        logger.info(
            "storage.relocated source=%s bucket=%s bytes=%s",
            safe_log_url(source_url),
            self._bucket,
            len(download.content),
        )
        return self.public_url(path)


__all__ = ["SupabaseAssetStorage"]
