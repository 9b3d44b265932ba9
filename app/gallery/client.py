"""
HTTP client for the gallery and file API.

Transport and status errors are not translated: callers receive the
httpx.RequestError / httpx.HTTPStatusError raised by the failing call.
"""
from typing import Any, Dict, Iterable, List, Optional
import logging

import httpx

from app.config import settings
from app.schemas import GalleryEntry, GalleryEntryCreate, Owner

logger = logging.getLogger(__name__)


class GalleryApiClient:
    """
    Async client for /api/gallery, /api/feature and /api/files.

    Usage:
        async with GalleryApiClient() as api:
            entries = await api.list_gallery(owner)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.GALLERY_API_URL).rstrip("/")
        self.timeout = timeout or settings.GALLERY_API_TIMEOUT
        self._password = password if password is not None else settings.CMS_PASSWORD
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"X-CMS-Password": self._password} if self._password else {},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        client = await self._get_client()
        response = await client.request(method, path, **kwargs)
        if response.is_error:
            logger.warning(f"{method} {path} failed with {response.status_code}: {response.text[:200]}")
        response.raise_for_status()
        return response.json() if response.content else None

    # Gallery

    async def list_gallery(self, owner: Owner) -> List[GalleryEntry]:
        data = await self._request(
            "GET", "/gallery", params={"owner": owner.owner_id, "owner_type": owner.owner_type}
        )
        return [GalleryEntry.model_validate(item) for item in data or []]

    async def create_entry(self, entry: GalleryEntryCreate) -> GalleryEntry:
        data = await self._request("POST", "/gallery", json=entry.model_dump(exclude_none=True))
        return GalleryEntry.model_validate(data)

    async def update_entry(self, entry_id: int, **changes) -> GalleryEntry:
        """PATCH caption and/or display_order; only the given keys are sent."""
        data = await self._request("PATCH", f"/gallery/{entry_id}", json=changes)
        return GalleryEntry.model_validate(data)

    async def delete_entry(self, entry_id: int) -> None:
        await self._request("DELETE", f"/gallery/{entry_id}")

    async def set_feature(self, entry_id: int) -> GalleryEntry:
        data = await self._request("PUT", f"/feature/{entry_id}")
        return GalleryEntry.model_validate(data)

    # Files

    async def upload(self, content: bytes, filename: str, session_id: str, content_type: str = "image/jpeg") -> str:
        data = await self._request(
            "POST",
            "/files/upload",
            files={"file": (filename, content, content_type)},
            data={"session_id": session_id},
        )
        return data["url"]

    async def commit(self, session_id: str, urls: Optional[Iterable[str]] = None) -> List[str]:
        payload: Dict[str, Any] = {"session_id": session_id}
        if urls is not None:
            payload["urls"] = list(urls)
        data = await self._request("POST", "/files/commit", json=payload)
        return data["committed_urls"]

    async def cleanup(
        self,
        session_id: Optional[str],
        preserve_urls: Iterable[str],
        file_url: Optional[str] = None,
    ) -> bool:
        payload: Dict[str, Any] = {"session_id": session_id, "preserve_urls": list(preserve_urls)}
        if file_url:
            payload["file_url"] = file_url
        data = await self._request("POST", "/files/cleanup", json=payload)
        return bool(data and data.get("success"))
