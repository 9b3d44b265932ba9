"""
Durable key-value mirror for pending gallery images.

The gallery manager writes its pending list here after every change so an
interrupted session (crash, navigation, remount) can pick it up again.
"""
from typing import Optional
import logging

import redis.asyncio as redis

from app.config import settings
from app.schemas import Owner

logger = logging.getLogger(__name__)


def mirror_key(owner: Owner, prefix: Optional[str] = None) -> str:
    """Mirror key for one owner, e.g. pendingImages_project_12."""
    return f"{prefix or settings.PENDING_MIRROR_PREFIX}_{owner.owner_type}_{owner.owner_id}"


class PendingMirror:
    """
    Interface of the mirror: string values under string keys.
    Implementations must make set() visible to a later get() from a new process.
    """

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError


class RedisPendingMirror(PendingMirror):
    """Mirror backed by Redis; keys never expire."""

    def __init__(self, client: Optional[redis.Redis] = None, url: Optional[str] = None):
        self._client = client or redis.Redis.from_url(url or settings.REDIS_URL, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._client.set(key, value)

    async def remove(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()
