from __future__ import annotations

import asyncio
import io
from typing import Dict, List, Optional

import httpx
import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.gallery.manager import GalleryManager
from app.gallery.mirror import PendingMirror
from app.gallery.pending import PendingItemStore
from app.schemas import GalleryEntry, GalleryEntryCreate, Owner


def run(coro):
    return asyncio.run(coro)


def http_error(method: str, path: str, status_code: int = 500) -> httpx.HTTPStatusError:
    request = httpx.Request(method, f"http://testserver/api{path}")
    response = httpx.Response(status_code, request=request, json={"error": "boom"})
    return httpx.HTTPStatusError(f"Server error '{status_code}' for url '{request.url}'", request=request, response=response)


def png_bytes(color: str = "red") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color).save(buffer, format="PNG")
    return buffer.getvalue()


class InMemoryMirror(PendingMirror):
    def __init__(self):
        self.data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


class FakeGalleryApi:
    """Stands in for GalleryApiClient; keeps server-side state in memory."""

    def __init__(self):
        self.entries: List[GalleryEntry] = []
        self._next_id = 1
        self.create_calls = 0
        self.fail_create_on: set = set()
        self.fail_update_ids: set = set()
        self.fail_feature = False
        self.fail_cleanup = False
        self.fail_upload_names: set = set()
        self.updates: List[tuple] = []
        self.commits: List[tuple] = []
        self.cleanups: List[dict] = []
        self.uploads: List[tuple] = []

    def seed(self, owner: Owner, url: str, display_order: Optional[int], is_feature: bool = False) -> GalleryEntry:
        entry = GalleryEntry(
            id=self._next_id,
            owner_type=owner.owner_type,
            owner_id=owner.owner_id,
            image_url=url,
            display_order=display_order,
            is_feature=is_feature,
        )
        self._next_id += 1
        self.entries.append(entry)
        return entry

    def by_id(self, entry_id: int) -> GalleryEntry:
        return next(e for e in self.entries if e.id == entry_id)

    async def list_gallery(self, owner: Owner) -> List[GalleryEntry]:
        owned = [e for e in self.entries if e.owner_type == owner.owner_type and e.owner_id == owner.owner_id]
        owned.sort(key=lambda e: (e.display_order is None, e.display_order or 0, e.id))
        return [e.model_copy() for e in owned]

    async def create_entry(self, entry: GalleryEntryCreate) -> GalleryEntry:
        self.create_calls += 1
        if self.create_calls in self.fail_create_on:
            raise http_error("POST", "/gallery")
        owner = Owner(owner_type=entry.owner_type, owner_id=entry.owner_id)
        created = self.seed(owner, entry.image_url, entry.display_order)
        created.caption = entry.caption
        return created.model_copy()

    async def update_entry(self, entry_id: int, **changes) -> GalleryEntry:
        if entry_id in self.fail_update_ids:
            raise http_error("PATCH", f"/gallery/{entry_id}")
        self.updates.append((entry_id, changes))
        entry = self.by_id(entry_id)
        for name, value in changes.items():
            setattr(entry, name, value)
        return entry.model_copy()

    async def delete_entry(self, entry_id: int) -> None:
        self.entries = [e for e in self.entries if e.id != entry_id]

    async def set_feature(self, entry_id: int) -> GalleryEntry:
        if self.fail_feature:
            raise http_error("PUT", f"/feature/{entry_id}")
        target = self.by_id(entry_id)
        for entry in self.entries:
            if entry.owner_type == target.owner_type and entry.owner_id == target.owner_id:
                entry.is_feature = entry.id == entry_id
        return target.model_copy()

    async def upload(self, content: bytes, filename: str, session_id: str, content_type: str = "image/jpeg") -> str:
        if filename in self.fail_upload_names:
            raise http_error("POST", "/files/upload")
        url = f"https://res.cloudinary.com/demo/image/upload/v1/gallery/{filename}"
        self.uploads.append((session_id, url))
        return url

    async def commit(self, session_id: str, urls=None) -> List[str]:
        self.commits.append((session_id, list(urls) if urls is not None else None))
        return list(urls or [])

    async def cleanup(self, session_id, preserve_urls, file_url=None) -> bool:
        self.cleanups.append({"session_id": session_id, "preserve_urls": list(preserve_urls), "file_url": file_url})
        if self.fail_cleanup:
            raise http_error("POST", "/files/cleanup")
        return True


@pytest.fixture
def owner() -> Owner:
    return Owner(owner_type="project", owner_id=12)


@pytest.fixture
def mirror() -> InMemoryMirror:
    return InMemoryMirror()


@pytest.fixture
def api() -> FakeGalleryApi:
    return FakeGalleryApi()


@pytest.fixture
def store(owner, mirror) -> PendingItemStore:
    return PendingItemStore(owner, mirror, max_images=10)


@pytest.fixture
def notifications() -> list:
    return []


@pytest.fixture
def manager(owner, api, mirror, notifications) -> GalleryManager:
    return GalleryManager(
        owner,
        api,
        mirror,
        max_images=10,
        notify=lambda title, description, variant: notifications.append((title, description, variant)),
    )


@pytest.fixture
def db_sessionmaker(tmp_path):
    """File-backed SQLite with the gallery schema; NullPool so every event loop gets fresh connections."""
    from app.database import Base
    from app import models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gallery.db'}", poolclass=NullPool)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    run(create_schema())
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def cloudinary_calls(monkeypatch) -> dict:
    """Replace Cloudinary uploads/deletions with in-memory fakes."""
    from app.services import cloudinary_service

    calls = {"uploaded": [], "deleted": []}

    async def fake_upload(file, folder=None, max_retries=3):
        n = len(calls["uploaded"]) + 1
        result = {
            "url": f"https://res.cloudinary.com/demo/image/upload/v1/gallery/img{n}.webp",
            "public_id": f"gallery/img{n}",
        }
        calls["uploaded"].append(result["url"])
        return result

    async def fake_delete(public_id, max_retries=3):
        calls["deleted"].append(public_id)
        return {"result": "ok"}

    monkeypatch.setattr(cloudinary_service, "upload_image", fake_upload)
    monkeypatch.setattr(cloudinary_service, "delete_image", fake_delete)
    return calls


@pytest.fixture
def api_app(db_sessionmaker, cloudinary_calls):
    """The FastAPI app wired to the test database with admin checks bypassed."""
    from app.database import get_db
    from app.main import app
    from app.utils.auth import require_admin

    async def override_get_db():
        async with db_sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[require_admin] = lambda: True
    yield app
    app.dependency_overrides.clear()
