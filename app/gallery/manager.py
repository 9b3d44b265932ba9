"""
Gallery manager for one owner (project or blog post).

Ties together upload sessions, the pending list and its mirror, saving,
cleanup and ordering. One manager exists per owner at a time.

Usage:
    manager = GalleryManager.from_settings(Owner(owner_type="project", owner_id=12))
    await manager.mount()
    session_id = manager.begin_batch()
    await manager.upload_batch([("site.jpg", data, "image/jpeg")], session_id)
    await manager.save()
    manager.unmount()
"""
import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Tuple, TypeVar
import logging

from app.gallery.cleanup import CleanupCoordinator
from app.gallery.client import GalleryApiClient
from app.gallery.mirror import PendingMirror, RedisPendingMirror
from app.gallery.ordering import OrderManager, find_entry
from app.gallery.pending import AddResult, PendingItemStore
from app.gallery.reconcile import CommitResult, DEFERRED, PersistError, ReconciliationEngine, SAVED
from app.gallery.sessions import UploadSessionTracker
from app.schemas import GalleryEntry, Owner

logger = logging.getLogger(__name__)

# (title, description, variant) where variant is "default" or "destructive"
Notifier = Callable[[str, str, str], None]

UploadFile = Tuple[str, bytes, str]

T = TypeVar("T")


def log_notification(title: str, description: str, variant: str = "default") -> None:
    level = logging.WARNING if variant == "destructive" else logging.INFO
    logger.log(level, f"{title}: {description}")


class GalleryManager:
    def __init__(
        self,
        owner: Owner,
        api: GalleryApiClient,
        mirror: PendingMirror,
        max_images: Optional[int] = None,
        notify: Notifier = log_notification,
    ):
        self.owner = owner
        self.api = api
        self.notify = notify
        self.tracker = UploadSessionTracker()
        self.pending = PendingItemStore(owner, mirror, max_images=max_images)
        self.cleanup = CleanupCoordinator(api, self.tracker)
        self.reconciler = ReconciliationEngine(api, self.pending, self.tracker)
        self.ordering = OrderManager(api)
        self.gallery: List[GalleryEntry] = []
        self.modified: Set[int] = set()

    @classmethod
    def from_settings(cls, owner: Owner, **kwargs) -> "GalleryManager":
        return cls(owner, GalleryApiClient(), RedisPendingMirror(), **kwargs)

    @property
    def max_images(self) -> int:
        return self.pending.max_images

    @property
    def image_count(self) -> int:
        return len(self.gallery) + len(self.pending)

    def can_add_more(self) -> bool:
        return self.image_count < self.max_images

    # Lifecycle

    async def mount(self) -> None:
        """Restore pending images from the mirror and load the gallery."""
        await self.pending.hydrate()
        await self.refresh()

    async def refresh(self) -> List[GalleryEntry]:
        if not self.owner.is_draft:
            self.gallery = await self.api.list_gallery(self.owner)
        return self.gallery

    def unmount(self) -> List[asyncio.Task]:
        """Fire-and-forget cleanup of uncommitted sessions."""
        return self.cleanup.cleanup_on_unmount(list(self.gallery), list(self.pending.items))

    async def attach_owner(self, owner_id: int) -> None:
        """The draft owner has been created: move pending images under its id."""
        logger.info(f"Updating {self.owner.owner_type} ID from {self.owner.owner_id} to {owner_id}")
        self.owner = Owner(owner_type=self.owner.owner_type, owner_id=owner_id, is_draft=False)
        await self.pending.rekey(self.owner)

    # Uploads

    def begin_batch(self) -> str:
        return self.tracker.issue()

    def dismiss_batch(self, session_id: str) -> None:
        """
        The admin abandoned a batch. In-flight uploads keep going, but their
        URLs never reach the pending list and the session gets cleaned up.
        """
        self.tracker.dismiss(session_id)

    async def dismiss_dialog(self, session_id: str) -> bool:
        """Add dialog closed without saving: clean up its session now."""
        self.tracker.dismiss(session_id)
        return await self.cleanup.dismiss(session_id, self.gallery, self.pending.items)

    async def upload_batch(self, files: Sequence[UploadFile], session_id: Optional[str] = None) -> AddResult:
        """
        Upload files one by one, then add the resulting URLs as pending.
        Files that fail to upload are skipped.
        """
        session_id = session_id or self.begin_batch()
        urls = []
        for position, (filename, content, content_type) in enumerate(files, start=1):
            try:
                url = await self.api.upload(content, filename, session_id, content_type=content_type)
            except Exception as e:
                logger.error(f"Error uploading file {position}/{len(files)} ({filename}): {str(e)}")
                continue
            urls.append(url)
            self.tracker.add_urls(session_id, [url])

        if not urls:
            if files:
                self.notify("Upload failed", "There was an error uploading your images. Please try again.", "destructive")
            return AddResult()
        return await self.add_uploaded(urls, session_id)

    async def add_uploaded(self, urls: Sequence[str], session_id: str) -> AddResult:
        """
        Take URLs of a finished upload batch: commit what fits in the gallery,
        add it as pending, and clean up the rest.
        """
        self.tracker.add_urls(session_id, urls)

        if self.tracker.get(session_id).dismissed:
            logger.info(f"Batch {session_id} was dismissed, discarding {len(urls)} uploaded file(s)")
            await self.cleanup.cleanup(session_id, self._preserve())
            return AddResult()

        # Same prefix the pending store will admit
        admitted_urls = list(urls)[:self.pending.remaining_capacity(self.gallery)]
        if admitted_urls:
            try:
                await self.api.commit(session_id, admitted_urls)
                self.tracker.mark_committed(session_id)
            except Exception as e:
                # Still keep the images; save() commits the session again
                logger.error(f"Error committing files for session {session_id}: {str(e)}")

        result = await self.pending.add(urls, self.gallery)

        if result.rejected:
            await self.cleanup.cleanup(session_id, self._preserve())
            if result.admitted:
                self.notify(
                    "Maximum images reached",
                    f"Added {len(result.admitted)} image(s). Galleries can have a maximum of {self.max_images} images.",
                    "default",
                )
            else:
                self.notify(
                    "Maximum images reached",
                    f"Galleries can have a maximum of {self.max_images} images. Delete some images to add more.",
                    "destructive",
                )
        elif result.admitted:
            self.notify("Images added", f"{len(result.admitted)} image(s) ready to be saved.", "default")
        return result

    def _preserve(self) -> List[str]:
        return [e.image_url for e in self.gallery] + self.pending.urls()

    # Pending edits

    async def remove_pending(self, index: int) -> bool:
        return await self.cleanup.discard_pending(self.pending, index, self.gallery)

    async def update_pending_caption(self, index: int, caption: str) -> None:
        await self.pending.update_caption(index, caption)

    async def update_pending_order(self, index: int, value) -> bool:
        return await self.pending.update_order(index, value)

    # Saving

    async def save(self) -> CommitResult:
        """
        Save pending images to the gallery.

        Raises:
            PersistError: Some images could not be created; pending images are kept
            httpx.HTTPError: The gallery could not be fetched; nothing was saved
        """
        try:
            result = await self.reconciler.save(self.owner)
        except PersistError as e:
            self.notify(
                "Save failed",
                f"Saved {len(e.succeeded)} image(s), failed on 1. Please try again.",
                "destructive",
            )
            raise
        except Exception:
            self.notify("Save failed", "There was an error saving your images. Please try again.", "destructive")
            raise

        if result.status == SAVED:
            await self.refresh()
            self.notify("Gallery updated", f"{len(result.created)} image(s) added to the gallery successfully.", "default")
        elif result.status == DEFERRED:
            self.notify(
                "Images ready",
                f"{len(self.pending)} image(s) will be added after {self.owner.owner_type} creation.",
                "default",
            )
        return result

    # Persisted entries

    async def _tracked_update(self, entry_id: int, **changes) -> GalleryEntry:
        self.modified.add(entry_id)
        self.pending.mark_edited()
        try:
            updated = await self.api.update_entry(entry_id, **changes)
        except Exception:
            self.notify("Update failed", "Failed to update the image. Please try again.", "destructive")
            raise
        self.modified.discard(entry_id)
        entry = find_entry(self.gallery, entry_id)
        for name, value in changes.items():
            setattr(entry, name, value)
        return updated

    async def update_caption(self, entry_id: int, caption: str) -> GalleryEntry:
        return await self._tracked_update(entry_id, caption=caption)

    async def update_order(self, entry_id: int, display_order: Optional[int]) -> Optional[GalleryEntry]:
        if display_order is None:
            return None
        return await self._tracked_update(entry_id, display_order=display_order)

    async def delete_entry(self, entry_id: int) -> None:
        self.modified.add(entry_id)
        try:
            await self.api.delete_entry(entry_id)
        except Exception:
            self.notify("Deletion failed", "Failed to delete the image. Please try again.", "destructive")
            raise
        self.modified.discard(entry_id)
        self.gallery = [entry for entry in self.gallery if entry.id != entry_id]
        self.notify("Image deleted", "The image has been removed from the gallery.", "default")

    async def _reordering(self, move: Awaitable[T]) -> T:
        try:
            return await move
        except Exception:
            self.notify("Update failed", "Failed to update the image order. Please try again.", "destructive")
            raise

    async def move_up(self, entry_id: int, current_order: Optional[int] = None) -> bool:
        if current_order is None:
            current_order = find_entry(self.gallery, entry_id).display_order
        return await self._reordering(self.ordering.move_up(self.gallery, entry_id, current_order))

    async def move_down(self, entry_id: int, current_order: Optional[int] = None) -> bool:
        if current_order is None:
            current_order = find_entry(self.gallery, entry_id).display_order
        return await self._reordering(self.ordering.move_down(self.gallery, entry_id, current_order))

    async def reorder(self, entry_ids: Sequence[int]) -> List[GalleryEntry]:
        sequence = [find_entry(self.gallery, entry_id) for entry_id in entry_ids]
        changed = await self._reordering(self.ordering.reorder(sequence))
        self.gallery.sort(key=lambda e: (e.display_order is None, e.display_order or 0, e.id))
        return changed

    async def set_feature(self, entry_id: int) -> GalleryEntry:
        try:
            return await self.ordering.set_feature(self.gallery, entry_id)
        except Exception:
            self.notify("Update failed", "Failed to set the feature image. Please try again.", "destructive")
            raise

    # State queries

    def has_pending(self) -> bool:
        return len(self.pending) > 0

    def has_unsaved_changes(self) -> bool:
        return self.has_pending() or bool(self.modified)

    def unsaved_changes_count(self) -> int:
        return len(self.pending) + len(self.modified)

    def has_recent_edit(self) -> bool:
        return self.pending.has_recent_edit()
