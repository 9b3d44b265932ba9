"""
Deleting uploaded files nobody is going to use.

Every cleanup request carries the set of URLs that must survive: all
persisted gallery URLs plus all pending URLs, minus the single URL being
discarded. Cleanup is best effort; an orphaned file is a leak, not an error.
"""
import asyncio
from typing import Iterable, List, Set
import logging

from app.gallery.client import GalleryApiClient
from app.gallery.pending import PendingItemStore
from app.gallery.sessions import UploadSessionTracker
from app.schemas import GalleryEntry, PendingImage
from app.utils.urls import normalize_url, normalized_set

logger = logging.getLogger(__name__)

# Unmount cleanups outlive the manager that started them
_background_tasks: Set[asyncio.Task] = set()


def preserve_set(
    persisted: Iterable[GalleryEntry],
    pending: Iterable[PendingImage],
) -> List[str]:
    """URLs still in use: persisted and pending."""
    urls = [entry.image_url for entry in persisted if entry.image_url]
    urls.extend(image.url for image in pending if image.url)
    return list(dict.fromkeys(urls))


class CleanupCoordinator:
    def __init__(self, api: GalleryApiClient, tracker: UploadSessionTracker):
        self.api = api
        self.tracker = tracker

    async def cleanup(self, session_id: str, preserve_urls: List[str]) -> bool:
        """Ask the provider to drop a session's unpreserved files. Never raises."""
        try:
            success = await self.api.cleanup(session_id, preserve_urls)
            logger.info(
                f"Cleanup result for session {session_id}: {'success' if success else 'failed'} "
                f"({len(preserve_urls)} URL(s) preserved)"
            )
            return success
        except Exception as e:
            logger.error(f"Error cleaning up upload session {session_id}: {str(e)}")
            return False

    def cleanup_on_unmount(
        self,
        persisted: Iterable[GalleryEntry],
        pending: Iterable[PendingImage],
    ) -> List[asyncio.Task]:
        """
        Schedule cleanup of every uncommitted session without waiting for it.
        The tasks only use the snapshot taken here. Needs a running event loop.
        """
        sessions = self.tracker.uncommitted()
        if not sessions:
            logger.debug("No cleanup needed on unmount: every upload session is committed")
            return []

        preserve = preserve_set(persisted, pending)
        tasks = []
        for session in sessions:
            task = asyncio.create_task(self.cleanup(session.session_id, list(preserve)))
            _background_tasks.add(task)
            task.add_done_callback(_background_tasks.discard)
            tasks.append(task)
        logger.info(f"Scheduled cleanup of {len(tasks)} uncommitted upload session(s) on unmount")
        return tasks

    async def dismiss(
        self,
        session_id: str,
        persisted: Iterable[GalleryEntry],
        pending: Iterable[PendingImage],
    ) -> bool:
        """Clean up a session whose dialog was closed without committing."""
        session = self.tracker.get(session_id)
        if session is None or session.committed:
            return False
        return await self.cleanup(session_id, preserve_set(persisted, pending))

    async def discard_pending(
        self,
        store: PendingItemStore,
        index: int,
        persisted: List[GalleryEntry],
    ) -> bool:
        """
        Remove one pending image and delete its file if nothing else uses it.

        Returns:
            bool: True if a remote deletion was requested
        """
        image = await store.remove(index)
        # The discarded image is no longer in store.items; a duplicate of it still counts
        preserve = preserve_set(persisted, store.items)

        if normalize_url(image.url) in normalized_set(preserve):
            logger.info(f"Not deleting file {image.url} as it is still used by the gallery")
            return False

        try:
            await self.api.cleanup(self.tracker.session_for_url(image.url), preserve, file_url=image.url)
            logger.info(f"Removed unused file: {image.url}")
        except Exception as e:
            logger.error(f"Error cleaning up deleted pending image {image.url}: {str(e)}")
        return True
