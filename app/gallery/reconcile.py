"""
Saving pending images into the persisted gallery.

The pending list is merged with its mirror, de-duplicated against the
gallery as the API reports it (by normalized URL), and only new images are
created. Every tracked upload session is then re-committed with every URL
still in use, so committing can never delete a file the owner needs.
"""
from dataclasses import dataclass, field
from typing import List, Optional
import logging

from app.gallery.client import GalleryApiClient
from app.gallery.pending import PendingItemStore
from app.gallery.sessions import UploadSessionTracker
from app.schemas import GalleryEntry, GalleryEntryCreate, Owner, PendingImage
from app.utils.urls import normalize_url

logger = logging.getLogger(__name__)

NOOP = "noop"
DEFERRED = "deferred"
SAVED = "saved"


@dataclass
class CommitResult:
    status: str
    created: List[GalleryEntry] = field(default_factory=list)
    skipped: int = 0
    committed_sessions: List[str] = field(default_factory=list)
    uncommitted_sessions: List[str] = field(default_factory=list)


class PersistError(Exception):
    """
    Creating a gallery entry failed part-way through a save.

    Attributes:
        succeeded: Entries created before the failure
        failed: The pending image whose creation failed
        not_attempted: Pending images after the failed one
        cause: The underlying API error
    """

    def __init__(
        self,
        succeeded: List[GalleryEntry],
        failed: PendingImage,
        not_attempted: List[PendingImage],
        cause: Exception,
    ):
        self.succeeded = succeeded
        self.failed = failed
        self.not_attempted = not_attempted
        self.cause = cause
        super().__init__(
            f"Saved {len(succeeded)} image(s) before failing on {failed.url}: {cause}"
        )


def merge_pending(in_memory: List[PendingImage], mirrored: List[PendingImage]) -> List[PendingImage]:
    """Union of both lists, keeping in-memory entries and their order first."""
    if not in_memory:
        return list(mirrored)
    seen = {image.url for image in in_memory}
    return list(in_memory) + [image for image in mirrored if image.url not in seen]


def select_new(pending: List[PendingImage], persisted: List[GalleryEntry]) -> List[PendingImage]:
    """
    Pending images whose normalized URL is neither persisted nor repeated
    earlier in the pending list.
    """
    known = {}
    for entry in persisted:
        known.setdefault(normalize_url(entry.image_url), entry.image_url)

    fresh = []
    for image in pending:
        key = normalize_url(image.url)
        if key in known:
            if known[key] != image.url:
                logger.warning(
                    f"URL collision: {image.url} and {known[key]} differ only by query string, "
                    f"treating them as the same image"
                )
            continue
        known[key] = image.url
        fresh.append(image)
    return fresh


class ReconciliationEngine:
    """Turns the pending list of one owner into gallery entries."""

    def __init__(self, api: GalleryApiClient, store: PendingItemStore, tracker: UploadSessionTracker):
        self.api = api
        self.store = store
        self.tracker = tracker

    async def collect_pending(self) -> List[PendingImage]:
        """In-memory pending images plus anything only the mirror still has."""
        mirrored = await self.store.load_mirror()
        merged = merge_pending(self.store.items, mirrored)
        if len(merged) != len(self.store.items):
            logger.info(
                f"Recovered {len(merged) - len(self.store.items)} pending image(s) from the mirror "
                f"for {self.store.key}"
            )
        return merged

    async def _commit_sessions(self, urls: List[str], result: CommitResult) -> None:
        for session_id in self.tracker.session_ids():
            try:
                await self.api.commit(session_id, urls)
                self.tracker.mark_committed(session_id)
                result.committed_sessions.append(session_id)
                logger.info(f"Committed gallery upload session: {session_id}")
            except Exception as e:
                # Persisted URLs are protected by the API even while uncommitted
                logger.warning(f"Could not commit upload session {session_id}: {str(e)}")
                result.uncommitted_sessions.append(session_id)

    async def save(self, owner: Optional[Owner] = None) -> CommitResult:
        """
        Persist every new pending image for the owner.

        Raises:
            PersistError: A create call failed; the pending list is untouched
            httpx.HTTPError: The current gallery could not be fetched
        """
        owner = owner or self.store.owner
        pending = await self.collect_pending()
        if not pending:
            logger.info(f"No pending images to save for {self.store.key}")
            return CommitResult(status=NOOP)

        if owner.is_draft:
            # Nothing can reference the files yet; keep them alive until the owner exists
            result = CommitResult(status=DEFERRED)
            await self._commit_sessions([image.url for image in pending], result)
            logger.info(f"{len(pending)} image(s) will be added after {owner.owner_type} creation")
            return result

        persisted = await self.api.list_gallery(owner)
        fresh = select_new(pending, persisted)
        logger.info(
            f"Saving {len(fresh)} new image(s) to {owner.owner_type} {owner.owner_id} "
            f"({len(pending) - len(fresh)} already in the gallery)"
        )

        created: List[GalleryEntry] = []
        for position, image in enumerate(fresh):
            try:
                entry = await self.api.create_entry(
                    GalleryEntryCreate(
                        owner_type=owner.owner_type,
                        owner_id=owner.owner_id,
                        image_url=image.url,
                        caption=image.caption,
                        display_order=image.display_order,
                    )
                )
            except Exception as e:
                logger.error(f"Error saving gallery image {image.url}: {str(e)}")
                raise PersistError(created, image, fresh[position + 1:], e) from e
            created.append(entry)

        result = CommitResult(status=SAVED, created=created, skipped=len(pending) - len(fresh))
        keep = [image.url for image in pending] + [entry.image_url for entry in persisted + created]
        await self._commit_sessions(list(dict.fromkeys(keep)), result)

        await self.store.clear()
        return result
