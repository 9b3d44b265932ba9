"""
Pending gallery images: uploaded files that have not been saved yet.

The in-memory list is mirrored to durable storage after every change and
re-read on (re)initialization, because a remount loses in-memory state.
"""
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence
import logging
import time

from pydantic import TypeAdapter, ValidationError

from app.config import settings
from app.gallery.mirror import PendingMirror, mirror_key
from app.schemas import GalleryEntry, Owner, PendingImage

logger = logging.getLogger(__name__)

_pending_list = TypeAdapter(List[PendingImage])

DEFAULT_CAPTIONS = {
    "project": "Project image {n}",
    "post": "Blog image {n}",
}


@dataclass
class AddResult:
    admitted: List[PendingImage] = field(default_factory=list)
    rejected: int = 0


def next_display_order(persisted: Iterable[GalleryEntry], pending: Iterable[PendingImage]) -> int:
    """One past the highest order in use; unordered entries count as 0."""
    orders = [entry.display_order or 0 for entry in persisted]
    orders.extend(image.display_order for image in pending)
    return max([0] + orders) + 1


class PendingItemStore:
    """
    Ordered list of pending images for one owner.

    Args:
        owner: Gallery owner; scopes the mirror key
        mirror: Durable key-value store the list is mirrored into
        max_images: Cap on persisted + pending images
        clock: Time source for the recently-edited flag
    """

    def __init__(
        self,
        owner: Owner,
        mirror: PendingMirror,
        max_images: Optional[int] = None,
        recent_edit_window: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.owner = owner
        self.max_images = settings.GALLERY_MAX_IMAGES if max_images is None else max_images
        self.recent_edit_window = (
            settings.RECENT_EDIT_WINDOW_SECONDS if recent_edit_window is None else recent_edit_window
        )
        self._mirror = mirror
        self._clock = clock
        self._last_edited: Optional[float] = None
        self.items: List[PendingImage] = []

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def key(self) -> str:
        return mirror_key(self.owner)

    def urls(self) -> List[str]:
        return [image.url for image in self.items]

    async def load_mirror(self) -> List[PendingImage]:
        """
        Read the mirrored list for this owner.
        Corrupt data is deleted and treated as an empty list.
        """
        try:
            raw = await self._mirror.get(self.key)
            if not raw:
                return []
            return _pending_list.validate_json(raw)
        except (ValidationError, UnicodeDecodeError) as e:
            logger.error(f"Discarding unreadable pending images under {self.key}: {str(e)}")
            await self._mirror.remove(self.key)
            return []

    async def hydrate(self) -> List[PendingImage]:
        """Replace the in-memory list with whatever the mirror holds."""
        self.items = await self.load_mirror()
        if self.items:
            logger.info(f"Restored {len(self.items)} pending image(s) for {self.key}")
        return self.items

    async def _sync(self) -> None:
        if self.items:
            await self._mirror.set(self.key, _pending_list.dump_json(self.items).decode("utf-8"))
        else:
            await self._mirror.remove(self.key)

    def remaining_capacity(self, persisted: Sequence[GalleryEntry]) -> int:
        return max(0, self.max_images - (len(persisted) + len(self.items)))

    async def add(
        self,
        urls: Sequence[str],
        persisted: Sequence[GalleryEntry] = (),
        caption_template: Optional[str] = None,
    ) -> AddResult:
        """
        Append uploaded URLs as pending images.

        Only as many URLs as the gallery still has room for are admitted; the
        rest are counted in AddResult.rejected.
        """
        template = caption_template or DEFAULT_CAPTIONS.get(self.owner.owner_type, "Image {n}")
        allowed = self.remaining_capacity(persisted)
        admitted_urls = list(urls)[:allowed]
        rejected = len(urls) - len(admitted_urls)

        start = next_display_order(persisted, self.items)
        admitted = [
            PendingImage(url=url, caption=template.format(n=idx + 1), display_order=start + idx)
            for idx, url in enumerate(admitted_urls)
        ]
        if admitted:
            self.items.extend(admitted)
            await self._sync()

        if rejected:
            logger.warning(
                f"Gallery limit of {self.max_images} reached for {self.key}: "
                f"admitted {len(admitted)}, rejected {rejected}"
            )
        else:
            logger.info(f"Added {len(admitted)} pending image(s) for {self.key}")
        return AddResult(admitted=admitted, rejected=rejected)

    async def remove(self, index: int) -> PendingImage:
        removed = self.items.pop(index)
        await self._sync()
        return removed

    async def update_caption(self, index: int, caption: str) -> None:
        self.items[index].caption = caption
        self.mark_edited()
        await self._sync()

    async def update_order(self, index: int, value) -> bool:
        """Set the display order from user input; non-integer input is ignored."""
        try:
            order = int(value)
        except (TypeError, ValueError):
            return False
        self.items[index].display_order = order
        self.mark_edited()
        await self._sync()
        return True

    async def clear(self) -> None:
        self.items = []
        await self._mirror.remove(self.key)

    async def rekey(self, owner: Owner) -> None:
        """Move the mirrored list to a new owner key (draft owner got created)."""
        old_key = self.key
        self.owner = owner
        if old_key != self.key:
            await self._mirror.remove(old_key)
            await self._sync()
            logger.info(f"Moved pending images from {old_key} to {self.key}")

    def mark_edited(self) -> None:
        self._last_edited = self._clock()

    def has_recent_edit(self) -> bool:
        if self._last_edited is None:
            return False
        return self._clock() - self._last_edited < self.recent_edit_window
