"""
Display order and feature image of persisted gallery entries.

Swaps are two independent PATCH calls. If one of them fails the two entries
can end up sharing an order; reorder() renumbers 1..n and repairs that.
"""
from typing import List, Optional
import logging

from app.gallery.client import GalleryApiClient
from app.schemas import GalleryEntry
from app.utils.optimistic import optimistic_update

logger = logging.getLogger(__name__)


def find_entry(entries: List[GalleryEntry], entry_id: int) -> GalleryEntry:
    for entry in entries:
        if entry.id == entry_id:
            return entry
    raise KeyError(f"Gallery entry {entry_id} not found")


class OrderManager:
    def __init__(self, api: GalleryApiClient):
        self.api = api

    async def _swap(self, entry: GalleryEntry, neighbour: GalleryEntry) -> None:
        current_order, target_order = entry.display_order, neighbour.display_order
        await self.api.update_entry(entry.id, display_order=target_order)
        entry.display_order = target_order
        await self.api.update_entry(neighbour.id, display_order=current_order)
        neighbour.display_order = current_order
        logger.info(f"Swapped display order of images {entry.id} and {neighbour.id}")

    def _neighbour(self, entries: List[GalleryEntry], entry_id: int, current_order: int, lower: bool) -> Optional[GalleryEntry]:
        if lower:
            candidates = [e for e in entries if e.id != entry_id and e.display_order is not None and e.display_order < current_order]
            return max(candidates, key=lambda e: e.display_order, default=None)
        candidates = [e for e in entries if e.id != entry_id and e.display_order is not None and e.display_order > current_order]
        return min(candidates, key=lambda e: e.display_order, default=None)

    async def move_up(self, entries: List[GalleryEntry], entry_id: int, current_order: Optional[int]) -> bool:
        """Swap with the nearest entry that has a lower display order."""
        if current_order is None:
            return False
        neighbour = self._neighbour(entries, entry_id, current_order, lower=True)
        if neighbour is None:
            return False
        await self._swap(find_entry(entries, entry_id), neighbour)
        return True

    async def move_down(self, entries: List[GalleryEntry], entry_id: int, current_order: Optional[int]) -> bool:
        """Swap with the nearest entry that has a higher display order."""
        if current_order is None:
            return False
        neighbour = self._neighbour(entries, entry_id, current_order, lower=False)
        if neighbour is None:
            return False
        await self._swap(find_entry(entries, entry_id), neighbour)
        return True

    async def reorder(self, new_sequence: List[GalleryEntry]) -> List[GalleryEntry]:
        """
        Number entries 1..n in the given sequence, updating only those whose
        order changes. Returns the updated entries.
        """
        changed = []
        for position, entry in enumerate(new_sequence, start=1):
            if entry.display_order == position:
                continue
            await self.api.update_entry(entry.id, display_order=position)
            entry.display_order = position
            changed.append(entry)
        logger.info(f"Reordered gallery: {len(changed)} of {len(new_sequence)} image(s) moved")
        return changed

    async def set_feature(self, entries: List[GalleryEntry], entry_id: int) -> GalleryEntry:
        """
        Mark one entry as the feature image. Local flags change first and are
        restored if the API call fails.
        """
        target = find_entry(entries, entry_id)
        previous = {entry.id: entry.is_feature for entry in entries}

        def apply():
            for entry in entries:
                entry.is_feature = entry.id == entry_id

        def revert():
            for entry in entries:
                entry.is_feature = previous.get(entry.id, False)
            logger.warning(f"Setting feature image {entry_id} failed, restored previous selection")

        await optimistic_update(apply, revert, lambda: self.api.set_feature(entry_id))
        logger.info(f"Image {entry_id} is now the feature image")
        return target
