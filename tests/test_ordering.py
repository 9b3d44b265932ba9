from __future__ import annotations

import httpx
import pytest
from conftest import run

from app.gallery.ordering import OrderManager, find_entry


@pytest.fixture
def mounted(manager, api, owner):
    api.seed(owner, "https://cdn.test/a.jpg", 2, is_feature=True)
    api.seed(owner, "https://cdn.test/b.jpg", 5)
    api.seed(owner, "https://cdn.test/c.jpg", 7)
    run(manager.mount())
    return manager


def test_find_entry_raises_for_unknown_id(mounted):
    with pytest.raises(KeyError):
        find_entry(mounted.gallery, 99)


def test_move_up_swaps_with_nearest_lower_order(mounted, api):
    assert run(mounted.move_up(2)) is True

    assert api.by_id(1).display_order == 5
    assert api.by_id(2).display_order == 2
    assert api.by_id(3).display_order == 7
    assert find_entry(mounted.gallery, 2).display_order == 2
    assert api.updates == [(2, {"display_order": 2}), (1, {"display_order": 5})]


def test_move_down_swaps_with_nearest_higher_order(mounted, api):
    assert run(mounted.move_down(2)) is True
    assert api.by_id(2).display_order == 7
    assert api.by_id(3).display_order == 5


def test_move_without_neighbour_is_a_noop(mounted, api):
    assert run(mounted.move_up(1)) is False
    assert run(mounted.move_down(3)) is False
    assert api.updates == []


def test_move_with_unknown_order_is_a_noop(api, owner):
    api.seed(owner, "https://cdn.test/a.jpg", None)
    api.seed(owner, "https://cdn.test/b.jpg", 1)
    entries = run(api.list_gallery(owner))
    ordering = OrderManager(api)

    assert run(ordering.move_up(entries, 1, None)) is False
    assert run(ordering.move_down(entries, 1, None)) is False
    assert api.updates == []


def test_failed_swap_leaves_first_update_applied(mounted, api):
    api.fail_update_ids = {1}

    with pytest.raises(httpx.HTTPStatusError):
        run(mounted.move_up(2))

    # Not atomic: both now share order 2 until the next reorder
    assert api.by_id(2).display_order == 2
    assert api.by_id(1).display_order == 2


def test_reorder_renumbers_and_skips_unchanged(mounted, api):
    changed = run(mounted.reorder([1, 3, 2]))

    assert [e.id for e in changed] == [1, 3, 2]
    assert [(e.id, e.display_order) for e in mounted.gallery] == [(1, 1), (3, 2), (2, 3)]

    api.updates.clear()
    assert run(mounted.reorder([1, 3, 2])) == []
    assert api.updates == []


def test_reorder_only_patches_changed_entries(api, owner):
    api.seed(owner, "https://cdn.test/a.jpg", 1)
    api.seed(owner, "https://cdn.test/b.jpg", 2)
    api.seed(owner, "https://cdn.test/c.jpg", 2)
    entries = run(api.list_gallery(owner))

    run(OrderManager(api).reorder(entries))

    assert api.updates == [(3, {"display_order": 3})]


def test_set_feature_is_exclusive(mounted, api):
    run(mounted.set_feature(3))

    assert [e.is_feature for e in mounted.gallery] == [False, False, True]
    assert [api.by_id(i).is_feature for i in (1, 2, 3)] == [False, False, True]


def test_set_feature_failure_restores_previous_flags(mounted, api, notifications):
    api.fail_feature = True

    with pytest.raises(httpx.HTTPStatusError):
        run(mounted.set_feature(3))

    assert [e.is_feature for e in mounted.gallery] == [True, False, False]
    assert notifications[-1][0] == "Update failed"
    assert notifications[-1][2] == "destructive"


def test_caption_update_tracks_unsaved_changes(mounted, api):
    run(mounted.update_caption(2, "Courtyard"))

    assert api.by_id(2).caption == "Courtyard"
    assert find_entry(mounted.gallery, 2).caption == "Courtyard"
    assert mounted.has_unsaved_changes() is False
    assert mounted.has_recent_edit() is True


def test_failed_caption_update_counts_as_unsaved(mounted, api):
    api.fail_update_ids = {2}

    with pytest.raises(httpx.HTTPStatusError):
        run(mounted.update_caption(2, "Courtyard"))

    assert mounted.has_unsaved_changes() is True
    assert mounted.unsaved_changes_count() == 1


def test_delete_entry_removes_from_gallery(mounted, api):
    run(mounted.delete_entry(2))
    assert [e.id for e in mounted.gallery] == [1, 3]
    assert [e.id for e in api.entries] == [1, 3]


def test_failed_caption_update_notifies(mounted, api, notifications):
    api.fail_update_ids = {1}

    with pytest.raises(httpx.HTTPStatusError):
        run(mounted.update_caption(1, "Roof"))

    assert notifications[-1] == ("Update failed", "Failed to update the image. Please try again.", "destructive")


def test_failed_delete_notifies_and_keeps_entry(mounted, api, notifications):
    async def broken_delete(entry_id):
        raise RuntimeError("gateway timeout")

    api.delete_entry = broken_delete

    with pytest.raises(RuntimeError):
        run(mounted.delete_entry(2))

    assert notifications[-1][0] == "Deletion failed"
    assert notifications[-1][2] == "destructive"
    assert [e.id for e in mounted.gallery] == [1, 2, 3]
    assert mounted.has_unsaved_changes() is True


@pytest.mark.parametrize("action", [
    lambda m: m.move_up(2),
    lambda m: m.move_down(2),
    lambda m: m.reorder([3, 2, 1]),
])
def test_failed_reordering_notifies(mounted, api, notifications, action):
    api.fail_update_ids = {1, 2, 3}

    with pytest.raises(httpx.HTTPStatusError):
        run(action(mounted))

    assert notifications[-1][0] == "Update failed"
    assert notifications[-1][2] == "destructive"
