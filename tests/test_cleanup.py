from __future__ import annotations

import asyncio

from conftest import run

from app.gallery.cleanup import CleanupCoordinator, preserve_set
from app.gallery.sessions import UploadSessionTracker
from app.schemas import GalleryEntry, PendingImage


def test_preserve_set_unions_persisted_and_pending():
    persisted = [GalleryEntry(id=1, owner_type="project", owner_id=1, image_url="https://cdn.test/a.jpg")]
    pending = [
        PendingImage(url="https://cdn.test/b.jpg", display_order=2),
        PendingImage(url="https://cdn.test/a.jpg", display_order=3),
    ]
    assert preserve_set(persisted, pending) == ["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"]


def test_cleanup_swallows_api_errors(api):
    api.fail_cleanup = True
    coordinator = CleanupCoordinator(api, UploadSessionTracker())
    assert run(coordinator.cleanup("session_1_abcdefg", [])) is False
    assert len(api.cleanups) == 1


def test_unmount_after_save_preserves_every_persisted_url(manager, api, owner):
    api.seed(owner, "https://cdn.test/existing.jpg", 1)
    run(manager.mount())

    async def scenario():
        session_id = manager.begin_batch()
        await manager.upload_batch(
            [("a.jpg", b"a", "image/jpeg"), ("b.jpg", b"b", "image/jpeg")], session_id
        )
        await manager.save()
        # A late upload into a fresh session that never gets committed
        late = manager.begin_batch()
        manager.tracker.add_urls(late, ["https://cdn.test/orphan.jpg"])
        await asyncio.gather(*manager.unmount())
        return late

    late = run(scenario())

    assert [c["session_id"] for c in api.cleanups] == [late]
    preserved = set(api.cleanups[0]["preserve_urls"])
    assert {e.image_url for e in api.entries} <= preserved
    assert "https://cdn.test/orphan.jpg" not in preserved


def test_unmount_with_everything_committed_schedules_nothing(manager):
    async def scenario():
        await manager.upload_batch([("a.jpg", b"a", "image/jpeg")])
        return manager.unmount()

    assert run(scenario()) == []


def test_unmount_cleanup_failure_is_not_raised(manager, api):
    api.fail_cleanup = True

    async def scenario():
        session_id = manager.begin_batch()
        manager.tracker.add_urls(session_id, ["https://cdn.test/orphan.jpg"])
        return await asyncio.gather(*manager.unmount())

    assert run(scenario()) == [False]


def test_removing_duplicate_pending_url_skips_remote_delete(manager, api):
    session_id = manager.begin_batch()
    run(manager.add_uploaded(["https://cdn.test/a.jpg", "https://cdn.test/a.jpg"], session_id))

    assert run(manager.remove_pending(0)) is False
    assert api.cleanups == []
    assert manager.pending.urls() == ["https://cdn.test/a.jpg"]


def test_removing_persisted_url_skips_remote_delete(manager, api, owner):
    api.seed(owner, "https://cdn.test/a.jpg", 1)
    run(manager.mount())
    run(manager.add_uploaded(["https://cdn.test/a.jpg?v=3"], manager.begin_batch()))

    assert run(manager.remove_pending(0)) is False
    assert api.cleanups == []


def test_removing_unique_pending_url_deletes_that_file(manager, api):
    session_id = manager.begin_batch()
    run(manager.add_uploaded(["https://cdn.test/a.jpg", "https://cdn.test/b.jpg"], session_id))

    assert run(manager.remove_pending(1)) is True

    assert api.cleanups == [{
        "session_id": session_id,
        "preserve_urls": ["https://cdn.test/a.jpg"],
        "file_url": "https://cdn.test/b.jpg",
    }]
    assert manager.pending.urls() == ["https://cdn.test/a.jpg"]


def test_dismissed_batch_never_reaches_pending(manager, api):
    session_id = manager.begin_batch()
    manager.dismiss_batch(session_id)

    result = run(manager.upload_batch([("late.jpg", b"x", "image/jpeg")], session_id))

    assert result.admitted == []
    assert len(manager.pending) == 0
    assert [c["session_id"] for c in api.cleanups] == [session_id]
    assert api.commits == []


def test_dismiss_dialog_cleans_uncommitted_session(manager, api):
    session_id = manager.begin_batch()
    manager.tracker.add_urls(session_id, ["https://cdn.test/a.jpg"])

    assert run(manager.dismiss_dialog(session_id)) is True
    assert api.cleanups[0]["session_id"] == session_id


def test_quota_overflow_commits_admitted_and_cleans_rest(manager, api, owner, notifications):
    for n in range(8):
        api.seed(owner, f"https://cdn.test/p{n}.jpg", n + 1)
    run(manager.mount())
    urls = [f"https://cdn.test/new{n}.jpg" for n in range(5)]
    session_id = manager.begin_batch()

    result = run(manager.add_uploaded(urls, session_id))

    assert len(result.admitted) == 2
    assert api.commits == [(session_id, urls[:2])]
    assert len(api.cleanups) == 1
    preserved = set(api.cleanups[0]["preserve_urls"])
    assert set(urls[:2]) <= preserved
    assert not set(urls[2:]) & preserved
    assert notifications[-1][0] == "Maximum images reached"
    assert manager.can_add_more() is False
