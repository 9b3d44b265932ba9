"""
Upload-session bookkeeping for files pushed to Cloudinary.

Every uploaded file is recorded against the session that produced it.
Committing marks files as retained; cleanup deletes the uncommitted files
of a session except those explicitly preserved or referenced by a gallery.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from typing import Iterable, List, Optional, Tuple
import logging

from app.models import GalleryImage, UploadedFile
from app.services import cloudinary_service
from app.utils.urls import normalize_url, normalized_set

logger = logging.getLogger(__name__)


async def record_upload(db: AsyncSession, session_id: str, url: str, public_id: Optional[str]) -> UploadedFile:
    uploaded = UploadedFile(session_id=session_id, url=url, public_id=public_id, committed=False)
    db.add(uploaded)
    await db.flush()
    logger.info(f"Recorded upload for session {session_id}: {url}")
    return uploaded


async def commit_session(db: AsyncSession, session_id: str, urls: Optional[Iterable[str]] = None) -> List[str]:
    """
    Mark files of a session as retained.

    Args:
        session_id: Upload session to commit
        urls: Restrict the commit to these URLs (compared normalized); all files when None

    Returns:
        List[str]: URLs of the session's files that are now committed
    """
    result = await db.execute(select(UploadedFile).where(UploadedFile.session_id == session_id))
    files = result.scalars().all()

    wanted = normalized_set(urls) if urls is not None else None
    committed = []
    for uploaded in files:
        if wanted is None or normalize_url(uploaded.url) in wanted:
            uploaded.committed = True
            committed.append(uploaded.url)

    await db.flush()
    logger.info(f"Committed {len(committed)} of {len(files)} file(s) for session {session_id}")
    return committed


async def _referenced_urls(db: AsyncSession) -> set:
    result = await db.execute(select(GalleryImage.image_url))
    return normalized_set(result.scalars().all())


async def _destroy(uploaded: UploadedFile) -> bool:
    try:
        public_id = uploaded.public_id or cloudinary_service.extract_public_id_from_url(uploaded.url)
        await cloudinary_service.delete_image(public_id)
        return True
    except Exception as e:
        logger.error(f"Failed to delete uploaded file {uploaded.url}: {str(e)}", exc_info=True)
        return False


async def cleanup_session(
    db: AsyncSession,
    session_id: Optional[str],
    preserve_urls: Iterable[str],
    file_url: Optional[str] = None,
) -> Tuple[bool, List[str]]:
    """
    Delete files that are no longer wanted.

    With file_url, only that tracked file is deleted (committed or not).
    Otherwise every uncommitted file of session_id is deleted. Preserved URLs
    and URLs referenced by any gallery image are never deleted.

    Returns:
        Tuple[bool, List[str]]: whether every deletion succeeded, and the deleted URLs
    """
    protected = normalized_set(preserve_urls) | await _referenced_urls(db)

    if file_url:
        target = normalize_url(file_url)
        if target in protected:
            logger.info(f"Skipping cleanup of {file_url}: URL is preserved or in use")
            return True, []
        result = await db.execute(select(UploadedFile))
        candidates = [f for f in result.scalars().all() if normalize_url(f.url) == target]
    else:
        result = await db.execute(
            select(UploadedFile).where(
                UploadedFile.session_id == session_id,
                UploadedFile.committed.is_(False),
            )
        )
        candidates = [f for f in result.scalars().all() if normalize_url(f.url) not in protected]

    deleted = []
    success = True
    for uploaded in candidates:
        if await _destroy(uploaded):
            deleted.append(uploaded.url)
            await db.execute(delete(UploadedFile).where(UploadedFile.id == uploaded.id))
        else:
            success = False

    await db.flush()
    logger.info(
        f"Cleanup for session {session_id or '-'}: deleted {len(deleted)} file(s), "
        f"preserved {len(protected)} URL(s)"
    )
    return success, deleted


async def forget_url(db: AsyncSession, url: str) -> None:
    """Drop tracking rows for a URL whose file has been removed elsewhere."""
    target = normalize_url(url)
    result = await db.execute(select(UploadedFile))
    for uploaded in result.scalars().all():
        if normalize_url(uploaded.url) == target:
            await db.delete(uploaded)
