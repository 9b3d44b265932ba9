"""
File routes: upload to Cloudinary within an upload session, commit, cleanup.
All endpoints require the admin password header.
"""
from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Request
from sqlalchemy.ext.asyncio import AsyncSession
import asyncio
import logging

from app.config import settings
from app.database import get_db
from app.schemas import CleanupRequest, CleanupResponse, CommitRequest, CommitResponse, FileUploadResponse
from app.services import cloudinary_service, upload_sessions
from app.utils.auth import require_admin
from app.utils.image_converter import InvalidImageError, prepare_upload
from app.utils.rate_limit import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


@router.post("/upload", response_model=FileUploadResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    session_id: str = Form(...),
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin)
):
    """
    Upload one image to Cloudinary and record it against an upload session.
    The file stays eligible for session cleanup until it is committed.
    """
    filename = file.filename or "upload"
    if not file.content_type or not file.content_type.startswith("image/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid file type", "detail": f"File '{filename}' is not a valid image file"}
        )

    try:
        content = await file.read()
        content, image_format = await asyncio.to_thread(prepare_upload, content, filename)

        logger.info(f"Uploading {filename} ({image_format}) for session {session_id}")
        uploaded = await cloudinary_service.upload_image(content)
        await upload_sessions.record_upload(db, session_id, uploaded["url"], uploaded["public_id"])
        await db.commit()

        return FileUploadResponse(url=uploaded["url"], public_id=uploaded["public_id"], session_id=session_id)

    except InvalidImageError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid image", "detail": str(e)}
        )
    except Exception as e:
        logger.error(f"Error uploading {filename}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to upload file", "detail": str(e)}
        )


@router.post("/commit", response_model=CommitResponse)
async def commit_files(
    payload: CommitRequest,
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin)
):
    """Mark a session's files as retained so cleanup never removes them."""
    try:
        committed = await upload_sessions.commit_session(db, payload.session_id, payload.urls)
        await db.commit()
        return CommitResponse(session_id=payload.session_id, committed_urls=committed)

    except Exception as e:
        logger.error(f"Error committing session {payload.session_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to commit uploads", "detail": str(e)}
        )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_files(
    payload: CleanupRequest,
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin)
):
    """
    Delete uncommitted files of a session, or one specific file.
    Preserved URLs and URLs used by any gallery image are never deleted.
    """
    if not payload.session_id and not payload.file_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Nothing to clean up", "detail": "Either session_id or file_url is required"}
        )

    try:
        success, deleted = await upload_sessions.cleanup_session(
            db, payload.session_id, payload.preserve_urls, file_url=payload.file_url
        )
        await db.commit()
        return CleanupResponse(success=success, deleted=deleted)

    except Exception as e:
        logger.error(f"Error cleaning up session {payload.session_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to clean up uploads", "detail": str(e)}
        )
