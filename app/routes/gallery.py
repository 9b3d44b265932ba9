"""
Gallery routes for projects and blog posts.
Reads are public; writes require the admin password header.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from typing import List
import logging

from app.config import settings
from app.database import get_db
from app.models import GalleryImage
from app.schemas import GalleryEntry, GalleryEntryCreate, GalleryEntryUpdate, OwnerType
from app.services import cloudinary_service, upload_sessions
from app.utils.auth import require_admin
from app.utils.urls import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter()


def _owner_filter(owner_type: str, owner_id: int):
    return (GalleryImage.owner_type == owner_type, GalleryImage.owner_id == owner_id)


async def _get_image_or_404(db: AsyncSession, image_id: int) -> GalleryImage:
    result = await db.execute(select(GalleryImage).where(GalleryImage.id == image_id))
    image = result.scalar_one_or_none()
    if not image:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Image not found", "detail": f"Gallery image ID {image_id} does not exist"}
        )
    return image


@router.get("/gallery", response_model=List[GalleryEntry])
async def list_gallery(
    owner: int,
    owner_type: OwnerType = "project",
    db: AsyncSession = Depends(get_db)
):
    """
    Get the gallery of one owner.

    Entries are ordered by display_order ascending with unordered entries
    last, then by id.
    """
    try:
        result = await db.execute(
            select(GalleryImage)
            .where(*_owner_filter(owner_type, owner))
            .order_by(
                GalleryImage.display_order.is_(None),
                GalleryImage.display_order.asc(),
                GalleryImage.id.asc(),
            )
        )
        images = result.scalars().all()
        logger.info(f"Retrieved {len(images)} gallery images for {owner_type} {owner}")
        return [GalleryEntry.model_validate(img) for img in images]

    except Exception as e:
        logger.error(f"Failed to retrieve gallery for {owner_type} {owner}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve gallery", "detail": str(e)}
        )


@router.post("/gallery", response_model=GalleryEntry, status_code=status.HTTP_201_CREATED)
async def create_gallery_entry(
    payload: GalleryEntryCreate,
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin)
):
    """
    Add an already-uploaded image to an owner's gallery.

    Raises:
        HTTPException: 409 if the owner already has the maximum number of images
    """
    try:
        owner_filter = _owner_filter(payload.owner_type, payload.owner_id)
        count_result = await db.execute(select(func.count(GalleryImage.id)).where(*owner_filter))
        existing = count_result.scalar() or 0
        if existing >= settings.GALLERY_MAX_IMAGES:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "error": "Gallery full",
                    "detail": f"A gallery can hold at most {settings.GALLERY_MAX_IMAGES} images"
                }
            )

        display_order = payload.display_order
        if display_order is None:
            max_result = await db.execute(select(func.max(GalleryImage.display_order)).where(*owner_filter))
            display_order = (max_result.scalar() or 0) + 1

        caption = payload.caption.strip() if payload.caption and payload.caption.strip() else None
        image = GalleryImage(
            owner_type=payload.owner_type,
            owner_id=payload.owner_id,
            image_url=payload.image_url,
            caption=caption,
            display_order=display_order,
            is_feature=False,
        )
        db.add(image)
        await db.commit()
        await db.refresh(image)

        logger.info(
            f"Added gallery image {image.id} to {payload.owner_type} {payload.owner_id}, "
            f"display_order={display_order}"
        )
        return GalleryEntry.model_validate(image)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error adding gallery image: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to add gallery image", "detail": str(e)}
        )


@router.patch("/gallery/{image_id}", response_model=GalleryEntry)
async def update_gallery_entry(
    image_id: int,
    changes: GalleryEntryUpdate,
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin)
):
    """Update caption and/or display_order of a gallery image."""
    try:
        image = await _get_image_or_404(db, image_id)
        fields = changes.model_dump(exclude_unset=True)

        if "caption" in fields:
            caption = fields["caption"]
            image.caption = caption.strip() if caption and caption.strip() else None
        if "display_order" in fields:
            image.display_order = fields["display_order"]

        await db.commit()
        await db.refresh(image)

        logger.info(f"Updated gallery image {image_id}: {sorted(fields)}")
        return GalleryEntry.model_validate(image)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating gallery image {image_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update gallery image", "detail": str(e)}
        )


@router.delete("/gallery/{image_id}")
async def delete_gallery_entry(
    image_id: int,
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin)
):
    """
    Delete a gallery image.

    The Cloudinary file is removed only when no other gallery image uses the
    same URL. A Cloudinary failure is logged and does not undo the deletion.
    """
    try:
        image = await _get_image_or_404(db, image_id)
        image_url = image.image_url
        await db.delete(image)

        others = await db.execute(select(GalleryImage.image_url).where(GalleryImage.id != image_id))
        still_used = normalize_url(image_url) in {normalize_url(url) for url in others.scalars().all()}
        if not still_used:
            await upload_sessions.forget_url(db, image_url)
        await db.commit()
        logger.info(f"Deleted gallery image {image_id} from database")

        if still_used:
            logger.info(f"Keeping Cloudinary file for image {image_id}: URL is used by another gallery image")
        else:
            try:
                public_id = cloudinary_service.extract_public_id_from_url(image_url)
                await cloudinary_service.delete_image(public_id)
            except ValueError as e:
                logger.warning(f"Skipping Cloudinary deletion for image {image_id}: {str(e)}")
            except Exception as e:
                logger.error(f"Failed to delete Cloudinary file for image {image_id}: {str(e)}", exc_info=True)

        return {"message": "Image deleted successfully", "image_id": image_id}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting gallery image {image_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete gallery image", "detail": str(e)}
        )


@router.put("/feature/{image_id}", response_model=GalleryEntry)
async def set_feature_image(
    image_id: int,
    db: AsyncSession = Depends(get_db),
    authenticated: bool = Depends(require_admin)
):
    """Make this image the only feature image of its owner."""
    try:
        image = await _get_image_or_404(db, image_id)
        await db.execute(
            update(GalleryImage)
            .where(*_owner_filter(image.owner_type, image.owner_id), GalleryImage.id != image_id)
            .values(is_feature=False)
        )
        image.is_feature = True
        await db.commit()
        await db.refresh(image)

        logger.info(f"Set gallery image {image_id} as feature image of {image.owner_type} {image.owner_id}")
        return GalleryEntry.model_validate(image)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error setting feature image {image_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to set feature image", "detail": str(e)}
        )
