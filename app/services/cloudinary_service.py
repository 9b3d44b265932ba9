"""
Cloudinary service for gallery uploads and deletions.
Wraps the blocking Cloudinary SDK calls with retry and exponential backoff.
"""
import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from app.config import settings
import logging
import asyncio
import re
from typing import Optional, Dict, Any, Callable

logger = logging.getLogger(__name__)

cloudinary.config(
    cloud_name=settings.CLOUDINARY_CLOUD_NAME,
    api_key=settings.CLOUDINARY_API_KEY,
    api_secret=settings.CLOUDINARY_API_SECRET,
    secure=True
)

# /image/upload/ or /image/upload/v{version}/ followed by the public_id (may include folders)
_PUBLIC_ID_PATTERN = re.compile(r'/image/upload(?:/v\d+)?/(.+)$')


async def _with_retries(action: str, call: Callable[[], Dict[str, Any]], max_retries: int) -> Dict[str, Any]:
    for attempt in range(max_retries):
        try:
            return await asyncio.to_thread(call)
        except CloudinaryError as e:
            logger.warning(f"Cloudinary {action} error (attempt {attempt + 1}/{max_retries}): {str(e)}")
            if attempt < max_retries - 1:
                await asyncio.sleep(2 ** attempt)  # 1s, 2s, 4s backoff
                continue
            logger.error(f"Cloudinary {action} failed after {max_retries} attempts: {str(e)}")
            raise


async def upload_image(
    file: Any,
    folder: Optional[str] = None,
    max_retries: int = 3
) -> Dict[str, Any]:
    """
    Upload an image to Cloudinary.

    Args:
        file: File path, file object or bytes
        folder: Cloudinary folder (defaults to settings.UPLOAD_FOLDER)
        max_retries: Attempts before giving up on transient failures

    Returns:
        dict: url (secure URL), public_id, format, width, height, bytes

    Raises:
        CloudinaryError: If the upload fails after all retries
    """
    result = await _with_retries(
        "upload",
        lambda: cloudinary.uploader.upload(
            file,
            folder=folder or settings.UPLOAD_FOLDER,
            quality="auto",
            fetch_format="auto",
            transformation=[{"width": 1920, "height": 1080, "crop": "limit"}],
        ),
        max_retries,
    )
    logger.info(f"Successfully uploaded image: {result['public_id']}")
    return {
        "url": result["secure_url"],
        "public_id": result["public_id"],
        "format": result.get("format"),
        "width": result.get("width"),
        "height": result.get("height"),
        "bytes": result.get("bytes"),
    }


async def delete_image(public_id: str, max_retries: int = 3) -> Dict[str, Any]:
    """
    Delete an image from Cloudinary and invalidate its CDN cache.

    Returns:
        dict: Raw Cloudinary result ("ok" and "not found" both count as done)

    Raises:
        CloudinaryError: If deletion fails after all retries
    """
    result = await _with_retries(
        "delete",
        lambda: cloudinary.uploader.destroy(public_id, invalidate=True, resource_type="image"),
        max_retries,
    )
    if result.get("result") in ("ok", "not found"):
        logger.info(f"Deleted image from Cloudinary: {public_id} (result: {result.get('result')})")
    else:
        logger.warning(f"Unexpected Cloudinary delete result for {public_id}: {result}")
    return result


def extract_public_id_from_url(cloudinary_url: str) -> str:
    """
    Extract the Cloudinary public_id from a delivery URL.

    https://res.cloudinary.com/{cloud}/image/upload/v123/gallery/photo.jpg -> gallery/photo

    Raises:
        ValueError: If the URL is not a Cloudinary upload URL
    """
    match = _PUBLIC_ID_PATTERN.search(cloudinary_url.split("?", 1)[0])
    if not match:
        raise ValueError(f"Invalid Cloudinary URL format: {cloudinary_url}")

    folder, _, filename = match.group(1).rpartition("/")
    filename = filename.rsplit(".", 1)[0] if "." in filename else filename
    return f"{folder}/{filename}" if folder else filename


def validate_cloudinary_config() -> bool:
    """True when every Cloudinary credential is configured."""
    for name in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
        if not getattr(settings, name):
            logger.warning(f"{name} not configured")
            return False
    return True
