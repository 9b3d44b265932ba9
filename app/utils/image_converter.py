"""
Image checks for gallery uploads.
Rejects files Pillow cannot decode and re-encodes to WebP when that is smaller.
"""
import io
import logging
from typing import Tuple
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

WEBP_QUALITY = 85
MAX_DIMENSION = 3840


class InvalidImageError(ValueError):
    """Uploaded bytes are not an image Pillow can decode."""


def prepare_upload(image_bytes: bytes, filename: str = "upload") -> Tuple[bytes, str]:
    """
    Validate an uploaded image and shrink it where possible.

    Args:
        image_bytes: Raw bytes from the multipart upload
        filename: Used for log messages only

    Returns:
        Tuple[bytes, str]: bytes to send to the storage provider and their format

    Raises:
        InvalidImageError: If the bytes cannot be decoded as an image
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as probe:
            probe.verify()
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidImageError(f"File '{filename}' is not a valid image: {str(e)}") from e

    source_format = (image.format or "unknown").lower()
    if source_format == "webp":
        return image_bytes, source_format

    if image.mode in ("P", "LA"):
        image = image.convert("RGBA")
    elif image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGB")

    if max(image.size) > MAX_DIMENSION:
        image.thumbnail((MAX_DIMENSION, MAX_DIMENSION), Image.Resampling.LANCZOS)
        logger.info(f"Downscaled {filename} to {image.size[0]}x{image.size[1]}")

    buffer = io.BytesIO()
    image.save(buffer, format="WEBP", quality=WEBP_QUALITY, method=6)
    webp_bytes = buffer.getvalue()

    if len(webp_bytes) >= len(image_bytes):
        logger.debug(f"WebP conversion did not reduce size for {filename}, keeping {source_format}")
        return image_bytes, source_format

    logger.info(f"Converted {filename} to WebP: {len(image_bytes):,} bytes -> {len(webp_bytes):,} bytes")
    return webp_bytes, "webp"
