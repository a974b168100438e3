"""Image helpers for admin uploads.

Covers upload validation, safe file naming and square thumbnails for
article, project and team cards.
"""

import io
import re
import unicodedata
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError
from PIL.Image import Image as PILImage

from src.core.logging import get_logger

logger = get_logger(__name__)

WEBP_TYPE = "image/webp"
JPEG_TYPE = "image/jpeg"

DEFAULT_THUMBNAIL_SIZE = 320
DEFAULT_THUMBNAIL_QUALITY = 75
MAX_UPLOAD_BYTES = 6 * 1024 * 1024


class ImageValidationError(ValueError):
    """Raised when an upload is not an acceptable image."""


@dataclass
class Thumbnail:
    """Encoded thumbnail bytes and their MIME type."""

    data: bytes
    content_type: str

    @property
    def extension(self) -> str:
        return "webp" if self.content_type == WEBP_TYPE else "jpg"


def ensure_image(
    content_type: str | None,
    size_bytes: int,
    max_size_bytes: int = MAX_UPLOAD_BYTES,
) -> None:
    """Reject uploads that are not images or are too large.

    Raises:
        ImageValidationError: With a message suitable for the upload form.
    """
    if not content_type or not content_type.startswith("image/"):
        raise ImageValidationError(
            "Invalid file: upload an image (jpg/png/webp/gif)."
        )
    if size_bytes > max_size_bytes:
        max_mb = round(max_size_bytes / 1024 / 1024)
        raise ImageValidationError(f"Image too large. Maximum: {max_mb}MB.")


def slugify_filename(name: str) -> str:
    """Lowercase ASCII file name with unsafe runs collapsed to single dashes."""
    folded = unicodedata.normalize("NFD", name.lower())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    folded = re.sub(r"[^a-z0-9.\-_]+", "-", folded)
    folded = re.sub(r"-+", "-", folded)
    return folded.strip("-")


def _center_square(img: PILImage) -> PILImage:
    side = min(img.size)
    left = (img.size[0] - side) // 2
    top = (img.size[1] - side) // 2
    return img.crop((left, top, left + side, top + side))


def _encode(img: PILImage, fmt: str, quality: int) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, quality=quality)
    return buffer.getvalue()


def create_thumbnail(
    image_data: bytes,
    size: int = DEFAULT_THUMBNAIL_SIZE,
    quality: int = DEFAULT_THUMBNAIL_QUALITY,
) -> Thumbnail:
    """Center-crop an image to a square and scale it to ``size`` pixels.

    Encodes as WEBP, falling back to JPEG when the WEBP encoder is not
    available in the installed Pillow build.

    Args:
        image_data: Raw bytes of the uploaded image.
        size: Edge length of the square thumbnail in pixels.
        quality: Encoder quality from 1-100.

    Returns:
        The encoded thumbnail.

    Raises:
        ImageValidationError: If the bytes are not a readable image.
    """
    try:
        img: PILImage = Image.open(io.BytesIO(image_data))
        img.load()
    except (UnidentifiedImageError, OSError) as ex:
        raise ImageValidationError("Could not read the image to build a thumbnail.") from ex

    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")

    thumb = _center_square(img).resize((size, size), Image.Resampling.LANCZOS)

    try:
        return Thumbnail(_encode(thumb, "WEBP", quality), WEBP_TYPE)
    except (KeyError, OSError) as ex:
        logger.warning("webp_encode_failed", error=str(ex))

    # JPEG has no alpha channel
    if thumb.mode != "RGB":
        thumb = thumb.convert("RGB")
    return Thumbnail(_encode(thumb, "JPEG", quality), JPEG_TYPE)
