"""
Image Preprocessing

This module turns uploaded image bytes into the forms the rest of the
app needs:
- Fixed-size grayscale pixel vectors for the similarity scorer
- Square display JPEGs stored in the face dataset
- Width-limited JPEGs and data URIs for API responses
"""
import base64
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError
from io import BytesIO
import logging

from facelab.config import (
    VECTOR_IMAGE_SIZE,
    DISPLAY_IMAGE_SIZE,
    DISPLAY_JPEG_QUALITY,
    ANNOTATED_IMAGE_WIDTH
)

logger = logging.getLogger(__name__)


class ImageDecodeError(ValueError):
    """Raised when uploaded bytes cannot be decoded as an image."""


def _open_image(image_bytes: bytes) -> Image.Image:
    """Decode image bytes, honouring EXIF orientation."""
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.error(f"Image decoding failed: {e}")
        raise ImageDecodeError(f"Failed to process image: {str(e)}")

    return ImageOps.exif_transpose(image)


def _cover_fit(image: Image.Image, size: int) -> Image.Image:
    """Resize to cover a size x size square, cropping around the center."""
    return ImageOps.fit(
        image,
        (size, size),
        method=Image.Resampling.LANCZOS,
        centering=(0.5, 0.5)
    )


def load_pixel_vector(image_bytes: bytes, size: int = VECTOR_IMAGE_SIZE) -> np.ndarray:
    """
    Convert image bytes into a grayscale pixel vector.

    Steps:
    1. Load image from bytes
    2. Cover-fit resize to size x size with a centered crop
    3. Convert to single-channel intensity
    4. Flatten row-major

    Args:
        image_bytes: Raw image bytes
        size: Side of the square canvas

    Returns:
        uint8 array of length size * size, values in [0, 255]

    Raises:
        ImageDecodeError: If image cannot be decoded
    """
    image = _open_image(image_bytes)

    # Flatten transparency onto white before dropping colour
    if image.mode in ("RGBA", "LA", "P"):
        image = image.convert("RGBA")
        background = Image.new("RGBA", image.size, (255, 255, 255, 255))
        image = Image.alpha_composite(background, image)

    gray = _cover_fit(image.convert("RGB"), size).convert("L")
    pixels = np.asarray(gray, dtype=np.uint8).reshape(-1)

    logger.debug(f"Extracted pixel vector of length {pixels.size}")
    return pixels


def make_display_jpeg(
    image_bytes: bytes,
    size: int = DISPLAY_IMAGE_SIZE,
    quality: int = DISPLAY_JPEG_QUALITY
) -> bytes:
    """Cover-fit the image to a size x size RGB JPEG."""
    image = _open_image(image_bytes).convert("RGB")
    return _encode_jpeg(_cover_fit(image, size), quality)


def resize_to_width(image_bytes: bytes, width: int = ANNOTATED_IMAGE_WIDTH) -> bytes:
    """Resize the image to the given width, keeping its aspect ratio."""
    image = _open_image(image_bytes).convert("RGB")
    height = max(1, round(image.height * width / image.width))
    resized = image.resize((width, height), Image.Resampling.LANCZOS)
    return _encode_jpeg(resized, 90)


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def to_data_uri(image_bytes: bytes, mime_type: str = "image/jpeg") -> str:
    """Encode bytes as a base64 data URI."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
