"""
Image Preprocessor

Pure helpers applied to images before they are sent to a provider:
data-URL decoding, plausibility checks, downscale/re-encode and 3x3 grid
cell cropping. Pillow does the pixel work.
"""

import base64
import binascii
import io
import re
from typing import Tuple, Union

from PIL import Image, UnidentifiedImageError

from mvstudio.core.constants import (
    BASE64_SAMPLE_LENGTH,
    COMPRESS_JPEG_QUALITY,
    COMPRESS_MAX_DIMENSION,
    COMPRESS_THRESHOLD_BYTES,
    DEFAULT_MIME_TYPE,
    GRID_COLUMNS,
    GRID_ROWS,
    MIN_BASE64_LENGTH,
    PANEL_COUNT,
    SUPPORTED_MIME_TYPES,
)
from mvstudio.core.exceptions import ImageDataError, InvalidCellIndexError
from mvstudio.core.logging_config import get_logger
from mvstudio.media.types import ImagePayload

logger = get_logger("media.image_preprocessor")

ImageInput = Union[str, bytes, ImagePayload]

_DATA_URL_PATTERN = re.compile(r"^data:([^;,]*)(?:;[^,]*)?,(.*)$", re.DOTALL)
_BASE64_SAMPLE_PATTERN = re.compile(r"^[A-Za-z0-9+/=]+$")
_WHITESPACE = re.compile(r"\s+")

_PIL_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
}


# =============================================================================
# DECODING & VALIDATION
# =============================================================================

def normalize_mime_type(mime_type: str) -> str:
    """Return a supported MIME type; anything else becomes image/jpeg."""
    mime_type = (mime_type or "").strip().lower()
    if mime_type == "image/jpg":
        mime_type = "image/jpeg"
    return mime_type if mime_type in SUPPORTED_MIME_TYPES else DEFAULT_MIME_TYPE


def parse_data_url(value: str) -> Tuple[str, str]:
    """
    Split a data URL (or bare base64 string) into base64 data and MIME type.

    Whitespace anywhere in the payload is stripped. Missing or unsupported
    MIME types fall back to image/jpeg.

    Args:
        value: "data:image/png;base64,...." or plain base64

    Returns:
        Tuple of (base64_data, mime_type)
    """
    value = (value or "").strip()
    match = _DATA_URL_PATTERN.match(value)
    if match:
        mime_type, data = match.group(1), match.group(2)
    else:
        mime_type, data = "", value
    return _WHITESPACE.sub("", data), normalize_mime_type(mime_type)


def is_valid_base64(data: str) -> bool:
    """
    Cheap plausibility check for base64 image data.

    Requires a minimum length and legal base64 characters in the leading
    sample. This does not prove the data decodes to an image.
    """
    if not data or len(data) < MIN_BASE64_LENGTH:
        return False
    return bool(_BASE64_SAMPLE_PATTERN.match(data[:BASE64_SAMPLE_LENGTH]))


def is_plausible_image(payload: ImagePayload) -> bool:
    """Apply the base64 plausibility check to a decoded payload."""
    return is_valid_base64(payload.to_base64())


def decode_data_url(value: str) -> ImagePayload:
    """
    Decode a data URL or bare base64 string into an ImagePayload.

    Raises:
        ImageDataError: If the data is too short, has illegal characters or
            fails to decode
    """
    data, mime_type = parse_data_url(value)
    if not is_valid_base64(data):
        raise ImageDataError(
            "Image data is not valid base64 or is too short",
            {"length": len(data)},
        )
    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ImageDataError(f"Failed to decode base64 image data: {e}")
    return ImagePayload(data=raw, mime_type=mime_type)


def to_payload(value: ImageInput, mime_type: str = None) -> ImagePayload:
    """Coerce a data URL, base64 string, raw bytes or payload into an ImagePayload."""
    if isinstance(value, ImagePayload):
        return value
    if isinstance(value, (bytes, bytearray)):
        return ImagePayload(data=bytes(value), mime_type=normalize_mime_type(mime_type or sniff_mime_type(value)))
    if isinstance(value, str):
        return decode_data_url(value)
    raise ImageDataError(f"Unsupported image input type: {type(value).__name__}")


def sniff_mime_type(data: bytes) -> str:
    """Guess a MIME type from magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return DEFAULT_MIME_TYPE


def image_dimensions(payload: ImagePayload) -> Tuple[int, int]:
    """Return (width, height) of an image payload."""
    with _open(payload) as image:
        return image.size


# =============================================================================
# TRANSFORMS
# =============================================================================

def compress_image(
    payload: ImagePayload,
    max_dimension: int = COMPRESS_MAX_DIMENSION,
    threshold_bytes: int = COMPRESS_THRESHOLD_BYTES,
    quality: int = COMPRESS_JPEG_QUALITY
) -> ImagePayload:
    """
    Downscale and re-encode an image as JPEG.

    Small JPEGs that already fit within max_dimension are returned as is.
    The aspect ratio is preserved and images are never enlarged. Data that
    Pillow cannot decode is returned unchanged.
    """
    try:
        with Image.open(io.BytesIO(payload.data)) as image:
            fits = max(image.size) <= max_dimension
            if payload.size < threshold_bytes and payload.mime_type == "image/jpeg" and fits:
                return payload

            image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            data = _encode(image, "JPEG", quality=quality)
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Image compression skipped, could not decode image: {e}")
        return payload

    logger.debug(f"Compressed image {payload.size} -> {len(data)} bytes")
    return ImagePayload(data=data, mime_type="image/jpeg")


def cell_bounds(width: int, height: int, cell_index: int) -> Tuple[int, int, int, int]:
    """
    Pixel bounds of a 3x3 grid cell, cells numbered 1..9 row-major.

    Returns:
        Tuple of (left, top, cell_width, cell_height)

    Raises:
        InvalidCellIndexError: If cell_index is outside 1..9
    """
    if not isinstance(cell_index, int) or isinstance(cell_index, bool) or not 1 <= cell_index <= PANEL_COUNT:
        raise InvalidCellIndexError(cell_index)

    cell_width = width // GRID_COLUMNS
    cell_height = height // GRID_ROWS
    col = (cell_index - 1) % GRID_COLUMNS
    row = (cell_index - 1) // GRID_COLUMNS
    return col * cell_width, row * cell_height, cell_width, cell_height


def crop_cell(payload: ImagePayload, cell_index: int) -> ImagePayload:
    """
    Crop one cell out of a 3x3 contact sheet.

    PNG and WebP sheets stay in their format; everything else is encoded
    as JPEG.

    Raises:
        InvalidCellIndexError: If cell_index is outside 1..9
        ImageDataError: If the sheet cannot be decoded
    """
    with _open(payload) as image:
        left, top, cell_width, cell_height = cell_bounds(image.width, image.height, cell_index)
        cell = image.crop((left, top, left + cell_width, top + cell_height))

    pil_format = _pil_format(payload.mime_type)
    data = _encode(cell, pil_format, quality=95)
    logger.debug(f"Cropped cell {cell_index} at ({left}, {top}) size {cell_width}x{cell_height}")
    return ImagePayload(data=data, mime_type=_PIL_FORMATS[pil_format])


# =============================================================================
# PILLOW PLUMBING
# =============================================================================

def _open(payload: ImagePayload) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(payload.data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDataError(f"Could not decode image: {e}", {"mime_type": payload.mime_type})
    return image


def _pil_format(mime_type: str) -> str:
    for pil_format, mime in _PIL_FORMATS.items():
        if mime == mime_type:
            return pil_format
    return "JPEG"


def _encode(image: Image.Image, pil_format: str, quality: int) -> bytes:
    if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    if pil_format == "PNG":
        image.save(buffer, format=pil_format)
    else:
        image.save(buffer, format=pil_format, quality=quality)
    return buffer.getvalue()
