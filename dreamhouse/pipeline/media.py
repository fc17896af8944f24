"""
Self-describing image encoding.

Images travel through the pipeline as data URLs
(``data:<media type>;base64,<payload>``) so the media type and the bytes are
never separated. ``decode_data_url(encode_data_url(m, b)) == (m, b)``.
"""

import base64
import binascii
import logging
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from .errors import ValidationFailure

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/png"


def encode_data_url(mime_type: str, payload: bytes) -> str:
    """Pack a media type and raw bytes into a data URL."""
    if not mime_type or "/" not in mime_type:
        raise ValidationFailure(f"Invalid media type: {mime_type!r}")
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    """
    Split a data URL into (media type, payload bytes).

    Raises:
        ValidationFailure: If the string is not a base64 data URL.
    """
    if not data_url or not data_url.startswith("data:"):
        raise ValidationFailure("Image is not a data URL")

    try:
        header, b64data = data_url.split(",", 1)
    except ValueError:
        raise ValidationFailure("Image data URL has no payload")

    meta = header[len("data:"):]
    if not meta.endswith(";base64"):
        raise ValidationFailure("Image data URL is not base64-encoded")
    mime_type = meta[: -len(";base64")]
    if "/" not in mime_type:
        raise ValidationFailure(f"Image data URL has invalid media type: {mime_type!r}")

    try:
        payload = base64.b64decode(b64data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationFailure(f"Image payload is not valid base64: {e}")

    return mime_type, payload


def verify_image(data_url: str) -> tuple[str, bytes]:
    """
    Decode a data URL and check that the payload is a readable image.

    Returns the decoded (media type, payload) pair.
    """
    mime_type, payload = decode_data_url(data_url)
    if not mime_type.startswith("image/"):
        raise ValidationFailure(f"Expected an image, got {mime_type}")
    if not payload:
        raise ValidationFailure("Image payload is empty")

    try:
        with Image.open(BytesIO(payload)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationFailure(f"Image payload could not be decoded: {e}")

    logger.debug(f"Verified {mime_type} image ({len(payload)} bytes)")
    return mime_type, payload
