"""Conversion of attached files into inline request parts."""

import io
import logging
import mimetypes
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import AttachmentConversionFailed
from .models import BinaryPart

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/webp",
        "audio/aac",
        "audio/flac",
        "audio/mp3",
        "audio/m4a",
        "audio/mpeg",
        "audio/mpga",
        "audio/opus",
        "audio/pcm",
        "audio/wav",
        "audio/webm",
        "audio/aiff",
        "audio/ogg",
        "video/mp4",
        "application/pdf",
        "text/plain",
    }
)

# sent unchanged; every other image format is re-encoded as PNG
PASSTHROUGH_IMAGE_FORMATS = ("PNG", "JPEG")


def guess_mime_type(path: Path) -> str:
    mime_type, _ = mimetypes.guess_type(path.name)
    mime_type = mime_type or "application/octet-stream"
    if mime_type == "application/json":
        return "text/plain"
    return mime_type


def _to_png(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as image:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    return buffer.getvalue()


def convert_file_to_part(path) -> BinaryPart:
    """Read ``path`` and return it as a ``BinaryPart``.

    Raises
    ------
    AttachmentConversionFailed
        If the file cannot be read, is an image above Pillow's pixel limit,
        cannot be re-encoded, or has a MIME type the backend does not accept.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise AttachmentConversionFailed(f"failed to read {path}: {e}") from e

    mime_type = guess_mime_type(path)
    logger.info("Processing file: %s, MIME type: %s", path, mime_type)

    if mime_type.startswith("image/"):
        try:
            with Image.open(io.BytesIO(data)) as image:
                image_format = image.format
        except Image.DecompressionBombError as e:
            raise AttachmentConversionFailed(f"{path} is too large to process: {e}") from e
        except (UnidentifiedImageError, OSError):
            # unknown image encodings are sent as is
            image_format = None
        if image_format and image_format not in PASSTHROUGH_IMAGE_FORMATS:
            logger.debug("Got %s image, converting to png", image_format)
            try:
                data = _to_png(data)
            except OSError as e:
                raise AttachmentConversionFailed(
                    f"failed to convert {path} to png: {e}"
                ) from e
            mime_type = "image/png"

    if mime_type not in SUPPORTED_MIME_TYPES:
        raise AttachmentConversionFailed(
            f"Unsupported MIME type: {mime_type}. "
            f"Supported types are: {sorted(SUPPORTED_MIME_TYPES)}"
        )

    logger.debug("Converted file to %d bytes with mime type %s", len(data), mime_type)
    return BinaryPart(mime_type=mime_type, data=data)
