"""Shrinks room photos so they fit under the hosting platform's request body limit.

Small files pass through untouched. Large ones are decoded, capped at
``MAX_SIDE`` pixels on the longer side and re-encoded as WEBP, then JPEG, at
falling quality until one encoding fits ``TARGET_BYTES``. When nothing fits
the original is sent anyway and the platform limit decides.
"""

import io
import logging
import re
from dataclasses import dataclass

from PIL import Image, ImageFile, ImageOps

from .errors import PreparationError

logger = logging.getLogger(__name__)

SIZE_THRESHOLD = 3_500_000
TARGET_BYTES = 4_000_000
MAX_SIDE = 2048
MAX_ATTEMPTS = 6
START_QUALITY = 90
QUALITY_STEP = 10

# (Pillow format, MIME type, file extension), in order of preference
ENCODINGS: tuple[tuple[str, str, str], ...] = (
    ("WEBP", "image/webp", "webp"),
    ("JPEG", "image/jpeg", "jpg"),
)

_DECODE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass
class PreparedImage:
    data: bytes
    filename: str
    content_type: str
    transformed: bool = False

    @property
    def size(self) -> int:
        return len(self.data)


def target_dimensions(width: int, height: int, max_side: int = MAX_SIDE) -> tuple[int, int]:
    scale = min(1.0, max_side / max(width, height))
    return max(1, round(width * scale)), max(1, round(height * scale))


def _decode_native(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def _decode_redrawn(data: bytes) -> Image.Image:
    parser = ImageFile.Parser()
    parser.feed(data)
    image = parser.close()
    canvas = Image.new("RGB", image.size)
    canvas.paste(image.convert("RGB"))
    return canvas


def decode_image(data: bytes) -> Image.Image:
    try:
        return _decode_native(data)
    except _DECODE_ERRORS as e:
        logger.info("Native decode failed (%s), retrying with incremental parser", e)

    try:
        return _decode_redrawn(data)
    except _DECODE_ERRORS as e:
        raise PreparationError(f"Could not decode image: {e}") from e


def _render(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    image = ImageOps.exif_transpose(image)
    if image.mode in ("RGBA", "LA", "P"):
        image = image.convert("RGBA")
        canvas = Image.new("RGB", image.size, (255, 255, 255))
        canvas.paste(image, mask=image.getchannel("A"))
    else:
        canvas = image.convert("RGB")

    if canvas.size != size:
        canvas = canvas.resize(size, Image.Resampling.LANCZOS)
    return canvas


def _encode(canvas: Image.Image, fmt: str, quality: int) -> bytes | None:
    buf = io.BytesIO()
    try:
        canvas.save(buf, format=fmt, quality=quality)
    except (KeyError, OSError) as e:
        logger.info("Encoder %s unavailable: %s", fmt, e)
        return None
    return buf.getvalue()


def _rotates(image: Image.Image) -> bool:
    try:
        orientation = image.getexif().get(0x0112, 1)
    except (OSError, ValueError, SyntaxError):
        return False
    return orientation in (5, 6, 7, 8)


def _renamed(filename: str, ext: str) -> str:
    stem = re.sub(r"\.[^.]+$", "", filename) or "upload"
    return f"{stem}.{ext}"


def prepare_upload(data: bytes, filename: str, content_type: str) -> PreparedImage:
    original = PreparedImage(data=data, filename=filename, content_type=content_type)
    if len(data) < SIZE_THRESHOLD:
        return original

    image = decode_image(data)
    # exif_transpose may swap the sides, so size against the upright image
    upright = (image.height, image.width) if _rotates(image) else image.size
    size = target_dimensions(*upright)

    try:
        canvas = _render(image, size)
    except (OSError, ValueError) as e:
        logger.info("Could not render %s (%s), sending original", filename, e)
        return original

    for fmt, mime, ext in ENCODINGS:
        quality = START_QUALITY
        for _ in range(MAX_ATTEMPTS):
            encoded = _encode(canvas, fmt, quality)
            if encoded is None:
                break
            if len(encoded) < TARGET_BYTES:
                logger.info(
                    "Prepared %s: %d -> %d bytes as %s q=%d at %dx%d",
                    filename, len(data), len(encoded), fmt, quality, *size,
                )
                return PreparedImage(data=encoded, filename=_renamed(filename, ext), content_type=mime, transformed=True)
            quality -= QUALITY_STEP

    logger.info("Could not bring %s under %d bytes, sending original", filename, TARGET_BYTES)
    return original