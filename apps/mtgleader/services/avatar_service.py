"""
Avatar uploads: validation, normalisation to a square JPEG, and storage.

Files live in ``AVATAR_DIR`` as ``<user_id>-<stamp>.jpg`` so a new upload
never overwrites the file a still-current profile row points at.
"""

import logging
import os
import tempfile
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from mtgleader import config
from mtgleader.services.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 5 * 1024 * 1024  # 5MB
MAX_IMAGE_PIXELS = 25_000_000  # decompression bomb guard
AVATAR_SIZE = 512
JPEG_QUALITY = 85
ALLOWED_FORMATS = {"JPEG", "PNG", "WEBP", "GIF"}

Image.MAX_IMAGE_PIXELS = MAX_IMAGE_PIXELS


def normalize_avatar(file_bytes: bytes) -> bytes:
    """
    Check an upload and convert it to a 512x512 RGB JPEG.

    Args:
        file_bytes: Raw uploaded bytes

    Returns:
        JPEG bytes

    Raises:
        ValidationError: Empty, too large, not an image, or unsupported format
    """
    if not file_bytes:
        raise ValidationError({"avatar": "file is required"})
    if len(file_bytes) > MAX_FILE_SIZE_BYTES:
        raise ValidationError(
            {"avatar": f"file must be {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB or less"}
        )

    try:
        img = Image.open(BytesIO(file_bytes))
        img.load()
    except Image.DecompressionBombError:
        raise ValidationError({"avatar": "image dimensions too large"})
    except (UnidentifiedImageError, OSError):
        raise ValidationError({"avatar": "file is not a valid image"})

    if img.format not in ALLOWED_FORMATS:
        raise ValidationError({"avatar": "must be a JPEG, PNG, WebP or GIF image"})

    img = ImageOps.exif_transpose(img)
    if img.mode in ("RGBA", "LA", "P"):
        rgba = img.convert("RGBA")
        flattened = Image.new("RGB", rgba.size, (255, 255, 255))
        flattened.paste(rgba, mask=rgba.getchannel("A"))
        img = flattened
    elif img.mode != "RGB":
        img = img.convert("RGB")

    img = ImageOps.fit(img, (AVATAR_SIZE, AVATAR_SIZE), Image.Resampling.LANCZOS)
    output = BytesIO()
    img.save(output, format="JPEG", quality=JPEG_QUALITY, optimize=True)
    return output.getvalue()


def save_avatar(user_id: int, stamp_ms: int, jpeg_bytes: bytes) -> str:
    """
    Write the avatar atomically (temp file + rename).

    Returns:
        File name relative to AVATAR_DIR
    """
    os.makedirs(config.AVATAR_DIR, exist_ok=True)
    name = f"{user_id}-{stamp_ms}.jpg"
    fd, tmp_path = tempfile.mkstemp(dir=config.AVATAR_DIR, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(jpeg_bytes)
        os.replace(tmp_path, os.path.join(config.AVATAR_DIR, name))
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    return name


def remove_avatar(name: str) -> None:
    """Delete a stored avatar file. Missing files are ignored; other errors are logged."""
    if not name:
        return
    path = os.path.join(config.AVATAR_DIR, os.path.basename(name))
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove avatar file {path}: {e}")
