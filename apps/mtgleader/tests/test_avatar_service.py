"""
Unit tests for avatar normalisation and storage.
"""

import os
from io import BytesIO

import pytest
from PIL import Image

from mtgleader.services import avatar_service
from mtgleader.services.errors import ValidationError


def _image_bytes(fmt="PNG", size=(800, 400), mode="RGBA", color=(255, 0, 0, 128)):
    buf = BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def avatar_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(avatar_service.config, "AVATAR_DIR", str(tmp_path))
    return tmp_path


def test_normalize_produces_square_jpeg():
    jpeg = avatar_service.normalize_avatar(_image_bytes())

    img = Image.open(BytesIO(jpeg))
    assert img.format == "JPEG"
    assert img.mode == "RGB"
    assert img.size == (avatar_service.AVATAR_SIZE, avatar_service.AVATAR_SIZE)


def test_normalize_flattens_transparency_onto_white():
    jpeg = avatar_service.normalize_avatar(_image_bytes(color=(0, 0, 0, 0)))
    r, g, b = Image.open(BytesIO(jpeg)).getpixel((256, 256))
    assert min(r, g, b) > 240


@pytest.mark.parametrize("payload,reason", [
    (b"", "file is required"),
    (b"definitely not an image", "file is not a valid image"),
])
def test_normalize_rejects_bad_input(payload, reason):
    with pytest.raises(ValidationError) as exc:
        avatar_service.normalize_avatar(payload)
    assert exc.value.fields == {"avatar": reason}


def test_normalize_rejects_unsupported_format():
    bmp = _image_bytes(fmt="BMP", mode="RGB", color=(0, 0, 255))
    with pytest.raises(ValidationError) as exc:
        avatar_service.normalize_avatar(bmp)
    assert "avatar" in exc.value.fields


def test_normalize_rejects_oversized_upload():
    with pytest.raises(ValidationError):
        avatar_service.normalize_avatar(b"\0" * (avatar_service.MAX_FILE_SIZE_BYTES + 1))


def test_save_and_remove(avatar_dir):
    name = avatar_service.save_avatar(7, 1700000000123, b"jpeg-bytes")

    assert name == "7-1700000000123.jpg"
    assert (avatar_dir / name).read_bytes() == b"jpeg-bytes"
    assert [p for p in os.listdir(avatar_dir) if p.endswith(".tmp")] == []

    avatar_service.remove_avatar(name)
    assert not (avatar_dir / name).exists()
    # Removing twice is harmless.
    avatar_service.remove_avatar(name)
    avatar_service.remove_avatar(None)
