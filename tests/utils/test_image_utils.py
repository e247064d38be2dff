"""Tests for image helpers."""

import base64
import io

from PIL import Image

from utils.image_utils import create_thumbnail, decode_base64_image, image_dimensions


def _png_base64(size=(600, 300), mode="RGBA"):
    buffer = io.BytesIO()
    Image.new(mode, size, (0, 0, 0, 0) if mode == "RGBA" else 0).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode()


def test_decode_accepts_data_url():
    encoded = base64.b64encode(b"abc").decode()
    assert decode_base64_image(f"data:image/png;base64,{encoded}") == b"abc"
    assert decode_base64_image(encoded) == b"abc"


def test_thumbnail_fits_bounding_box():
    thumb = create_thumbnail(_png_base64(), size=(100, 100))
    with Image.open(io.BytesIO(thumb)) as img:
        assert img.format == "JPEG"
        assert img.size == (100, 50)
        assert min(img.getpixel((10, 10))) >= 250


def test_thumbnail_of_bad_data_is_none():
    assert create_thumbnail(None) is None
    assert create_thumbnail("not-an-image") is None
    assert create_thumbnail(base64.b64encode(b"plain text").decode()) is None


def test_image_dimensions():
    assert image_dimensions(_png_base64((64, 32), mode="L")) == (64, 32)
    assert image_dimensions("!!!") is None
