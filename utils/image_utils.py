"""Image helpers for base64 page artifacts."""

import base64
import binascii
import io
from typing import Optional

from PIL import Image, UnidentifiedImageError


def decode_base64_image(data: str) -> bytes:
    """Raw bytes of a base64 image. Accepts a ``data:image/...;base64,`` prefix."""
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    return base64.b64decode(data)


def create_thumbnail(image_base64: Optional[str], size: tuple = (256, 256)) -> Optional[bytes]:
    """
    Create a JPEG thumbnail for gallery display.

    Args:
        image_base64: Base64 encoded source image
        size: Tuple of (width, height) bounding box

    Returns:
        Bytes of the thumbnail image, or None when there is no decodable image
    """
    if not image_base64:
        return None
    try:
        raw = decode_base64_image(image_base64)
        with Image.open(io.BytesIO(raw)) as img:
            # Line art often comes with transparency; flatten onto white
            if img.mode in ("RGBA", "LA", "P"):
                if img.mode == "P":
                    img = img.convert("RGBA")
                background = Image.new("RGB", img.size, (255, 255, 255))
                background.paste(img, mask=img.split()[-1] if img.mode in ("RGBA", "LA") else None)
                img = background
            elif img.mode != "RGB":
                img = img.convert("RGB")

            img.thumbnail(size, Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=85)
            return buffer.getvalue()
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError):
        return None


def image_dimensions(image_base64: str) -> Optional[tuple[int, int]]:
    """(width, height) of a base64 image, or None if it cannot be read."""
    try:
        with Image.open(io.BytesIO(decode_base64_image(image_base64))) as img:
            return img.size
    except (binascii.Error, ValueError, UnidentifiedImageError, OSError):
        return None
