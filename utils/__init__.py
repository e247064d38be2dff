"""Utility functions for Coloring Book Studio."""

from .background import BackgroundJob
from .image_utils import create_thumbnail, decode_base64_image, image_dimensions
from .logging_config import setup_logging

__all__ = [
    "BackgroundJob",
    "create_thumbnail",
    "decode_base64_image",
    "image_dimensions",
    "setup_logging",
]
