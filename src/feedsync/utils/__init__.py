"""通用工具."""

from feedsync.utils.html_parser import extract_first_image, html_to_text
from feedsync.utils.urls import base_url, is_image_url, is_valid_url, normalize_url

__all__ = [
    "base_url",
    "extract_first_image",
    "html_to_text",
    "is_image_url",
    "is_valid_url",
    "normalize_url",
]
