"""
Image URL helpers for content payloads.
"""
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

# Payload fields that hold an image object with a ``url``
IMAGE_FIELDS = ("featuredImage", "photo")


def with_quality(url: str, quality: int) -> str:
    """
    Add a ``q`` quality parameter to an image URL unless one is present.

    Args:
        url: Image URL
        quality: Quality percentage (0-100)

    Returns:
        URL with the quality parameter, or the original URL if it is not absolute
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url
    params = parse_qsl(parts.query, keep_blank_values=True)
    if any(name == "q" for name, _ in params):
        return url
    params.append(("q", str(quality)))
    return urlunsplit(parts._replace(query=urlencode(params)))


def optimize_image_urls(data: Any, quality: int = 80) -> Any:
    """
    Recursively add quality parameters to image URLs in a payload.

    Returns a new structure; the input is not modified.
    """
    if isinstance(data, list):
        return [optimize_image_urls(item, quality) for item in data]
    if not isinstance(data, dict):
        return data

    result = {}
    for key, value in data.items():
        if key in IMAGE_FIELDS and isinstance(value, dict) and isinstance(value.get("url"), str):
            result[key] = {**value, "url": with_quality(value["url"], quality)}
        else:
            result[key] = optimize_image_urls(value, quality)
    return result
