"""Redirect target allow-list check."""

from typing import Iterable
from urllib.parse import urlsplit


def origin_of(url: str) -> str:
    """Return ``scheme://host`` for ``url``, or "" when it has no host."""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return ""
    if not parts.scheme or not host:
        return ""
    return f"{parts.scheme}://{host}"


def is_allowed_redirect(url: str, allowed: Iterable[str]) -> bool:
    """Exact match of the target's scheme and host against the allow-list."""
    target_origin = origin_of(url)
    if not target_origin:
        return False
    return any(allowed_origin == target_origin for allowed_origin in allowed)
