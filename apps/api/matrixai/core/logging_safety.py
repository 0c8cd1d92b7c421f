"""Utilities for safe structured logging fields."""

from __future__ import annotations

import hashlib
from typing import Any
from urllib.parse import urlsplit


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def safe_log_url(value: str | None) -> str:
    """Reduce a URL to scheme and host; signed query strings and paths never reach the logs."""
    if not value:
        return "url-missing"
    parts = urlsplit(value)
    if not parts.scheme or not parts.netloc:
        return "url-invalid"
    return f"{parts.scheme}://{parts.hostname or ''}"
