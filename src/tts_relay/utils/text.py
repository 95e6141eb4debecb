"""Small string helpers for logging and temporary file names."""
from __future__ import annotations

import re

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def preview(text: str, max_chars: int = 100) -> str:
    """First max_chars characters of text on one line, with an ellipsis if cut."""
    flat = " ".join(text.split())
    if max_chars <= 0:
        return ""
    if len(flat) <= max_chars:
        return flat
    return flat[:max_chars].rstrip() + "..."


def safe_filename_part(value: str, max_len: int = 40) -> str:
    """
    Reduce an arbitrary string to characters safe in a file name.

    Used for temp file prefixes; uniqueness comes from tempfile, not from
    this value.

    >>> safe_filename_part("ep 42/../x")
    'ep_42_.._x'
    """
    cleaned = _UNSAFE.sub("_", value).strip("._")
    return cleaned[:max_len] or "job"
