"""Filesystem-safe, length-limited names derived from repository names."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_UNSAFE_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9_.-]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")


def slugify(value: str | None, *, fallback: str = "repo", max_length: int = 48) -> str:
    """Normalize ``value`` into a single path component.

    ``github.com/Org/Name`` becomes ``github.com-org-name``.  Overlong slugs
    keep a short digest of the full value so distinct names stay distinct.
    """
    source = (value or "").strip().lower()
    slug = _HYPHEN_COLLAPSE.sub("-", _UNSAFE_PATTERN.sub("-", source)).strip("-.")
    if not slug:
        slug = fallback
    if len(slug) <= max_length:
        return slug

    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix = slug[: max(max_length - len(digest) - 1, 1)].rstrip("-.")
    return f"{prefix}-{digest}"


__all__ = ["slugify"]
