"""Helpers for resolving report endpoint URLs."""

from __future__ import annotations

import os
from typing import Any, Optional


def _normalized_base(raw_base: Any) -> str:
    return str(raw_base or "").strip().rstrip("/")


def resolve_report_url(url: str, base: Optional[str] = None) -> str:
    """Prefix relative endpoint paths with the configured reports host.

    ``base`` wins over the ``REPORTS_BASE_URL`` environment variable; absolute
    URLs are returned unchanged.
    """
    text = str(url or "").strip()
    if text.startswith(("http://", "https://")):
        return text
    prefix = _normalized_base(base) or _normalized_base(os.getenv("REPORTS_BASE_URL"))
    if not prefix:
        return text
    if not text.startswith("/"):
        text = f"/{text}"
    return f"{prefix}{text}"


__all__ = ["resolve_report_url"]
