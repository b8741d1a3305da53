"""
Low-entropy visitor fingerprints.

Screen size, timezone and network address are shared by many people, so
unrelated visitors can collide on the same fingerprint. That is the price
of correlating returning visitors without storing anything identifying.
"""
from __future__ import annotations

import hashlib
from typing import Any, Mapping, Optional

PREFIX = "fp_"
DIGEST_CHARS = 16


def _digest(parts) -> str:
    raw = "|".join("" if p is None else str(p) for p in parts)
    return PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:DIGEST_CHARS]


def client_fingerprint(screen, timezone: str, language: str, user_agent: str) -> str:
    """Fingerprint computed in the page from what it can see about itself."""
    width, height = screen
    return _digest((width, height, timezone, language, user_agent))


def derive_fingerprint(meta: Mapping[str, Any], client_address: Optional[str] = None) -> str:
    """Visitor key on the collector: screen, timezone, address, client fingerprint."""
    screen = meta.get("screen") or {}
    return _digest((
        screen.get("width") or 0,
        screen.get("height") or 0,
        meta.get("timezone") or "",
        client_address or "unknown",
        meta.get("fingerprint") or "",
    ))
