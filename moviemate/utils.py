"""Utility helpers for the MovieMate core."""

from __future__ import annotations

from typing import Any, Iterable


def parse_year(value: Any) -> int | None:
    """Return the year of a ``YYYY-MM-DD`` provider date."""

    if not isinstance(value, str) or len(value) < 4:
        return None
    try:
        return int(value[:4])
    except ValueError:
        return None


def build_image_url(path: str | None, base_url: str) -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url.rstrip('/')}{path}"


def dedupe_preserving_order(values: Iterable[str | None]) -> tuple[str, ...]:
    """Drop empty and repeated values, keeping first occurrences."""

    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return tuple(ordered)


def bearer_token(header: str | None) -> str | None:
    """Extract the credential from an ``Authorization: Bearer`` header."""

    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
