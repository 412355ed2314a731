"""Selector resolution for vertical and market scopes."""

from __future__ import annotations

import re

CATEGORY_VERTICALS: dict[str, str] = {
    "education": "language_learning",
    "finance": "finance",
    "business": "productivity",
    "productivity": "productivity",
    "entertainment": "entertainment",
    "games": "entertainment",
    "lifestyle": "rewards",
    "shopping": "rewards",
    "health & fitness": "health",
    "medical": "health",
    "social networking": "dating",
}


def resolve_vertical(category: str | None) -> str | None:
    """Map an app-store category to its vertical id."""
    if not category:
        return None
    return CATEGORY_VERTICALS.get(category.strip().lower())


def resolve_market(locale: str | None) -> str | None:
    """Map a locale such as ``en-US`` or ``pt_BR`` to a market id."""
    if not locale:
        return None
    parts = [part for part in re.split(r"[-_]", locale.strip().lower()) if part]
    if not parts:
        return None
    return parts[-1] if len(parts) > 1 else parts[0]


CATEGORY_EXPECTED_VERTICALS: dict[str, tuple[str, ...]] = {
    "education": ("language_learning",),
    "finance": ("finance",),
    "business": ("finance", "productivity"),
    "entertainment": ("entertainment", "rewards"),
    "games": ("entertainment",),
    "shopping": ("rewards",),
    "medical": ("health",),
    "lifestyle": ("rewards", "health", "dating"),
    "health & fitness": ("health",),
    "productivity": ("productivity",),
    "social networking": ("dating",),
}


def expected_verticals(category: str | None) -> tuple[str, ...]:
    """Verticals that are plausible for a category (base is always allowed)."""
    if not category:
        return ()
    return CATEGORY_EXPECTED_VERTICALS.get(category.strip().lower(), ())
