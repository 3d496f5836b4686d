"""Spending categories: the fixed defaults, the fallback sentinel and name resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

FALLBACK_CATEGORY = "Other"

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Food & Drink",
    "Groceries",
    "Transportation",
    "Shopping",
    "Lodging",
    "Entertainment",
    "Utilities",
    "Health & Wellness",
    FALLBACK_CATEGORY,
)


def fold(name: str) -> str:
    """Case-folded form used for every category/trip name comparison."""

    return name.strip().casefold()


def is_default_category(name: str) -> bool:
    return any(fold(name) == fold(default) for default in DEFAULT_CATEGORIES)


def find_category(name: str, categories: Iterable[str]) -> Optional[str]:
    """Return the stored spelling of ``name`` within ``categories`` ignoring case."""

    target = fold(name)
    for candidate in categories:
        if fold(candidate) == target:
            return candidate
    return None


def combined_categories(custom: Sequence[str]) -> list[str]:
    """Defaults plus custom categories, sorted case-insensitively."""

    return sorted([*DEFAULT_CATEGORIES, *custom], key=fold)


@dataclass(frozen=True)
class CategoryResolution:
    """Display name for an item category plus whether it fell back to the sentinel."""

    name: str
    known: bool


def resolve_category(name: Optional[str], known: Iterable[str]) -> CategoryResolution:
    """Resolve a stored item category against the current category set.

    Exact matches are returned as-is. Names that no longer exist (or were never valid)
    resolve to :data:`FALLBACK_CATEGORY`.
    """

    if name:
        known_set = set(known)
        if name in known_set:
            return CategoryResolution(name=name, known=True)
    return CategoryResolution(name=FALLBACK_CATEGORY, known=False)


__all__ = [
    "FALLBACK_CATEGORY",
    "DEFAULT_CATEGORIES",
    "CategoryResolution",
    "combined_categories",
    "find_category",
    "fold",
    "is_default_category",
    "resolve_category",
]
