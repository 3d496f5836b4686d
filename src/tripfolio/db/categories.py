"""Custom categories and the item cascades triggered by rename/delete."""

from __future__ import annotations

import logging
from typing import List

from tripfolio.categories import (
    FALLBACK_CATEGORY,
    combined_categories,
    find_category,
    is_default_category,
)
from tripfolio.errors import PersistenceError
from tripfolio.outcome import Outcome

from .kv import CUSTOM_CATEGORIES_SLOT, KeyValueStore
from .receipts import ReceiptRepository

logger = logging.getLogger(__name__)

NAME_REQUIRED = "Category name is required."
CATEGORY_SAVE_FAILED = "The category change could not be saved."


def _exists(name: str) -> str:
    return f'Category "{name}" already exists.'


def _not_found(name: str) -> str:
    return f'Category "{name}" not found.'


def _is_default(name: str) -> str:
    return f'Default category "{name}" cannot be changed.'


class CategoryRepository:
    """User-owned categories layered over the fixed defaults."""

    def __init__(self, kv: KeyValueStore, receipts: ReceiptRepository) -> None:
        self._kv = kv
        self._receipts = receipts

    def custom_categories(self) -> List[str]:
        return list(self._kv.get(CUSTOM_CATEGORIES_SLOT, []))

    def all_categories(self) -> List[str]:
        return combined_categories(self.custom_categories())

    def replace_custom(self, names: List[str]) -> None:
        self._kv.set(CUSTOM_CATEGORIES_SLOT, list(names))

    def add_category(self, name: str) -> Outcome[str]:
        cleaned = name.strip()
        if not cleaned:
            return Outcome.failure(NAME_REQUIRED)
        if find_category(cleaned, self.all_categories()) is not None:
            return Outcome.failure(_exists(cleaned))
        try:
            self._kv.update(
                CUSTOM_CATEGORIES_SLOT, lambda previous: [*(previous or []), cleaned], []
            )
        except PersistenceError:
            return Outcome.failure(CATEGORY_SAVE_FAILED)
        logger.info("Added category %s", cleaned)
        return Outcome.success(cleaned)

    def rename_category(self, old: str, new: str) -> Outcome[str]:
        """Rename a custom category and rewrite every item that used the old name.

        Either both the category list and the items change, or neither does: if the item
        rewrite fails the previous category list is written back.
        """

        cleaned = new.strip()
        if not cleaned:
            return Outcome.failure(NAME_REQUIRED)
        if is_default_category(old):
            return Outcome.failure(_is_default(old))
        previous = self.custom_categories()
        if old not in previous:
            return Outcome.failure(_not_found(old))
        if old == cleaned:
            return Outcome.success(cleaned)
        others = [name for name in self.all_categories() if name != old]
        if find_category(cleaned, others) is not None:
            return Outcome.failure(_exists(cleaned))

        try:
            self._kv.update(
                CUSTOM_CATEGORIES_SLOT,
                lambda current: [cleaned if name == old else name for name in current or []],
                [],
            )
        except PersistenceError:
            return Outcome.failure(CATEGORY_SAVE_FAILED)

        try:
            rewritten = self._receipts.replace_category(old, cleaned)
        except PersistenceError:
            logger.error("Item cascade for rename %s -> %s failed; restoring category list", old, cleaned)
            self._kv.set(CUSTOM_CATEGORIES_SLOT, previous)
            return Outcome.failure(CATEGORY_SAVE_FAILED)

        logger.info("Renamed category %s -> %s (%d item(s) rewritten)", old, cleaned, rewritten)
        return Outcome.success(cleaned)

    def delete_category(self, name: str) -> Outcome[int]:
        """Remove a custom category; its items are reassigned to the fallback category."""

        if is_default_category(name):
            return Outcome.failure(_is_default(name))
        previous = self.custom_categories()
        if name not in previous:
            return Outcome.failure(_not_found(name))

        try:
            self._kv.update(
                CUSTOM_CATEGORIES_SLOT,
                lambda current: [entry for entry in current or [] if entry != name],
                [],
            )
        except PersistenceError:
            return Outcome.failure(CATEGORY_SAVE_FAILED)

        try:
            rewritten = self._receipts.replace_category(name, FALLBACK_CATEGORY)
        except PersistenceError:
            logger.error("Item cascade for deleting %s failed; restoring category list", name)
            self._kv.set(CUSTOM_CATEGORIES_SLOT, previous)
            return Outcome.failure(CATEGORY_SAVE_FAILED)

        logger.info("Deleted category %s (%d item(s) moved to %s)", name, rewritten, FALLBACK_CATEGORY)
        return Outcome.success(rewritten)


__all__ = ["CategoryRepository", "NAME_REQUIRED"]
