"""Tests for custom categories and their item cascades."""

from __future__ import annotations

import pytest

from tripfolio.categories import DEFAULT_CATEGORIES
from tripfolio.db.categories import CATEGORY_SAVE_FAILED, NAME_REQUIRED
from tripfolio.db.kv import CUSTOM_CATEGORIES_SLOT
from tripfolio.errors import PersistenceError


def _item_categories(store):
    return [item.category for receipt in store.receipts.list_receipts() for item in receipt.items]


def test_all_categories_merges_defaults_and_custom(store):
    assert store.categories.add_category("  Souvenirs ").value == "Souvenirs"

    names = store.categories.all_categories()
    assert set(DEFAULT_CATEGORIES) | {"Souvenirs"} == set(names)
    assert names == sorted(names, key=str.casefold)
    assert store.categories.custom_categories() == ["Souvenirs"]


@pytest.mark.parametrize(
    "name, reason",
    [
        ("   ", NAME_REQUIRED),
        ("groceries", 'Category "groceries" already exists.'),
    ],
)
def test_add_category_rejections(store, name, reason):
    outcome = store.categories.add_category(name)
    assert not outcome.ok
    assert outcome.reason == reason
    assert store.categories.custom_categories() == []


@pytest.mark.asyncio
async def test_rename_rewrites_every_matching_item(store, draft_factory):
    store.categories.add_category("Snacks")
    await store.receipts.add_receipt(draft_factory(category="Snacks"), b"1")
    await store.receipts.add_receipt(draft_factory(category="Groceries"), b"2")

    outcome = store.categories.rename_category("Snacks", "Treats")

    assert outcome.ok
    assert store.categories.custom_categories() == ["Treats"]
    assert "Snacks" not in _item_categories(store)
    assert _item_categories(store).count("Treats") == 2
    assert _item_categories(store).count("Groceries") == 2


@pytest.mark.asyncio
async def test_rename_onto_existing_category_touches_nothing(store, draft_factory):
    store.categories.add_category("Snacks")
    store.categories.add_category("Treats")
    await store.receipts.add_receipt(draft_factory(category="Snacks"), b"1")

    outcome = store.categories.rename_category("Snacks", "treats")

    assert not outcome.ok
    assert outcome.reason == 'Category "treats" already exists.'
    assert store.categories.custom_categories() == ["Snacks", "Treats"]
    assert set(_item_categories(store)) == {"Snacks"}


def test_rename_case_only_change_is_allowed(store):
    store.categories.add_category("snacks")
    outcome = store.categories.rename_category("snacks", "Snacks")
    assert outcome.ok
    assert store.categories.custom_categories() == ["Snacks"]


def test_rename_rejects_defaults_and_unknown_names(store):
    assert store.categories.rename_category("Other", "Misc").reason == (
        'Default category "Other" cannot be changed.'
    )
    assert store.categories.rename_category("Nope", "Misc").reason == 'Category "Nope" not found.'


@pytest.mark.asyncio
async def test_rename_restores_list_when_item_rewrite_fails(store, draft_factory, monkeypatch):
    store.categories.add_category("Snacks")
    await store.receipts.add_receipt(draft_factory(category="Snacks"), b"1")

    def broken_replace(old, new):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store.receipts, "replace_category", broken_replace)

    outcome = store.categories.rename_category("Snacks", "Treats")

    assert not outcome.ok
    assert outcome.reason == CATEGORY_SAVE_FAILED
    assert store.categories.custom_categories() == ["Snacks"]


@pytest.mark.asyncio
async def test_delete_category_moves_items_to_other(store, draft_factory):
    store.categories.add_category("Snacks")
    await store.receipts.add_receipt(draft_factory(category="Snacks", prices=(100.0, 50.0)), b"1")

    outcome = store.categories.delete_category("Snacks")

    assert outcome.ok
    assert outcome.value == 2
    assert store.categories.custom_categories() == []
    assert set(_item_categories(store)) == {"Other"}
    assert store.receipts.list_receipts()[0].total == 150.0


@pytest.mark.asyncio
async def test_delete_restores_list_when_item_rewrite_fails(store, draft_factory, monkeypatch):
    store.categories.add_category("Snacks")
    await store.receipts.add_receipt(draft_factory(category="Snacks"), b"1")

    def broken_replace(old, new):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store.receipts, "replace_category", broken_replace)

    outcome = store.categories.delete_category("Snacks")

    assert outcome.reason == CATEGORY_SAVE_FAILED
    assert store.categories.custom_categories() == ["Snacks"]
    assert set(_item_categories(store)) == {"Snacks"}


@pytest.mark.asyncio
async def test_delete_leaves_items_when_list_write_fails(store, draft_factory, monkeypatch):
    store.categories.add_category("Snacks")
    await store.receipts.add_receipt(draft_factory(category="Snacks"), b"1")
    original_update = store.kv.update

    def failing_update(key, fn, default=None):
        if key == CUSTOM_CATEGORIES_SLOT:
            raise PersistenceError("disk full")
        return original_update(key, fn, default)

    monkeypatch.setattr(store.kv, "update", failing_update)

    outcome = store.categories.delete_category("Snacks")

    assert outcome.reason == CATEGORY_SAVE_FAILED
    assert store.categories.custom_categories() == ["Snacks"]
    assert set(_item_categories(store)) == {"Snacks"}

def test_default_categories_cannot_be_deleted(store):
    outcome = store.categories.delete_category("Lodging")
    assert not outcome.ok
    assert "cannot be changed" in outcome.reason
