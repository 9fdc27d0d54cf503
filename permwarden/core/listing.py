"""Filtered, grouped and sorted permission list."""

from __future__ import annotations

from permwarden.core.models import (
    MODULE_NAMES,
    CategorySeparator,
    ListItem,
    ModuleCategory,
    PermissionDataset,
    PermissionDescriptor,
    PermissionKey,
    PermissionRow,
    ViewerContext,
)
from permwarden.core.rules import can_edit_min, can_edit_self_flag


def parse_filter_terms(filter_text: str) -> list[str]:
    """Split filter text on whitespace into lowercase terms."""
    return filter_text.lower().split()


def matches_filter(key: PermissionKey, descriptor: PermissionDescriptor, terms: list[str]) -> bool:
    """Every term must appear in the category name, the permission name, or the key."""
    fields = (
        MODULE_NAMES[descriptor.category].lower(),
        descriptor.name.lower(),
        key.value.lower(),
    )
    return all(any(term in field for field in fields) for term in terms)


def _name_sort_key(entry: tuple[PermissionKey, PermissionDescriptor]) -> tuple[str, str, str]:
    """Case-insensitive name order, ties broken by the raw name, then the key.

    ``casefold()`` stands in for locale-aware collation: it ignores case
    but not accents, so "É" sorts after "Z" rather than beside "E".
    """
    key, descriptor = entry
    return (descriptor.name.casefold(), descriptor.name, key.value)


def build_permission_list(
    dataset: PermissionDataset | None,
    viewer: ViewerContext,
    filter_text: str = "",
) -> list[ListItem]:
    """Build the permission list shown to *viewer*.

    Categories appear in ordinal order, each preceded by a separator and
    followed by its matching permissions sorted by display name.  Edit
    rights are computed fresh on every call.
    """
    if dataset is None:
        return []

    terms = parse_filter_terms(filter_text)
    categories: dict[ModuleCategory, list[tuple[PermissionKey, PermissionDescriptor]]] = {}
    for key, descriptor in dataset.items():
        if not matches_filter(key, descriptor, terms):
            continue
        categories.setdefault(descriptor.category, []).append((key, descriptor))

    items: list[ListItem] = []
    for category in sorted(categories):
        items.append(CategorySeparator(category=category, name=MODULE_NAMES[category]))
        for key, descriptor in sorted(categories[category], key=_name_sort_key):
            items.append(
                PermissionRow(
                    key=key,
                    descriptor=descriptor,
                    edit_self=can_edit_self_flag(key, descriptor, dataset, viewer),
                    edit_min=can_edit_min(key, descriptor, dataset, viewer),
                )
            )
    return items
