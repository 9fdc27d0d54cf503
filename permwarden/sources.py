"""Permission data sources.

A session talks to a subject's permission data only through the
:class:`PermissionSource` protocol: two read queries issued together on
every load, and one commit used when an edit is applied.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal, Protocol

from permwarden.core.models import (
    AccessLevel,
    PermissionDataset,
    PermissionKey,
    ViewerContext,
)
from permwarden.core.rules import can_edit_min, can_edit_self_flag, min_edit_locked
from permwarden.exceptions import EditNotAllowedError, PermissionNotFoundError

logger = logging.getLogger("permwarden.sources")

PermissionField = Literal["self", "min"]


class PermissionSource(Protocol):
    async def get_permissions(self, subject_id: str) -> PermissionDataset: ...

    async def get_access_level(self, subject_id: str, viewer_id: str) -> AccessLevel: ...

    async def set_permission(
        self,
        subject_id: str,
        viewer_id: str,
        key: PermissionKey,
        field: PermissionField,
        value: bool | AccessLevel,
    ) -> None: ...


class InMemoryPermissionSource:
    """Holds subjects' permission datasets and viewer tiers in memory.

    A subject always sees themselves at ``SELF``; viewers without an
    assigned tier are ``PUBLIC``.  Subjects listed in ``unreachable``
    fail every query, which is how tests and demos exercise the failure
    path.  Commits are checked against the same authority rules the
    permission list uses.
    """

    def __init__(self) -> None:
        self._datasets: dict[str, PermissionDataset] = {}
        self._levels: dict[tuple[str, str], AccessLevel] = {}
        self.unreachable: set[str] = set()

    def load_raw(self, subject_id: str, raw: Mapping[str, Any]) -> PermissionDataset:
        """Validate and store wire-format permission data for *subject_id*."""
        dataset = PermissionDataset.from_raw(raw)
        self._datasets[subject_id] = dataset
        return dataset

    def set_dataset(self, subject_id: str, dataset: PermissionDataset) -> None:
        self._datasets[subject_id] = dataset

    def set_access_level(self, subject_id: str, viewer_id: str, level: AccessLevel) -> None:
        self._levels[(subject_id, viewer_id)] = level

    def clear(self) -> None:
        self._datasets.clear()
        self._levels.clear()
        self.unreachable.clear()

    def _check_reachable(self, subject_id: str) -> None:
        if subject_id in self.unreachable or subject_id not in self._datasets:
            raise ConnectionError(f"Subject '{subject_id}' is unreachable")

    async def get_permissions(self, subject_id: str) -> PermissionDataset:
        self._check_reachable(subject_id)
        return self._datasets[subject_id]

    async def get_access_level(self, subject_id: str, viewer_id: str) -> AccessLevel:
        self._check_reachable(subject_id)
        if viewer_id == subject_id:
            return AccessLevel.SELF
        return self._levels.get((subject_id, viewer_id), AccessLevel.PUBLIC)

    async def set_permission(
        self,
        subject_id: str,
        viewer_id: str,
        key: PermissionKey,
        field: PermissionField,
        value: bool | AccessLevel,
    ) -> None:
        """Apply one field change on behalf of *viewer_id*.

        Raises:
            PermissionNotFoundError: *key* is not in the subject's dataset.
            EditNotAllowedError: the authority rules deny the change.
        """
        dataset = await self.get_permissions(subject_id)
        descriptor = dataset.get(key)
        if descriptor is None:
            raise PermissionNotFoundError(f"Permission '{key}' not found for '{subject_id}'")

        viewer = ViewerContext(
            access_level=await self.get_access_level(subject_id, viewer_id),
            is_subject=viewer_id == subject_id,
        )

        if field == "self":
            if not can_edit_self_flag(key, descriptor, dataset, viewer):
                raise EditNotAllowedError(f"Not allowed to change self access of '{key}'")
            updated = descriptor.model_copy(update={"self_exempt": bool(value)})
        else:
            new_min = AccessLevel(value)
            if not can_edit_min(key, descriptor, dataset, viewer):
                raise EditNotAllowedError(f"Not allowed to change lowest access of '{key}'")
            if new_min < descriptor.min_level and min_edit_locked(descriptor, dataset, viewer):
                raise EditNotAllowedError(f"Lowest access of '{key}' may only be raised")
            changes: dict[str, Any] = {"min_level": new_min}
            if new_min == AccessLevel.SELF:
                changes["self_exempt"] = True
            updated = descriptor.model_copy(update=changes)

        self._datasets[subject_id] = dataset.replace(key, updated)
        logger.info(
            "Permission %s.%s set to %s by %s",
            key,
            field,
            value,
            viewer_id,
            extra={"subject_id": subject_id, "viewer_id": viewer_id},
        )
