"""Domain models for per-permission authority.

- AccessLevel: ordered trust tiers a viewer can hold toward a subject
- ModuleCategory: stable, ordinal-sorted grouping of permissions
- PermissionKey: the closed set of permission identifiers
- PermissionDescriptor / PermissionDataset: one fetched snapshot of a subject's rules
- ViewerContext / PermissionSnapshot: who is looking, and what they see
- ListItem: rows of the permission editing list
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from enum import IntEnum, StrEnum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from permwarden.exceptions import DatasetValidationError

logger = logging.getLogger("permwarden.models")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AccessLevel(IntEnum):
    """Trust tiers, lowest to highest.

    ``SELF`` stands for the subject acting on themselves and is the only
    tier that can pass a gate through a descriptor's self-exemption.
    """

    PUBLIC = 0
    FRIEND = 1
    WHITELIST = 2
    MISTRESS = 3
    LOVER = 4
    SELF = 5
    OWNER = 6


class ModuleCategory(IntEnum):
    """Permission categories; the value is the display order."""

    AUTHORITY = 0
    LOG = 1
    CURSES = 2
    RULES = 3
    COMMANDS = 4
    RELATIONSHIPS = 5
    MISC = 6


MODULE_NAMES: dict[ModuleCategory, str] = {
    ModuleCategory.AUTHORITY: "Authority",
    ModuleCategory.LOG: "Behaviour Log",
    ModuleCategory.CURSES: "Curses",
    ModuleCategory.RULES: "Rules",
    ModuleCategory.COMMANDS: "Commands",
    ModuleCategory.RELATIONSHIPS: "Relationships",
    ModuleCategory.MISC: "Miscellaneous",
}


class PermissionKey(StrEnum):
    AUTHORITY_GRANT_SELF = "authority_grant_self"
    AUTHORITY_REVOKE_SELF = "authority_revoke_self"
    AUTHORITY_EDIT_MIN = "authority_edit_min"
    AUTHORITY_MISTRESS_ADD = "authority_mistress_add"
    AUTHORITY_MISTRESS_REMOVE = "authority_mistress_remove"
    AUTHORITY_OWNER_ADD = "authority_owner_add"
    AUTHORITY_OWNER_REMOVE = "authority_owner_remove"
    AUTHORITY_VIEW_ROLES = "authority_view_roles"
    LOG_VIEW_NORMAL = "log_view_normal"
    LOG_VIEW_PROTECTED = "log_view_protected"
    LOG_CONFIGURE = "log_configure"
    LOG_DELETE = "log_delete"
    LOG_PRAISE = "log_praise"
    LOG_LEAVE_MESSAGE = "log_leaveMessage"
    CURSES_NORMAL = "curses_normal"
    CURSES_LIMITED = "curses_limited"
    CURSES_CHANGE_LIMITS = "curses_change_limits"
    CURSES_COLOR = "curses_color"
    RULES_NORMAL = "rules_normal"
    RULES_LIMITED = "rules_limited"
    RULES_CHANGE_LIMITS = "rules_change_limits"
    COMMANDS_NORMAL = "commands_normal"
    COMMANDS_LIMITED = "commands_limited"
    COMMANDS_CHANGE_LIMITS = "commands_change_limits"
    RELATIONSHIPS_VIEW = "relationships_view"
    RELATIONSHIPS_MODIFY = "relationships_modify"
    MISC_CHEAT_ALLOWCHANGE = "misc_cheat_allowchange"


#: Meta-permissions gating edits of other permissions.
GRANT_SELF_KEY = PermissionKey.AUTHORITY_GRANT_SELF
REVOKE_SELF_KEY = PermissionKey.AUTHORITY_REVOKE_SELF
EDIT_MIN_KEY = PermissionKey.AUTHORITY_EDIT_MIN


# ---------------------------------------------------------------------------
# Descriptors and datasets
# ---------------------------------------------------------------------------


class PermissionDescriptor(BaseModel):
    """Current state of one controllable permission.

    On the wire the two rule fields are called ``self`` and ``min``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    category: ModuleCategory
    name: str
    self_exempt: bool = Field(
        alias="self", description="Subject is exempt from the minimum when acting on themselves"
    )
    min_level: AccessLevel = Field(alias="min", description="Lowest tier otherwise required")


class PermissionDataset(BaseModel):
    """Immutable mapping from permission key to descriptor for one subject."""

    model_config = ConfigDict(frozen=True)

    permissions: dict[PermissionKey, PermissionDescriptor] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> PermissionDataset:
        """Validate raw wire data into a dataset.

        Keys outside :class:`PermissionKey` are skipped with a warning so
        that a newer peer does not break older viewers.  A malformed
        descriptor for a known key raises :class:`DatasetValidationError`.
        """
        permissions: dict[PermissionKey, PermissionDescriptor] = {}
        for raw_key, raw_descriptor in raw.items():
            try:
                key = PermissionKey(raw_key)
            except ValueError:
                logger.warning("Skipping unknown permission key %r", raw_key)
                continue
            try:
                permissions[key] = PermissionDescriptor.model_validate(raw_descriptor)
            except ValidationError as exc:
                msg = f"Invalid descriptor for permission '{raw_key}': {exc.error_count()} error(s)"
                raise DatasetValidationError(msg) from exc
        return cls(permissions=permissions)

    def get(self, key: PermissionKey) -> PermissionDescriptor | None:
        return self.permissions.get(key)

    def items(self) -> Iterator[tuple[PermissionKey, PermissionDescriptor]]:
        return iter(self.permissions.items())

    def replace(self, key: PermissionKey, descriptor: PermissionDescriptor) -> PermissionDataset:
        """Return a new dataset with *key* set to *descriptor*."""
        return PermissionDataset(permissions={**self.permissions, key: descriptor})

    def to_raw(self) -> dict[str, dict[str, Any]]:
        """Wire-format form, accepted back by :meth:`from_raw`."""
        return {
            key.value: descriptor.model_dump(mode="json", by_alias=True)
            for key, descriptor in self.permissions.items()
        }

    def __len__(self) -> int:
        return len(self.permissions)


# ---------------------------------------------------------------------------
# Viewer and snapshot
# ---------------------------------------------------------------------------


class ViewerContext(BaseModel):
    """The requester's tier toward the subject, and whether they are the subject."""

    model_config = ConfigDict(frozen=True)

    access_level: AccessLevel = AccessLevel.PUBLIC
    is_subject: bool = False


class PermissionSnapshot(BaseModel):
    """Dataset and viewer from one completed fetch, published as a unit."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    dataset: PermissionDataset
    viewer: ViewerContext


# ---------------------------------------------------------------------------
# List items
# ---------------------------------------------------------------------------


class CategorySeparator(BaseModel):
    model_config = ConfigDict(frozen=True)

    separator: Literal[True] = True
    category: ModuleCategory
    name: str


class PermissionRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    separator: Literal[False] = False
    key: PermissionKey
    descriptor: PermissionDescriptor
    edit_self: bool
    edit_min: bool


ListItem = Union[CategorySeparator, PermissionRow]
