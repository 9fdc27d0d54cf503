"""Authority rules deciding who may edit which permission field.

Every edit right is double-gated: a meta-permission controls the class
of edit (granting self access, revoking it, changing the minimum tier)
and the target permission's own gate must pass too.  The subject keeps
two narrow carve-outs: they skip the target gate when toggling their own
self-exemption, and they may always move a minimum toward ``OWNER``.

All functions here are pure and total.  A missing meta-permission is
treated as "not satisfied", never as an error.
"""

from __future__ import annotations

from permwarden.core.models import (
    EDIT_MIN_KEY,
    GRANT_SELF_KEY,
    REVOKE_SELF_KEY,
    AccessLevel,
    PermissionDataset,
    PermissionDescriptor,
    PermissionKey,
    ViewerContext,
)


def satisfies(descriptor: PermissionDescriptor, level: AccessLevel) -> bool:
    """Return True when a viewer at *level* passes *descriptor*'s gate.

    The self-exemption short-circuits the minimum only for the ``SELF``
    tier, i.e. only when the viewer is the subject.
    """
    if descriptor.self_exempt and level == AccessLevel.SELF:
        return True
    return level >= descriptor.min_level


def satisfies_key(dataset: PermissionDataset, key: PermissionKey, level: AccessLevel) -> bool:
    """Like :func:`satisfies`, looked up by key.  Absent keys deny."""
    descriptor = dataset.get(key)
    if descriptor is None:
        return False
    return satisfies(descriptor, level)


def can_edit_self_flag(
    key: PermissionKey,
    descriptor: PermissionDescriptor,
    dataset: PermissionDataset,
    viewer: ViewerContext,
) -> bool:
    """Decide whether *viewer* may flip the self-exemption of *key*."""
    meta_key = REVOKE_SELF_KEY if descriptor.self_exempt else GRANT_SELF_KEY
    if not satisfies_key(dataset, meta_key, viewer.access_level):
        return False
    # Others must pass the rule they are changing; the subject is exempt.
    if not viewer.is_subject and not satisfies(descriptor, viewer.access_level):
        return False
    # A minimum of SELF forces the exemption on.
    return not (descriptor.self_exempt and descriptor.min_level == AccessLevel.SELF)


def can_edit_min(
    key: PermissionKey,
    descriptor: PermissionDescriptor,
    dataset: PermissionDataset,
    viewer: ViewerContext,
) -> bool:
    """Decide whether *viewer* may change the minimum tier of *key*."""
    if viewer.is_subject and descriptor.min_level < AccessLevel.OWNER:
        return True
    return _passes_min_gate(descriptor, dataset, viewer)


def min_edit_locked(
    descriptor: PermissionDescriptor,
    dataset: PermissionDataset,
    viewer: ViewerContext,
) -> bool:
    """True when only the subject's raise-only carve-out allows the edit.

    The minimum editor uses this to offer raising the tier but not
    lowering it.
    """
    return not _passes_min_gate(descriptor, dataset, viewer)


def needs_self_revoke_confirmation(
    key: PermissionKey,
    descriptor: PermissionDescriptor,
    dataset: PermissionDataset,
    viewer: ViewerContext,
) -> bool:
    """True when the subject turning off their exemption could not turn it back on.

    Revoking the exemption on the grant meta-permission itself always
    asks for confirmation.
    """
    if not (viewer.is_subject and descriptor.self_exempt):
        return False
    return key == GRANT_SELF_KEY or not satisfies_key(
        dataset, GRANT_SELF_KEY, viewer.access_level
    )


def _passes_min_gate(
    descriptor: PermissionDescriptor,
    dataset: PermissionDataset,
    viewer: ViewerContext,
) -> bool:
    return satisfies_key(dataset, EDIT_MIN_KEY, viewer.access_level) and satisfies(
        descriptor, viewer.access_level
    )
