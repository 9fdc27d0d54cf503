"""Permission editing session for one viewer looking at one subject.

The session owns the load lifecycle (``IDLE -> LOADING -> READY | FAILED``),
the filter text, the built permission list and the current page.  Data
arrives as a :class:`PermissionSnapshot` that is swapped in whole, so a
rebuild only ever sees a complete dataset/viewer pair.

Loads may overlap.  Each load takes a new sequence number and a
response is only published while its number is still the latest one.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from permwarden.config import settings
from permwarden.core.listing import build_permission_list
from permwarden.core.models import (
    AccessLevel,
    ListItem,
    PermissionDescriptor,
    PermissionKey,
    PermissionSnapshot,
    ViewerContext,
)
from permwarden.core.pagination import Pagination
from permwarden.core.rules import (
    can_edit_min,
    can_edit_self_flag,
    min_edit_locked,
    needs_self_revoke_confirmation,
)
from permwarden.exceptions import (
    EditNotAllowedError,
    FetchFailure,
    PermissionNotFoundError,
    SessionNotReadyError,
)
from permwarden.sources import PermissionSource

logger = logging.getLogger("permwarden.session")


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Edit intents handed to the presentation layer
# ---------------------------------------------------------------------------


class SelfFlagChange(BaseModel):
    """Apply the new self-exemption value right away."""

    model_config = ConfigDict(frozen=True)

    action: Literal["apply"] = "apply"
    key: PermissionKey
    value: bool


class SelfFlagConfirmation(BaseModel):
    """Ask the subject to confirm before revoking their own exemption."""

    model_config = ConfigDict(frozen=True)

    action: Literal["confirm"] = "confirm"
    key: PermissionKey
    descriptor: PermissionDescriptor
    value: bool = False


class MinEditRequest(BaseModel):
    """Input for the minimum-tier editor.

    ``locked`` means the general edit gate does not pass and the editor
    may only offer raising the tier.
    """

    model_config = ConfigDict(frozen=True)

    key: PermissionKey
    descriptor: PermissionDescriptor
    viewer_level: AccessLevel
    locked: bool


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class PermissionSession:
    """Authority state for one (viewer, subject) pair."""

    def __init__(
        self,
        source: PermissionSource,
        viewer_id: str,
        *,
        page_size: int | None = None,
    ) -> None:
        self.source = source
        self.viewer_id = viewer_id
        self.subject_id: str | None = None
        self.state = SessionState.IDLE
        self.snapshot: PermissionSnapshot | None = None
        self.failure: FetchFailure | None = None
        self.filter_text = ""
        self.items: list[ListItem] = []
        self.pagination = Pagination(page_size=page_size or settings.page_size)
        self._request_seq = 0

    # -- loading ------------------------------------------------------------

    async def load_for(self, subject_id: str) -> None:
        """Fetch the subject's permissions and the viewer's tier together.

        Prior data is dropped as soon as the load starts; the page index
        is kept and clamped against the new list once it arrives.  A
        failure of either query leaves the session ``FAILED`` with
        :attr:`failure` set; it is logged, not raised.
        """
        self._request_seq += 1
        seq = self._request_seq
        self.subject_id = subject_id
        self.state = SessionState.LOADING
        self.snapshot = None
        self.failure = None
        self._rebuild()

        log_extra = {"subject_id": subject_id, "viewer_id": self.viewer_id, "request_seq": seq}
        logger.debug("Loading permissions for %s", subject_id, extra=log_extra)

        try:
            dataset, level = await asyncio.gather(
                self.source.get_permissions(subject_id),
                self.source.get_access_level(subject_id, self.viewer_id),
            )
        except Exception as exc:
            if seq != self._request_seq:
                logger.debug("Discarding stale failure for %s", subject_id, extra=log_extra)
                return
            failure = FetchFailure(f"Failed to get permission data for '{subject_id}'")
            failure.__cause__ = exc
            logger.error(
                "Failed to get permission info for %s", subject_id, exc_info=exc, extra=log_extra
            )
            self.failure = failure
            self.state = SessionState.FAILED
            self._rebuild()
            return

        if seq != self._request_seq:
            logger.debug("Discarding stale response for %s", subject_id, extra=log_extra)
            return

        self.snapshot = PermissionSnapshot(
            subject_id=subject_id,
            dataset=dataset,
            viewer=ViewerContext(access_level=level, is_subject=subject_id == self.viewer_id),
        )
        self.state = SessionState.READY
        self._rebuild()
        logger.info(
            "Loaded %d permissions for %s at %s",
            len(dataset),
            subject_id,
            level.name,
            extra=log_extra,
        )

    async def on_external_change(self, subject_id: str) -> None:
        """Reload when the loaded subject's permissions changed elsewhere."""
        if self.subject_id is not None and subject_id == self.subject_id:
            await self.load_for(subject_id)

    # -- list ---------------------------------------------------------------

    def set_filter_text(self, text: str) -> None:
        self.filter_text = text
        self._rebuild()

    def clear_filter(self) -> None:
        self.set_filter_text("")

    def _rebuild(self) -> None:
        snapshot = self.snapshot
        if snapshot is None:
            # Keep the page while data is away; it is clamped when data arrives.
            self.items = []
            return
        self.items = build_permission_list(snapshot.dataset, snapshot.viewer, self.filter_text)
        self.pagination.clamp(len(self.items))

    # -- paging -------------------------------------------------------------

    @property
    def page(self) -> int:
        return self.pagination.page

    def page_count(self) -> int:
        return self.pagination.page_count(len(self.items))

    def get_page(self, page_index: int) -> list[ListItem]:
        return self.pagination.slice(self.items, page_index)

    def current_items(self) -> list[ListItem]:
        return self.pagination.slice(self.items)

    def goto_next_page(self) -> int:
        return self.pagination.next(len(self.items))

    def goto_prev_page(self) -> int:
        return self.pagination.prev(len(self.items))

    # -- edit requests ------------------------------------------------------

    def request_toggle_self_flag(
        self, key: PermissionKey | str
    ) -> SelfFlagChange | SelfFlagConfirmation:
        """Turn a click on the self-exemption box into an edit intent.

        Raises:
            SessionNotReadyError: no data is loaded.
            PermissionNotFoundError: *key* is not in the dataset.
            EditNotAllowedError: the viewer may not toggle this flag.
        """
        snapshot, perm_key, descriptor = self._lookup(key)
        if not can_edit_self_flag(perm_key, descriptor, snapshot.dataset, snapshot.viewer):
            raise EditNotAllowedError(f"Not allowed to change self access of '{perm_key}'")
        if needs_self_revoke_confirmation(perm_key, descriptor, snapshot.dataset, snapshot.viewer):
            return SelfFlagConfirmation(key=perm_key, descriptor=descriptor)
        return SelfFlagChange(key=perm_key, value=not descriptor.self_exempt)

    def request_edit_min(self, key: PermissionKey | str) -> MinEditRequest:
        """Collect what the minimum-tier editor needs for *key*.

        Raises the same errors as :meth:`request_toggle_self_flag`.
        """
        snapshot, perm_key, descriptor = self._lookup(key)
        if not can_edit_min(perm_key, descriptor, snapshot.dataset, snapshot.viewer):
            raise EditNotAllowedError(f"Not allowed to change lowest access of '{perm_key}'")
        return MinEditRequest(
            key=perm_key,
            descriptor=descriptor,
            viewer_level=snapshot.viewer.access_level,
            locked=min_edit_locked(descriptor, snapshot.dataset, snapshot.viewer),
        )

    def _lookup(
        self, key: PermissionKey | str
    ) -> tuple[PermissionSnapshot, PermissionKey, PermissionDescriptor]:
        snapshot = self.snapshot
        if self.state is not SessionState.READY or snapshot is None:
            raise SessionNotReadyError(f"Permission data is not loaded (state: {self.state.value})")
        try:
            perm_key = PermissionKey(key)
        except ValueError:
            raise PermissionNotFoundError(f"Unknown permission '{key}'") from None
        descriptor = snapshot.dataset.get(perm_key)
        if descriptor is None:
            raise PermissionNotFoundError(f"Permission '{perm_key}' not found")
        return snapshot, perm_key, descriptor
