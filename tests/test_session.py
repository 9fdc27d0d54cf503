"""Tests for the permission editing session (load lifecycle, paging, edit requests)."""

from __future__ import annotations

import asyncio
import logging

import pytest

from permwarden.core.models import AccessLevel, CategorySeparator, PermissionKey
from permwarden.exceptions import (
    EditNotAllowedError,
    FetchFailure,
    PermissionNotFoundError,
    SessionNotReadyError,
)
from permwarden.session import (
    MinEditRequest,
    PermissionSession,
    SelfFlagChange,
    SelfFlagConfirmation,
    SessionState,
)
from permwarden.sources import InMemoryPermissionSource


class GatedSource(InMemoryPermissionSource):
    """Holds every permission query until its gate is opened."""

    def __init__(self) -> None:
        super().__init__()
        self.gates: list[asyncio.Event] = []
        self.fail_next = False

    async def get_permissions(self, subject_id):
        dataset = self._datasets[subject_id]
        fail, self.fail_next = self.fail_next, False
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        if fail:
            raise ConnectionError("connection reset")
        return dataset


class LevelFailingSource(InMemoryPermissionSource):
    async def get_access_level(self, subject_id, viewer_id):
        raise PermissionError("no access to this subject")


async def _wait_for_gates(source: GatedSource, count: int) -> None:
    while len(source.gates) < count:
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Load lifecycle
# ---------------------------------------------------------------------------


class TestLoading:
    def test_initial_state(self, source):
        session = PermissionSession(source, "bob")
        assert session.state is SessionState.IDLE
        assert session.snapshot is None
        assert session.items == []
        assert session.page_count() == 1

    async def test_load_success(self, source):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        assert session.state is SessionState.READY
        assert session.failure is None
        assert session.snapshot.viewer.access_level is AccessLevel.OWNER
        assert session.snapshot.viewer.is_subject is False
        assert len(session.items) == 17

    async def test_subject_views_self(self, source):
        session = PermissionSession(source, "alice")
        await session.load_for("alice")
        assert session.snapshot.viewer.access_level is AccessLevel.SELF
        assert session.snapshot.viewer.is_subject is True

    async def test_failure_discards_prior_data(self, source, caplog):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        assert session.state is SessionState.READY

        source.unreachable.add("alice")
        with caplog.at_level(logging.ERROR, logger="permwarden.session"):
            await session.load_for("alice")

        assert session.state is SessionState.FAILED
        assert isinstance(session.failure, FetchFailure)
        assert isinstance(session.failure.__cause__, ConnectionError)
        assert session.snapshot is None
        assert session.items == []
        assert "Failed to get permission info for alice" in caplog.text

    async def test_either_query_failing_fails_the_load(self, raw_permissions):
        source = LevelFailingSource()
        source.load_raw("alice", raw_permissions)
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        assert session.state is SessionState.FAILED
        assert isinstance(session.failure.__cause__, PermissionError)

    async def test_retry_after_failure(self, source):
        source.unreachable.add("alice")
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        assert session.state is SessionState.FAILED

        source.unreachable.clear()
        await session.load_for("alice")
        assert session.state is SessionState.READY
        assert session.failure is None

    async def test_loading_state_while_in_flight(self, raw_permissions):
        source = GatedSource()
        source.load_raw("alice", raw_permissions)
        session = PermissionSession(source, "bob")

        task = asyncio.create_task(session.load_for("alice"))
        await _wait_for_gates(source, 1)
        assert session.state is SessionState.LOADING
        assert session.items == []

        source.gates[0].set()
        await task
        assert session.state is SessionState.READY


class TestStaleResponses:
    async def test_older_response_does_not_overwrite_newer(self, raw_permissions, dataset):
        source = GatedSource()
        source.load_raw("alice", raw_permissions)
        session = PermissionSession(source, "bob")

        first = asyncio.create_task(session.load_for("alice"))
        await _wait_for_gates(source, 1)

        newer = dataset.replace(
            PermissionKey.LOG_DELETE,
            dataset.get(PermissionKey.LOG_DELETE).model_copy(update={"name": "Erase log"}),
        )
        source.set_dataset("alice", newer)
        second = asyncio.create_task(session.load_for("alice"))
        await _wait_for_gates(source, 2)

        source.gates[1].set()
        await second
        assert session.snapshot.dataset == newer

        source.gates[0].set()
        await first
        assert session.state is SessionState.READY
        assert session.snapshot.dataset == newer

    async def test_stale_failure_is_ignored(self, raw_permissions):
        source = GatedSource()
        source.load_raw("alice", raw_permissions)
        session = PermissionSession(source, "bob")

        source.fail_next = True
        first = asyncio.create_task(session.load_for("alice"))
        await _wait_for_gates(source, 1)
        second = asyncio.create_task(session.load_for("alice"))
        await _wait_for_gates(source, 2)

        source.gates[1].set()
        await second
        source.gates[0].set()
        await first

        assert session.state is SessionState.READY
        assert session.failure is None


class TestExternalChange:
    async def test_same_subject_reloads(self, source, dataset):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")

        source.set_dataset(
            "alice",
            dataset.replace(
                PermissionKey.LOG_DELETE,
                dataset.get(PermissionKey.LOG_DELETE).model_copy(update={"self_exempt": True}),
            ),
        )
        await session.on_external_change("alice")
        assert session.snapshot.dataset.get(PermissionKey.LOG_DELETE).self_exempt is True

    async def test_reload_keeps_page(self, source):
        session = PermissionSession(source, "bob", page_size=6)
        await session.load_for("alice")
        session.goto_prev_page()
        assert session.page == 2

        await session.on_external_change("alice")
        assert session.state is SessionState.READY
        assert session.page == 2

    async def test_page_kept_while_loading(self, raw_permissions):
        source = GatedSource()
        source.load_raw("alice", raw_permissions)
        session = PermissionSession(source, "bob", page_size=6)
        task = asyncio.create_task(session.load_for("alice"))
        await _wait_for_gates(source, 1)
        source.gates[0].set()
        await task
        session.goto_next_page()

        task = asyncio.create_task(session.on_external_change("alice"))
        await _wait_for_gates(source, 2)
        assert session.state is SessionState.LOADING
        assert session.page == 1
        source.gates[1].set()
        await task
        assert session.page == 1

    async def test_reload_with_fewer_permissions_clamps_page(self, source, raw_permissions):
        session = PermissionSession(source, "bob", page_size=6)
        await session.load_for("alice")
        session.goto_prev_page()

        source.load_raw("alice", {k: raw_permissions[k] for k in ("log_delete", "log_praise")})
        await session.on_external_change("alice")
        assert len(session.items) == 3
        assert session.page == 0

    async def test_other_subject_ignored(self, source):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        before = session.snapshot

        await session.on_external_change("dave")
        assert session.snapshot is before

    async def test_before_any_load(self, source):
        session = PermissionSession(source, "bob")
        await session.on_external_change("alice")
        assert session.state is SessionState.IDLE


# ---------------------------------------------------------------------------
# Filtering and paging
# ---------------------------------------------------------------------------


class TestFilterAndPaging:
    async def test_page_windows(self, source):
        session = PermissionSession(source, "bob", page_size=6)
        await session.load_for("alice")
        assert session.page_count() == 3
        assert [len(session.get_page(i)) for i in range(3)] == [6, 6, 5]
        assert session.current_items() == session.get_page(0)
        assert session.current_items()[0] == CategorySeparator(category=0, name="Authority")

    async def test_navigation_wraps(self, source):
        session = PermissionSession(source, "bob", page_size=6)
        await session.load_for("alice")
        assert session.goto_prev_page() == 2
        assert session.goto_next_page() == 0
        assert session.goto_next_page() == 1

    async def test_filter_rebuilds_and_clamps_page(self, source):
        session = PermissionSession(source, "bob", page_size=6)
        await session.load_for("alice")
        session.goto_prev_page()
        assert session.page == 2

        session.set_filter_text("curses")
        assert len(session.items) == 4
        assert session.page == 0
        assert session.page_count() == 1

    async def test_narrowing_moves_to_last_valid_page(self, source):
        session = PermissionSession(source, "bob", page_size=3)
        await session.load_for("alice")
        session.pagination.page = 4

        session.set_filter_text("allow log")
        assert len(session.items) == 4
        assert session.page == 1

    async def test_clear_filter(self, source):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        session.set_filter_text("zzz")
        assert session.items == []
        assert session.page_count() == 1

        session.clear_filter()
        assert session.filter_text == ""
        assert len(session.items) == 17

    async def test_filter_kept_across_reload(self, source):
        session = PermissionSession(source, "bob")
        session.set_filter_text("curses")
        await session.load_for("alice")
        assert len(session.items) == 4


# ---------------------------------------------------------------------------
# Edit requests
# ---------------------------------------------------------------------------


class TestToggleSelfFlag:
    def test_not_loaded(self, source):
        session = PermissionSession(source, "bob")
        with pytest.raises(SessionNotReadyError):
            session.request_toggle_self_flag(PermissionKey.LOG_DELETE)

    async def test_failed_session(self, source):
        source.unreachable.add("alice")
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        with pytest.raises(SessionNotReadyError):
            session.request_toggle_self_flag(PermissionKey.LOG_DELETE)

    async def test_unknown_key(self, source):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        with pytest.raises(PermissionNotFoundError):
            session.request_toggle_self_flag("no_such_permission")

    async def test_key_not_in_dataset(self, source):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        with pytest.raises(PermissionNotFoundError):
            session.request_toggle_self_flag(PermissionKey.COMMANDS_NORMAL)

    async def test_owner_applies_directly(self, source):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        intent = session.request_toggle_self_flag("log_delete")
        assert intent == SelfFlagChange(key=PermissionKey.LOG_DELETE, value=True)

    async def test_friend_denied(self, source):
        session = PermissionSession(source, "carol")
        await session.load_for("alice")
        with pytest.raises(EditNotAllowedError):
            session.request_toggle_self_flag(PermissionKey.LOG_PRAISE)

    async def test_locked_by_min_self(self, source):
        session = PermissionSession(source, "alice")
        await session.load_for("alice")
        with pytest.raises(EditNotAllowedError):
            session.request_toggle_self_flag(PermissionKey.MISC_CHEAT_ALLOWCHANGE)

    async def test_subject_who_can_regrant_applies(self, source):
        session = PermissionSession(source, "alice")
        await session.load_for("alice")
        intent = session.request_toggle_self_flag(PermissionKey.CURSES_COLOR)
        assert intent == SelfFlagChange(key=PermissionKey.CURSES_COLOR, value=False)

    async def test_subject_revoking_grant_meta_confirms(self, source):
        session = PermissionSession(source, "alice")
        await session.load_for("alice")
        intent = session.request_toggle_self_flag(PermissionKey.AUTHORITY_GRANT_SELF)
        assert isinstance(intent, SelfFlagConfirmation)
        assert intent.value is False
        assert intent.descriptor.self_exempt is True

    async def test_subject_who_cannot_regrant_confirms(self, source, raw_permissions):
        raw_permissions["authority_grant_self"]["self"] = False
        source.load_raw("alice", raw_permissions)
        session = PermissionSession(source, "alice")
        await session.load_for("alice")
        intent = session.request_toggle_self_flag(PermissionKey.CURSES_COLOR)
        assert isinstance(intent, SelfFlagConfirmation)
        assert intent.key is PermissionKey.CURSES_COLOR


class TestEditMin:
    async def test_owner_unlocked(self, source):
        session = PermissionSession(source, "bob")
        await session.load_for("alice")
        request = session.request_edit_min(PermissionKey.LOG_DELETE)
        assert request == MinEditRequest(
            key=PermissionKey.LOG_DELETE,
            descriptor=session.snapshot.dataset.get(PermissionKey.LOG_DELETE),
            viewer_level=AccessLevel.OWNER,
            locked=False,
        )

    async def test_subject_through_safety_valve_is_locked(self, source, raw_permissions):
        raw_permissions["authority_edit_min"]["self"] = False
        source.load_raw("alice", raw_permissions)
        session = PermissionSession(source, "alice")
        await session.load_for("alice")
        request = session.request_edit_min(PermissionKey.CURSES_LIMITED)
        assert request.locked is True
        assert request.viewer_level is AccessLevel.SELF

    async def test_subject_denied_on_owner_rule(self, source):
        session = PermissionSession(source, "alice")
        await session.load_for("alice")
        with pytest.raises(EditNotAllowedError):
            session.request_edit_min(PermissionKey.LOG_DELETE)

    async def test_friend_denied(self, source):
        session = PermissionSession(source, "carol")
        await session.load_for("alice")
        with pytest.raises(EditNotAllowedError):
            session.request_edit_min(PermissionKey.LOG_PRAISE)
