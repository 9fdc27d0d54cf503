"""Permission list and edit routes.

Viewers are identified by the ``viewer_id`` query parameter.  Every
change applied through these routes is forwarded to all open sessions
on the same subject so their lists are rebuilt from fresh data.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from fastapi import APIRouter, Query, Request, Response
from pydantic import BaseModel

from permwarden.core.models import AccessLevel, ListItem, PermissionDescriptor
from permwarden.exceptions import EditNotAllowedError, FetchFailure
from permwarden.registry import SessionRegistry
from permwarden.session import (
    MinEditRequest,
    PermissionSession,
    SelfFlagChange,
    SelfFlagConfirmation,
    SessionState,
)
from permwarden.sources import InMemoryPermissionSource

logger = logging.getLogger("permwarden.api")

router = APIRouter(prefix="/subjects", tags=["Permissions"])


class PermissionPage(BaseModel):
    subject_id: str
    state: SessionState
    filter: str
    page: int
    page_count: int
    items: list[ListItem]


class SetMinRequest(BaseModel):
    min: AccessLevel


class SetAccessLevelRequest(BaseModel):
    level: AccessLevel


class ChangeNotice(BaseModel):
    subject_id: str
    sessions_reloaded: int


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _source(request: Request) -> InMemoryPermissionSource:
    return request.app.state.source


async def _ready_session(request: Request, viewer_id: str, subject_id: str) -> PermissionSession:
    """Fetch the session, dropping it and raising its failure if the load failed."""
    registry = _registry(request)
    session = await registry.get(viewer_id, subject_id)
    if session.state is SessionState.FAILED and session.failure is not None:
        # Forget it so the next request retries the load.
        registry.discard(viewer_id, subject_id)
        raise session.failure
    return session


# ---------------------------------------------------------------------------
# Data seeding
# ---------------------------------------------------------------------------


@router.put("/{subject_id}/permissions", response_model=ChangeNotice, tags=["Admin"])
async def put_permissions(subject_id: str, body: dict[str, Any], request: Request):
    """Replace a subject's permission data with wire-format descriptors."""
    _source(request).load_raw(subject_id, body)
    reloaded = await _registry(request).notify(subject_id)
    return ChangeNotice(subject_id=subject_id, sessions_reloaded=reloaded)


@router.get("/{subject_id}/dataset", tags=["Admin"])
async def export_permissions(subject_id: str, request: Request) -> dict[str, dict[str, Any]]:
    """Current permission data in the same wire format the PUT route accepts."""
    try:
        dataset = await _source(request).get_permissions(subject_id)
    except ConnectionError as exc:
        raise FetchFailure(f"Failed to get permission data for '{subject_id}'") from exc
    return dataset.to_raw()


@router.put(
    "/{subject_id}/viewers/{viewer_id}", response_model=ChangeNotice, tags=["Admin"]
)
async def put_viewer_level(
    subject_id: str, viewer_id: str, req: SetAccessLevelRequest, request: Request
):
    """Assign the tier *viewer_id* holds toward *subject_id*."""
    _source(request).set_access_level(subject_id, viewer_id, req.level)
    reloaded = await _registry(request).notify(subject_id)
    return ChangeNotice(subject_id=subject_id, sessions_reloaded=reloaded)


@router.delete("/{subject_id}/sessions/{viewer_id}", status_code=204)
async def close_session(subject_id: str, viewer_id: str, request: Request) -> Response:
    """Forget the viewer's session on *subject_id*; closing twice is harmless."""
    if _registry(request).discard(viewer_id, subject_id):
        logger.info(
            "Session closed", extra={"subject_id": subject_id, "viewer_id": viewer_id}
        )
    return Response(status_code=204)


@router.post("/{subject_id}/changed", response_model=ChangeNotice)
async def subject_changed(subject_id: str, request: Request):
    """External notification that the subject's permissions changed elsewhere."""
    reloaded = await _registry(request).notify(subject_id)
    return ChangeNotice(subject_id=subject_id, sessions_reloaded=reloaded)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def _page_response(subject_id: str, session: PermissionSession) -> PermissionPage:
    return PermissionPage(
        subject_id=subject_id,
        state=session.state,
        filter=session.filter_text,
        page=session.page,
        page_count=session.page_count(),
        items=session.current_items(),
    )


@router.get("/{subject_id}/permissions", response_model=PermissionPage)
async def list_permissions(
    subject_id: str,
    request: Request,
    viewer_id: str = Query(..., min_length=1, description="Who is looking"),
    filter: str | None = Query(default=None, description="Whitespace-separated search terms"),
    page: int | None = Query(default=None, description="Page index; out of range wraps"),
):
    session = await _ready_session(request, viewer_id, subject_id)
    if filter is not None and filter != session.filter_text:
        session.set_filter_text(filter)
    if page is not None:
        session.pagination.page = page
        session.pagination.clamp(len(session.items))
    return _page_response(subject_id, session)


@router.post("/{subject_id}/permissions/next-page", response_model=PermissionPage)
async def next_page(subject_id: str, request: Request, viewer_id: str = Query(..., min_length=1)):
    session = await _ready_session(request, viewer_id, subject_id)
    session.goto_next_page()
    return _page_response(subject_id, session)


@router.post("/{subject_id}/permissions/prev-page", response_model=PermissionPage)
async def prev_page(subject_id: str, request: Request, viewer_id: str = Query(..., min_length=1)):
    session = await _ready_session(request, viewer_id, subject_id)
    session.goto_prev_page()
    return _page_response(subject_id, session)


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------


@router.post(
    "/{subject_id}/permissions/{key}/self",
    response_model=Union[SelfFlagChange, SelfFlagConfirmation],
)
async def toggle_self(
    subject_id: str, key: str, request: Request, viewer_id: str = Query(..., min_length=1)
):
    """Toggle self access, unless the subject first has to confirm a revoke."""
    session = await _ready_session(request, viewer_id, subject_id)
    intent = session.request_toggle_self_flag(key)
    if isinstance(intent, SelfFlagChange):
        await _source(request).set_permission(
            subject_id, viewer_id, intent.key, "self", intent.value
        )
        await _registry(request).notify(subject_id)
    return intent


@router.post("/{subject_id}/permissions/{key}/self/confirm", response_model=SelfFlagChange)
async def confirm_self_revoke(
    subject_id: str, key: str, request: Request, viewer_id: str = Query(..., min_length=1)
):
    """Apply a self access revoke the subject has confirmed."""
    session = await _ready_session(request, viewer_id, subject_id)
    intent = session.request_toggle_self_flag(key)
    if isinstance(intent, SelfFlagChange) and intent.value:
        raise EditNotAllowedError(f"Self access of '{intent.key}' is not enabled")
    await _source(request).set_permission(subject_id, viewer_id, intent.key, "self", False)
    await _registry(request).notify(subject_id)
    return SelfFlagChange(key=intent.key, value=False)


@router.get("/{subject_id}/permissions/{key}/min", response_model=MinEditRequest)
async def get_min_editor(
    subject_id: str, key: str, request: Request, viewer_id: str = Query(..., min_length=1)
):
    session = await _ready_session(request, viewer_id, subject_id)
    return session.request_edit_min(key)


@router.put("/{subject_id}/permissions/{key}/min", response_model=PermissionDescriptor)
async def set_min(
    subject_id: str,
    key: str,
    req: SetMinRequest,
    request: Request,
    viewer_id: str = Query(..., min_length=1),
):
    """Commit a new lowest access tier; returns the descriptor as reloaded."""
    session = await _ready_session(request, viewer_id, subject_id)
    edit = session.request_edit_min(key)
    await _source(request).set_permission(subject_id, viewer_id, edit.key, "min", req.min)
    await _registry(request).notify(subject_id)
    session = await _ready_session(request, viewer_id, subject_id)
    return session.snapshot.dataset.get(edit.key)
