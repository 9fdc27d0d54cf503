"""FastAPI application serving permission editing sessions.

Sessions live in memory, one per (viewer, subject), backed by an
:class:`InMemoryPermissionSource`.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import permwarden
from permwarden.api.routes import permissions
from permwarden.config import settings
from permwarden.exceptions import PermwardenError
from permwarden.logging_config import log_startup_info, setup_logging
from permwarden.registry import SessionRegistry
from permwarden.sources import InMemoryPermissionSource

logger = logging.getLogger("permwarden.api")

_source = InMemoryPermissionSource()
_registry = SessionRegistry(
    _source, page_size=settings.page_size, max_sessions=settings.max_sessions
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    log_startup_info()
    yield
    logger.info("Shutting down, dropping %d session(s)", len(_registry))
    _registry.clear()


_OPENAPI_TAGS = [
    {"name": "Health", "description": "Health checks and version info"},
    {"name": "Permissions", "description": "Permission list, paging and edits"},
    {"name": "Admin", "description": "Seeding permission data and viewer tiers"},
]

app = FastAPI(
    title="permwarden",
    description="Per-permission authority rules and the permission editing list.",
    version=permwarden.__version__,
    lifespan=lifespan,
    openapi_tags=_OPENAPI_TAGS,
)
app.state.source = _source
app.state.registry = _registry


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
@app.exception_handler(PermwardenError)
async def permwarden_error_handler(request: Request, exc: PermwardenError) -> JSONResponse:
    """Centralized handler for custom permwarden exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_type,
            "message": exc.message,
            "request_id": request_id,
        },
    )


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request logging middleware (also sets request_id on state for error handler)
# ---------------------------------------------------------------------------
_SESSION_PATH_PREFIX = "/subjects/"


def _request_context(request: Request) -> dict[str, str]:
    """Subject and viewer ids named by the request, for log correlation."""
    context: dict[str, str] = {}
    path = request.url.path
    if path.startswith(_SESSION_PATH_PREFIX):
        context["subject_id"] = path[len(_SESSION_PATH_PREFIX) :].split("/", 1)[0]
    viewer_id = request.query_params.get("viewer_id")
    if viewer_id:
        context["viewer_id"] = viewer_id
    return context


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("X-Request-ID") or uuid4().hex[:8]
    request.state.request_id = request_id
    start = time.monotonic()
    response: Response = await call_next(request)
    elapsed_ms = round((time.monotonic() - start) * 1000, 1)
    level = logging.WARNING if response.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "duration_ms": elapsed_ms,
            **_request_context(request),
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "version": permwarden.__version__, "sessions": len(_registry)}


app.include_router(permissions.router)
