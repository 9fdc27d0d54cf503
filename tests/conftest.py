"""Shared fixtures for permwarden tests."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from permwarden.api.app import _registry, _source, app
from permwarden.core.models import AccessLevel, PermissionDataset
from permwarden.sources import InMemoryPermissionSource

OWNER = int(AccessLevel.OWNER)
SELF = int(AccessLevel.SELF)
LOVER = int(AccessLevel.LOVER)
WHITELIST = int(AccessLevel.WHITELIST)
FRIEND = int(AccessLevel.FRIEND)


@pytest.fixture
def raw_permissions() -> dict[str, dict]:
    """Wire-format permission data: 12 permissions in 5 categories (17 list items)."""
    # fmt: off
    return {
        "authority_grant_self": {"category": 0, "name": "Allow granting self access", "self": True, "min": OWNER},
        "authority_revoke_self": {"category": 0, "name": "Allow forbidding self access", "self": True, "min": OWNER},
        "authority_edit_min": {"category": 0, "name": "Allow lowest access modification", "self": True, "min": OWNER},
        "authority_view_roles": {"category": 0, "name": "Allow viewing list of owner/mistress roles", "self": True, "min": FRIEND},
        "log_view_normal": {"category": 1, "name": "Allow to see normal log entries", "self": True, "min": OWNER},
        "log_delete": {"category": 1, "name": "Allow deleting log entries", "self": False, "min": OWNER},
        "log_praise": {"category": 1, "name": "Allow to praise or scold", "self": False, "min": FRIEND},
        "curses_normal": {"category": 2, "name": "Allow curses", "self": False, "min": WHITELIST},
        "curses_limited": {"category": 2, "name": "Allow limited curses", "self": False, "min": LOVER},
        "curses_color": {"category": 2, "name": "Allow changing colors of cursed items", "self": True, "min": LOVER},
        "rules_normal": {"category": 3, "name": "Allow controlling non-limited rules", "self": False, "min": LOVER},
        "misc_cheat_allowchange": {"category": 6, "name": "Allow changing cheat settings", "self": True, "min": SELF},
    }
    # fmt: on


@pytest.fixture
def dataset(raw_permissions) -> PermissionDataset:
    return PermissionDataset.from_raw(raw_permissions)


@pytest.fixture
def source(raw_permissions) -> InMemoryPermissionSource:
    """In-memory source with subject ``alice``, owner ``bob`` and friend ``carol``."""
    src = InMemoryPermissionSource()
    src.load_raw("alice", raw_permissions)
    src.set_access_level("alice", "bob", AccessLevel.OWNER)
    src.set_access_level("alice", "carol", AccessLevel.FRIEND)
    return src


@pytest_asyncio.fixture
async def client(raw_permissions):
    """HTTP test client wired to a freshly seeded in-memory source."""
    _registry.clear()
    _source.clear()
    _source.load_raw("alice", raw_permissions)
    _source.set_access_level("alice", "bob", AccessLevel.OWNER)
    _source.set_access_level("alice", "carol", AccessLevel.FRIEND)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    _registry.clear()
    _source.clear()
