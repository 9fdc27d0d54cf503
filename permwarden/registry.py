"""Session registry: one :class:`PermissionSession` per (viewer, subject).

The registry holds at most ``max_sessions`` sessions.  When a new pair
would go over the cap, the session used least recently is dropped; its
viewer simply gets a fresh load on the next request.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict

from permwarden.session import PermissionSession, SessionState
from permwarden.sources import PermissionSource

logger = logging.getLogger("permwarden.registry")


class SessionRegistry:
    def __init__(
        self,
        source: PermissionSource,
        *,
        page_size: int | None = None,
        max_sessions: int = 256,
    ) -> None:
        if max_sessions < 1:
            msg = f"max_sessions must be at least 1, got {max_sessions}"
            raise ValueError(msg)
        self.source = source
        self.page_size = page_size
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[tuple[str, str], PermissionSession] = OrderedDict()

    async def get(self, viewer_id: str, subject_id: str) -> PermissionSession:
        """Return the session for the pair, loading it on first use."""
        pair = (viewer_id, subject_id)
        session = self._sessions.get(pair)
        if session is not None:
            self._sessions.move_to_end(pair)
            return session

        session = PermissionSession(self.source, viewer_id, page_size=self.page_size)
        self._sessions[pair] = session
        self._evict()
        await session.load_for(subject_id)
        return session

    def _evict(self) -> None:
        while len(self._sessions) > self.max_sessions:
            (viewer_id, subject_id), _ = self._sessions.popitem(last=False)
            logger.debug(
                "Evicted least recently used session",
                extra={"subject_id": subject_id, "viewer_id": viewer_id},
            )

    def discard(self, viewer_id: str, subject_id: str) -> bool:
        """Drop the pair's session.  Returns False when there was none."""
        return self._sessions.pop((viewer_id, subject_id), None) is not None

    async def notify(self, subject_id: str) -> int:
        """Forward an external change on *subject_id* to every open session.

        Returns the number of sessions reloaded.
        """
        sessions = [s for (_, subject), s in self._sessions.items() if subject == subject_id]
        await asyncio.gather(*(s.on_external_change(subject_id) for s in sessions))
        failed = sum(1 for s in sessions if s.state is SessionState.FAILED)
        logger.info(
            "Reloaded %d session(s) after change, %d failed",
            len(sessions),
            failed,
            extra={"subject_id": subject_id},
        )
        return len(sessions)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, pair: object) -> bool:
        return pair in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
