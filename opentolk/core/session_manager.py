from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from opentolk.config import settings
from opentolk.connectors.llm import ChatMessage

log = structlog.get_logger()


@dataclass
class _Session:
    messages: list[ChatMessage] = field(default_factory=list)
    last_activity: float = 0.0


class SessionManager:
    """Per-plugin conversation history with inactivity expiry.

    Sessions are keyed by plugin id. A session untouched for ``ttl_seconds`` is
    dropped on the next access. Operations on one plugin id are serialised.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_messages: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.conversation_ttl_seconds
        self._max_messages = max_messages or settings.conversation_max_messages
        self._clock = clock
        self._sessions: dict[str, _Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, plugin_id: str) -> asyncio.Lock:
        lock = self._locks.get(plugin_id)
        if lock is None:
            lock = self._locks[plugin_id] = asyncio.Lock()
        return lock

    def _live_session(self, plugin_id: str) -> _Session | None:
        session = self._sessions.get(plugin_id)
        if session is None:
            return None
        if self._clock() - session.last_activity > self._ttl:
            del self._sessions[plugin_id]
            log.debug("session.expired", plugin_id=plugin_id)
            return None
        return session

    async def messages(self, plugin_id: str) -> list[ChatMessage]:
        """Return a copy of the plugin's live history, or [] if none or expired."""
        async with self._lock(plugin_id):
            session = self._live_session(plugin_id)
            return list(session.messages) if session else []

    async def append(self, plugin_id: str, message: ChatMessage) -> None:
        self.evict_expired()
        async with self._lock(plugin_id):
            session = self._live_session(plugin_id)
            if session is None:
                session = self._sessions[plugin_id] = _Session()
            session.messages.append(message)
            session.messages = self._trim(session.messages)
            session.last_activity = self._clock()
        log.debug("session.appended", plugin_id=plugin_id, role=message.role)

    async def clear(self, plugin_id: str) -> None:
        async with self._lock(plugin_id):
            self._sessions.pop(plugin_id, None)
        log.info("session.cleared", plugin_id=plugin_id)

    def evict_expired(self) -> int:
        """Drop every expired session; returns how many were removed."""
        now = self._clock()
        expired = [pid for pid, s in self._sessions.items() if now - s.last_activity > self._ttl]
        for pid in expired:
            del self._sessions[pid]
        if expired:
            log.debug("session.evicted", count=len(expired))
        return len(expired)

    def _trim(self, messages: list[ChatMessage]) -> list[ChatMessage]:
        """Keep the last N messages, starting the window at a user message."""
        if len(messages) <= self._max_messages:
            return messages

        trimmed = messages[-self._max_messages :]
        for i, msg in enumerate(trimmed):
            if msg.role == "user":
                return trimmed[i:]
        return trimmed
