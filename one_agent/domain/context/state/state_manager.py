from typing import Awaitable, Callable, Dict, List, Optional
import asyncio
import time
from collections import OrderedDict
from contextlib import asynccontextmanager

import structlog

from one_agent.domain.models.agent_state import Message, Session
from one_agent.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

SessionLoader = Callable[[str], Awaitable[List[Message]]]
TeardownHook = Callable[[Session], Awaitable[None]]


class _SessionEntry:
    """Registry slot: the session plus its exclusive lock"""

    def __init__(self, session: Session):
        self.session = session
        self.lock = asyncio.Lock()
        self.users = 0
        self.hydrated = False
        self.last_used = time.monotonic()


class SessionRegistry:
    """Owns every live Session.

    Sessions are created on first touch, serialized per id through an
    exclusive lock, and evicted when idle longer than ``ttl`` seconds or when
    more than ``max_sessions`` are held (least recently used first). Entries
    in use are never evicted. Teardown hooks run for every evicted or closed
    session.
    """

    def __init__(self, ttl: Optional[float] = 3600.0, max_sessions: Optional[int] = 1000):
        self.ttl = ttl
        self.max_sessions = max_sessions
        self.entries: "OrderedDict[str, _SessionEntry]" = OrderedDict()
        self.teardown_hooks: List[TeardownHook] = []
        self._lock = asyncio.Lock()

    def add_teardown_hook(self, hook: TeardownHook):
        """Register a coroutine called with each session as it leaves the registry"""
        self.teardown_hooks.append(hook)

    @asynccontextmanager
    async def session(self, session_id: str, loader: Optional[SessionLoader] = None):
        """Exclusive access to a session for the duration of the block.

        ``loader`` is awaited once, the first time the session is acquired,
        to seed its message log.
        """

        async with self._lock:
            entry = self.entries.get(session_id)
            if entry is None:
                entry = _SessionEntry(Session(id=session_id))
                self.entries[session_id] = entry
                logger.info("Session created", session_id=session_id)
                metrics.set_gauge("sessions.active", len(self.entries))
            self.entries.move_to_end(session_id)
            entry.users += 1

        try:
            async with entry.lock:
                if not entry.hydrated:
                    entry.hydrated = True
                    if loader is not None:
                        await self._hydrate(entry.session, loader)
                yield entry.session
        finally:
            entry.users -= 1
            entry.last_used = time.monotonic()
            await self._evict_over_capacity()

    async def _hydrate(self, session: Session, loader: SessionLoader):
        try:
            messages = await loader(session.id)
        except Exception as e:
            logger.warning("Session hydration failed", session_id=session.id, error=str(e))
            return
        if messages:
            session.extend(messages)
            logger.info("Session hydrated", session_id=session.id, messages=len(messages))

    def get(self, session_id: str) -> Optional[Session]:
        """Peek at a session without locking it"""
        entry = self.entries.get(session_id)
        return entry.session if entry else None

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self.entries

    async def close(self, session_id: str) -> bool:
        """Explicitly tear down a session; refused while it is in use"""

        async with self._lock:
            entry = self.entries.get(session_id)
            if entry is None or entry.users > 0:
                return False
            del self.entries[session_id]

        await self._teardown([entry.session])
        return True

    async def evict_expired(self) -> int:
        """Remove idle sessions older than the TTL and return the count"""

        if self.ttl is None:
            return 0

        now = time.monotonic()
        async with self._lock:
            expired = [
                session_id for session_id, entry in self.entries.items()
                if entry.users == 0 and now - entry.last_used > self.ttl
            ]
            removed = [self.entries.pop(session_id).session for session_id in expired]

        await self._teardown(removed)
        return len(removed)

    async def _evict_over_capacity(self):
        if self.max_sessions is None:
            return

        async with self._lock:
            removed = []
            for session_id in list(self.entries.keys()):
                if len(self.entries) <= self.max_sessions:
                    break
                if self.entries[session_id].users == 0:
                    removed.append(self.entries.pop(session_id).session)

        await self._teardown(removed)

    async def _teardown(self, sessions: List[Session]):
        if sessions:
            metrics.set_gauge("sessions.active", len(self.entries))
        for session in sessions:
            logger.info("Session evicted", session_id=session.id, turns=session.turn_count)
            for hook in self.teardown_hooks:
                try:
                    await hook(session)
                except Exception as e:
                    logger.error("Session teardown hook failed", session_id=session.id, error=str(e))

    async def sweep(self, interval: float = 60.0):
        """Periodic TTL eviction loop"""
        while True:
            try:
                evicted = await self.evict_expired()
                if evicted:
                    logger.info("Expired sessions evicted", count=evicted)
            except Exception as e:
                logger.error("Session sweep error", error=str(e))

            await asyncio.sleep(interval)

    async def shutdown(self):
        """Tear down every idle session"""
        async with self._lock:
            removed = [
                self.entries.pop(session_id).session
                for session_id in list(self.entries.keys())
                if self.entries[session_id].users == 0
            ]
        await self._teardown(removed)
