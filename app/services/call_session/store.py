"""In-process call session store."""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, List, Optional

from app.core.errors import SessionNotFound
from app.services.call_session.models import CallSession, CallStatus, Turn

logger = logging.getLogger(__name__)


class CallSessionStore:
    """Maps active call identifiers to their conversation state.

    All mutations for a given call are expected to happen while holding
    ``lock(call_id)``; the store itself only guards its own mapping. Locks are
    per call, so unrelated calls never wait on each other.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, CallSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def _lock_for(self, call_id: str) -> asyncio.Lock:
        lock = self._locks.get(call_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[call_id] = lock
        return lock

    @asynccontextmanager
    async def lock(self, call_id: str) -> AsyncIterator[None]:
        """Serialize all work on one call."""
        lock = self._lock_for(call_id)
        self._lock_users[call_id] = self._lock_users.get(call_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users[call_id] - 1
            if users:
                self._lock_users[call_id] = users
            else:
                del self._lock_users[call_id]
                # Nobody is waiting; drop the lock once the call is gone
                if call_id not in self._sessions:
                    self._locks.pop(call_id, None)

    def create(
        self,
        call_id: str,
        business_id: str = "default",
        caller: Optional[str] = None,
        callee: Optional[str] = None,
    ) -> CallSession:
        """Create a session, or return the existing one for a duplicate delivery."""
        existing = self._sessions.get(call_id)
        if existing is not None:
            logger.info(f"[SESSION STORE] Session already exists - CallId: {call_id}")
            return existing

        session = CallSession(
            call_id=call_id,
            business_id=business_id,
            caller=caller,
            callee=callee,
        )
        self._sessions[call_id] = session
        logger.info(
            f"[SESSION STORE] Session created - CallId: {call_id}, "
            f"BusinessId: {business_id}, Active sessions: {len(self._sessions)}"
        )
        return session

    def get(self, call_id: str) -> CallSession:
        """Get an active session; unknown ids raise SessionNotFound."""
        session = self._sessions.get(call_id)
        if session is None:
            raise SessionNotFound(call_id)
        return session

    def append_turn(self, call_id: str, turn: Turn) -> CallSession:
        """Append a turn to the session transcript."""
        session = self.get(call_id)
        session.messages.append(turn)
        session.last_activity = datetime.utcnow()
        return session

    def touch(self, call_id: str) -> None:
        """Mark the session as active without changing its transcript."""
        self.get(call_id).last_activity = datetime.utcnow()

    def terminate(self, call_id: str) -> Optional[CallSession]:
        """Remove a session. Returns it, or None if it was not active."""
        session = self._sessions.pop(call_id, None)
        if session is None:
            return None
        session.status = CallStatus.TERMINATED
        if call_id not in self._lock_users:
            self._locks.pop(call_id, None)
        logger.info(
            f"[SESSION STORE] Session terminated - CallId: {call_id}, "
            f"Turns: {len(session.messages)}, Active sessions: {len(self._sessions)}"
        )
        return session

    def snapshot(self, call_id: str) -> CallSession:
        """Return a deep copy of the session for read-only consumers."""
        return self.get(call_id).model_copy(deep=True)

    def expire_idle(
        self, max_idle: timedelta, now: Optional[datetime] = None
    ) -> List[CallSession]:
        """Remove sessions idle for longer than max_idle and return them.

        Sessions whose lock is held are mid-turn and are skipped.
        """
        now = now or datetime.utcnow()
        expired: List[CallSession] = []
        for call_id, session in list(self._sessions.items()):
            if call_id in self._lock_users:
                continue
            if now - session.last_activity > max_idle:
                terminated = self.terminate(call_id)
                if terminated is not None:
                    expired.append(terminated)
        return expired
