"""In-memory session registry mapping cookie tokens to users."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional


@dataclass(frozen=True)
class SessionIdentity:
    """Authenticated user attached to a session token."""

    id: str
    username: str
    created_at: float


class SessionRegistry:
    """Volatile token registry. A process restart forgets every session.

    ``ttl_seconds`` of ``None`` keeps a session until logout.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._sessions: Dict[str, SessionIdentity] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _expired(self, identity: SessionIdentity) -> bool:
        return self._ttl is not None and self._clock() - identity.created_at >= self._ttl

    def create(self, user_id: str, username: str) -> str:
        token = str(uuid.uuid4())
        with self._lock:
            self._sessions[token] = SessionIdentity(id=user_id, username=username, created_at=self._clock())
        return token

    def resolve(self, token: Optional[str]) -> Optional[SessionIdentity]:
        if not token:
            return None
        with self._lock:
            identity = self._sessions.get(token)
            if identity is None:
                return None
            if self._expired(identity):
                del self._sessions[token]
                return None
            return identity

    def destroy(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            self._sessions.pop(token, None)

    def purge_expired(self) -> int:
        """Drop every expired session and return how many were removed."""

        with self._lock:
            stale = [token for token, identity in self._sessions.items() if self._expired(identity)]
            for token in stale:
                del self._sessions[token]
            return len(stale)
