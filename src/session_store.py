"""Process-wide registry of scrape sessions.

Sessions are keyed by a time-derived identifier (milliseconds since the
epoch). Identifiers are strictly increasing within the process: when two
sessions are created in the same millisecond the later one takes the next
free value, so concurrent creation never collides.

Eviction is an explicit policy rather than a hidden constant. By default
nothing is evicted; a TTL and/or a capacity can be injected, and only
sessions in a terminal state are ever removed.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from src.exceptions import SessionNotFoundError
from src.logger import get_logger
from src.models import ScrapeConfig, ScrapeSession

log = get_logger(__name__)


@dataclass(frozen=True)
class EvictionPolicy:
    """When finished sessions leave the store.

    Attributes:
        ttl_seconds: Evict terminal sessions that ended longer ago than this.
        max_sessions: Evict the oldest terminal sessions beyond this count.
    """

    ttl_seconds: float | None = None
    max_sessions: int | None = None


class SessionStore:
    """Registry mapping session ids to their mutable state.

    Each session is written only by the orchestrator that owns it;
    status queries read it concurrently.
    """

    def __init__(
        self,
        policy: EvictionPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy or EvictionPolicy()
        self._clock = clock
        self._sessions: dict[str, ScrapeSession] = {}
        self._last_id = 0
        self._lock = threading.Lock()

    def _next_id(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def create(self, config: ScrapeConfig) -> str:
        """Register a new session in ``starting`` state and return its id."""
        with self._lock:
            self._evict_locked(reserve=1)
            session_id = self._next_id()
            self._sessions[session_id] = ScrapeSession(
                id=session_id,
                config=config,
                start_time=datetime.fromtimestamp(self._clock(), UTC),
            )
        log.debug("Session registered", session_id=session_id, url=config.url)
        return session_id

    def get(self, session_id: str) -> ScrapeSession | None:
        """Return the session, or None for an unknown id."""
        return self._sessions.get(session_id)

    def mutate(self, session_id: str, fn: Callable[[ScrapeSession], None]) -> ScrapeSession:
        """Apply ``fn`` to the session in place.

        Raises:
            SessionNotFoundError: If the id is unknown (or was evicted).
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        fn(session)
        return session

    def evict_expired(self) -> list[str]:
        """Apply the eviction policy now. Returns the evicted ids."""
        with self._lock:
            return self._evict_locked(reserve=0)

    def _evict_locked(self, reserve: int) -> list[str]:
        evicted: list[str] = []
        finished = sorted(
            (s for s in self._sessions.values() if s.status.is_terminal),
            key=lambda s: s.end_time or s.start_time,
        )

        if self.policy.ttl_seconds is not None:
            cutoff = datetime.fromtimestamp(self._clock(), UTC) - timedelta(
                seconds=self.policy.ttl_seconds
            )
            for session in finished:
                if (session.end_time or session.start_time) < cutoff:
                    evicted.append(session.id)

        if self.policy.max_sessions is not None:
            overflow = len(self._sessions) - len(evicted) + reserve - self.policy.max_sessions
            for session in finished:
                if overflow <= 0:
                    break
                if session.id not in evicted:
                    evicted.append(session.id)
                    overflow -= 1

        for session_id in evicted:
            del self._sessions[session_id]

        if evicted:
            log.info("Sessions evicted", count=len(evicted), remaining=len(self._sessions))
        return evicted

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
