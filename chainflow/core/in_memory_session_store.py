"""In-memory session store implementation."""

import logging
import time
from typing import Callable, Dict, Optional

from chainflow.core.session_store import Session, SessionStore

logger = logging.getLogger(__name__)


class ExpiryPolicy:
    """Decides whether an idle session should be discarded."""

    # Seconds between sweeps triggered by session creation, None to never sweep
    sweep_interval: Optional[float] = None

    def is_expired(self, session: Session, now: float) -> bool:
        raise NotImplementedError


class NeverExpire(ExpiryPolicy):
    """Sessions live until cleared or the process restarts."""

    def is_expired(self, session: Session, now: float) -> bool:
        return False


class IdleTimeoutPolicy(ExpiryPolicy):
    """Expire sessions untouched for longer than ``idle_timeout_seconds``."""

    def __init__(self, idle_timeout_seconds: float):
        if idle_timeout_seconds <= 0:
            raise ValueError("idle_timeout_seconds must be greater than 0")
        self.idle_timeout_seconds = idle_timeout_seconds
        self.sweep_interval = idle_timeout_seconds

    def is_expired(self, session: Session, now: float) -> bool:
        return now - session.updated_at > self.idle_timeout_seconds


def expiry_policy_from_config(config: dict) -> ExpiryPolicy:
    """Build the expiry policy from the ``session`` config section."""
    timeout = config.get('session', {}).get('idle_timeout_seconds', 0)
    if timeout:
        return IdleTimeoutPolicy(timeout)
    return NeverExpire()


class InMemorySessionStore(SessionStore):
    """
    Dict-backed session store for a single process.

    Nothing is persisted: a restart loses every in-flight flow, and
    transitions then answer with a session-expired message. With an expiring
    policy, creating a session sweeps expired ones at most once per
    ``sweep_interval``, so abandoned sessions do not accumulate even when
    the host never calls ``sweep``.
    """

    def __init__(
        self,
        expiry_policy: Optional[ExpiryPolicy] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize in-memory store.

        Args:
            expiry_policy: Idle expiry policy (default: never expire)
            clock: Time source, injectable for tests
        """
        self.sessions: Dict[int, Session] = {}
        self.expiry_policy = expiry_policy or NeverExpire()
        self.clock = clock
        self._last_sweep = clock()
        logger.info(
            f"InMemorySessionStore initialized with expiry policy: {type(self.expiry_policy).__name__}"
        )

    def get(self, user_id: int) -> Optional[Session]:
        session = self.sessions.get(user_id)
        if session is None:
            return None

        if self.expiry_policy.is_expired(session, self.clock()):
            logger.info(f"Session for user {user_id} expired (state={session.state.value or 'idle'})")
            del self.sessions[user_id]
            return None

        return session

    def get_or_create(self, user_id: int) -> Session:
        session = self.get(user_id)
        if session is None:
            self._sweep_if_due()
            session = Session(user_id=user_id, updated_at=self.clock())
            self.sessions[user_id] = session
            logger.debug(f"Created session for user {user_id}")
        return session

    def mutate(self, user_id: int, fn: Callable[[Session], None]) -> Session:
        session = self.get_or_create(user_id)
        fn(session)
        session.updated_at = self.clock()
        self.sessions[user_id] = session
        return session

    def clear(self, user_id: int):
        if self.sessions.pop(user_id, None) is not None:
            logger.debug(f"Cleared session for user {user_id}")

    def sweep(self) -> int:
        """
        Remove all expired sessions.

        Returns:
            Number of sessions removed
        """
        now = self.clock()
        self._last_sweep = now
        expired = [
            user_id for user_id, session in self.sessions.items()
            if self.expiry_policy.is_expired(session, now)
        ]
        for user_id in expired:
            del self.sessions[user_id]

        if expired:
            logger.info(f"Swept {len(expired)} expired session(s)")
        return len(expired)

    def _sweep_if_due(self):
        interval = self.expiry_policy.sweep_interval
        if interval is not None and self.clock() - self._last_sweep >= interval:
            self.sweep()

    def __len__(self) -> int:
        return len(self.sessions)
