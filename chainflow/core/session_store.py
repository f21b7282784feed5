"""Session store abstract base class."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from chainflow.core.flows import FlowData, FlowState


@dataclass
class Session:
    """
    Per-user conversation session.

    ``flow`` belongs to the current flow only. ``cache`` holds long-lived,
    flow-independent data (asset lists, page positions) and survives
    across flows.
    """

    user_id: int
    state: FlowState = FlowState.IDLE
    flow: Optional[FlowData] = None
    cache: Dict[str, Any] = field(default_factory=dict)
    updated_at: float = field(default_factory=time.time)

    def reset_flow(self):
        """Drop flow data and return to idle, keeping caches."""
        self.state = FlowState.IDLE
        self.flow = None


class SessionStore(ABC):
    """
    Per-user session storage.

    Implementations are not required to guard against interleaved
    read-then-write sequences for the same user; callers that need
    ordering serialize per user (see Dispatcher).
    """

    @abstractmethod
    def get(self, user_id: int) -> Optional[Session]:
        """
        Get the session of a user.

        Args:
            user_id: External user identifier

        Returns:
            Session, or None if the user has no live session
        """
        pass

    @abstractmethod
    def get_or_create(self, user_id: int) -> Session:
        """Get the session of a user, creating an idle one if absent."""
        pass

    @abstractmethod
    def mutate(self, user_id: int, fn: Callable[[Session], None]) -> Session:
        """
        Apply ``fn`` to the user's session (created lazily) and store it.

        Args:
            user_id: External user identifier
            fn: Function mutating the session in place

        Returns:
            The updated session
        """
        pass

    @abstractmethod
    def clear(self, user_id: int):
        """Delete the whole session, caches included."""
        pass

    def clear_flow(self, user_id: int):
        """Remove flow data and return to idle, preserving caches."""
        if self.get(user_id) is not None:
            self.mutate(user_id, lambda session: session.reset_flow())

    def sweep(self) -> int:
        """
        Remove expired sessions.

        Returns:
            Number of sessions removed (always 0 for stores without expiry)
        """
        return 0
