"""
Dispatcher: entry point for inbound commands, button presses and text.

Routes each event to the state machine based on the user's session, then
writes the resulting transition back to the session store. Processing for
one user can be serialized with a per-user asyncio.Lock; without it two
interleaved events for the same user both read-then-write the session and
the later write wins.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Tuple

from chainflow.core import action_tokens
from chainflow.core.errors import ErrorKind, InvalidAction
from chainflow.core.results import Prompt, Result, Transition
from chainflow.core.session_store import Session, SessionStore
from chainflow.core.state_machine import WorkflowStateMachine
from chainflow.core.workflows.base import MENU_ACTION, UserInput

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "❌ Something went wrong. Please start again with /start."


def parse_command(command_text: str) -> Tuple[str, List[str]]:
    """
    Split ``"/trade SOL USDC 1"`` into ``("trade", ["SOL", "USDC", "1"])``.

    A leading slash and a ``@botname`` suffix are optional.
    """
    parts = (command_text or "").strip().split()
    if not parts:
        return "", []
    name = parts[0].lstrip("/").split("@", 1)[0].lower()
    return name, parts[1:]


class _UserLock:
    """Per-user lock plus the number of events holding or awaiting it."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class Dispatcher:
    """Routes inbound events; owns no business logic."""

    def __init__(self, store: SessionStore, state_machine: WorkflowStateMachine, serialize_per_user: bool = True):
        """
        Initialize dispatcher.

        Args:
            store: Session store
            state_machine: Workflow registry
            serialize_per_user: Process events of one user one at a time
        """
        self.store = store
        self.state_machine = state_machine
        self.serialize_per_user = serialize_per_user
        # Only users with an event in flight have an entry
        self._locks: Dict[int, _UserLock] = {}

    @asynccontextmanager
    async def _serialized(self, user_id: int):
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = _UserLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[user_id]

    async def _run(self, user_id: int, event: str, handler) -> Result:
        if self.serialize_per_user:
            async with self._serialized(user_id):
                return await self._guarded(user_id, event, handler)
        return await self._guarded(user_id, event, handler)

    def sweep_sessions(self) -> int:
        """
        Drop expired sessions from the store.

        Meant to run periodically (the Telegram adapter schedules it on the
        job queue).

        Returns:
            Number of sessions removed
        """
        removed = self.store.sweep()
        logger.debug(f"Session sweep removed {removed} session(s), {len(self._locks)} user lock(s) in use")
        return removed

    async def _guarded(self, user_id: int, event: str, handler) -> Result:
        try:
            return await handler()
        except Exception as e:
            # Last line of defence: one user's failure must not escape
            logger.error(f"Unhandled error while processing {event} for user {user_id}: {e}", exc_info=True)
            self.store.clear_flow(user_id)
            return Prompt(
                message=GENERIC_ERROR_MESSAGE,
                actions=[[MENU_ACTION]],
                error_kind=ErrorKind.EXTERNAL_FAILURE,
            )

    # ---- entry points ----

    async def handle_command(self, user_id: int, command_text: str) -> Result:
        """
        Handle a slash command.

        Args:
            user_id: External user id
            command_text: Command with optional arguments, e.g. "/trade SOL USDC 1"

        Returns:
            Prompt or Outcome
        """
        name, args = parse_command(command_text)
        logger.debug(f"Command /{name} from user {user_id}")
        return await self._run(user_id, f"/{name}", lambda: self._command(user_id, name, args))

    async def handle_button(self, user_id: int, action_token: str) -> Result:
        """
        Handle a button press carrying ``action_token``.

        Malformed or unknown tokens yield an invalid-action prompt.
        """
        return await self._run(user_id, "button", lambda: self._button(user_id, action_token))

    async def handle_text(self, user_id: int, raw_text: str) -> Result:
        """Handle a free-text reply."""
        async def process():
            session = self.store.get_or_create(user_id)
            transition = await self.state_machine.transition(session, UserInput.from_text(raw_text))
            return self._apply(user_id, transition)

        return await self._run(user_id, "text", process)

    # ---- routing ----

    async def _command(self, user_id: int, name: str, args: List[str]) -> Result:
        if name in ("start", "menu"):
            # Main menu deletes the whole session, caches included
            self.store.clear(user_id)
            return self.state_machine.main_menu()

        session = self.store.get_or_create(user_id)

        if name == "help":
            return self.state_machine.help(session)

        if name == "cancel":
            return self._apply(user_id, self.state_machine.cancel(session))

        if not self.state_machine.has_command(name):
            return Prompt(
                message="Unknown command. Use /help to see what I can do.",
                actions=[[MENU_ACTION]],
                state=session.state,
                error_kind=ErrorKind.INVALID_ACTION,
            )

        transition = await self.state_machine.start(session, name, args)
        return self._apply(user_id, transition)

    async def _button(self, user_id: int, raw_token: str) -> Result:
        session = self.store.get_or_create(user_id)
        try:
            token = action_tokens.parse(raw_token)
        except InvalidAction as e:
            logger.warning(f"Rejected malformed action token from user {user_id}")
            return Prompt(
                message=f"❌ {e.message}",
                actions=[[MENU_ACTION]],
                state=session.state,
                error_kind=e.kind,
            )

        if token.name == "menu":
            return await self._command(user_id, "start", [])
        if token.name == "cancel":
            return await self._command(user_id, "cancel", [])
        if token.name == "cmd":
            return await self._command(user_id, token.args[0], [])

        transition = await self.state_machine.transition(session, UserInput.from_button(token))
        return self._apply(user_id, transition)

    def _apply(self, user_id: int, transition: Transition) -> Result:
        """Write a transition back to the session store."""
        def update(session: Session):
            if transition.clear_flow:
                session.reset_flow()
                return
            session.state = transition.next_state
            if transition.flow is not None:
                session.flow = transition.flow

        session = self.store.mutate(user_id, update)
        logger.debug(
            f"User {user_id}: {transition.kind.value} -> {session.state.value or 'idle'}"
        )
        result = transition.result
        result.state = session.state
        return result
