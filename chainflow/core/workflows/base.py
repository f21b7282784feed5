"""
Shared building blocks for flow families.

A workflow owns a set of awaiting-input states and the commands that start
it. Handlers receive the session and one UserInput and return a Transition;
they raise FlowError subclasses for validation problems, which the state
machine turns into re-prompts.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from chainflow.core import action_tokens
from chainflow.core.action_tokens import ActionToken
from chainflow.core.errors import InvalidAction, SessionExpired, UnsupportedOperation
from chainflow.core.external import call_external
from chainflow.core.flows import FlowData, FlowState
from chainflow.core.pagination_cache import PaginationCache
from chainflow.core.results import QuickAction, Result, Transition, TransitionKind
from chainflow.core.session_store import Session
from chainflow.core.settings import EngineSettings
from chainflow.services.capabilities import IdentityDirectory, WalletBackend, WalletRecord

logger = logging.getLogger(__name__)

CANCEL_ACTION = QuickAction("❌ Cancel", action_tokens.build("cancel"))
MENU_ACTION = QuickAction("🏠 Main Menu", action_tokens.build("menu"))


@dataclass(frozen=True)
class UserInput:
    """One inbound payload: free text or a parsed button token."""

    text: Optional[str] = None
    action: Optional[ActionToken] = None

    @classmethod
    def from_text(cls, text: str) -> "UserInput":
        return cls(text=text)

    @classmethod
    def from_button(cls, token: ActionToken) -> "UserInput":
        return cls(action=token)

    @property
    def is_button(self) -> bool:
        return self.action is not None

    def require_text(self) -> str:
        """Return the text payload, rejecting button presses."""
        if self.text is None:
            raise InvalidAction()
        return self.text


@dataclass
class WorkflowContext:
    """Collaborators shared by all workflows."""

    settings: EngineSettings
    cache: PaginationCache
    directory: IdentityDirectory
    wallet_backend: WalletBackend
    orchestrator: "TransactionOrchestrator"  # noqa: F821

    async def require_wallet(self, user_id: int) -> WalletRecord:
        """
        Get the user's wallet.

        Raises:
            UnsupportedOperation: If the user has not imported a wallet
        """
        wallet = await call_external(
            self.directory.get_wallet(user_id),
            "get_wallet",
            self.settings.external_timeout_seconds
        )
        if wallet is None:
            raise UnsupportedOperation("No wallet found. Use /import to add your wallet first.")
        return wallet


def new_nonce() -> str:
    return uuid.uuid4().hex[:12]


def advance(next_state: FlowState, result: Result, flow: Optional[FlowData]) -> Transition:
    result.state = next_state
    return Transition(TransitionKind.ADVANCE, next_state, result, flow=flow)


def refresh(state: FlowState, result: Result, flow: FlowData) -> Transition:
    result.state = state
    return Transition(TransitionKind.REFRESH, state, result, flow=flow)


def exit_flow(result: Result) -> Transition:
    result.state = FlowState.IDLE
    return Transition(TransitionKind.EXIT, FlowState.IDLE, result, clear_flow=True)


def complete(result: Result, next_state: FlowState = FlowState.IDLE,
             flow: Optional[FlowData] = None, clear_flow: bool = True) -> Transition:
    result.state = next_state
    if clear_flow and not result.actions:
        result.actions = [[MENU_ACTION]]
    return Transition(TransitionKind.COMPLETE, next_state, result, flow=flow, clear_flow=clear_flow)


def cancel_row() -> List[QuickAction]:
    return [CANCEL_ACTION]


class Workflow:
    """
    Base class for one flow family.

    Subclasses fill ``states`` with the states they handle and ``commands``
    with the command names that start them.
    """

    states: Tuple[FlowState, ...] = ()
    commands: Tuple[str, ...] = ()
    # Handles page/asset buttons pressed while idle
    idle_actions: Tuple[str, ...] = ()

    def __init__(self, context: WorkflowContext):
        self.context = context

    @property
    def settings(self) -> EngineSettings:
        return self.context.settings

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        raise NotImplementedError

    async def handle(self, user_id: int, session: Session, user_input: UserInput) -> Transition:
        raise NotImplementedError

    async def handle_idle_action(self, user_id: int, session: Session, action: ActionToken) -> Transition:
        raise InvalidAction()

    def flow_of(self, session: Session, flow_type):
        """
        Return the session's flow data if it has the expected type.

        Raises:
            SessionExpired: Missing or mismatched flow data
        """
        if not isinstance(session.flow, flow_type):
            raise SessionExpired()
        return session.flow


def idle_screen(result: Result) -> Transition:
    """Show a screen that belongs to no flow (e.g. the asset browser)."""
    result.state = FlowState.IDLE
    return Transition(TransitionKind.ADVANCE, FlowState.IDLE, result, clear_flow=True)
