"""
Workflow state machine.

Maps every awaiting-input state to the workflow that handles it and every
flow command to the workflow that starts it. FlowErrors raised by a
workflow are converted here into re-prompts (STAY) or exits (EXIT), so
validation and session problems never leave this module as exceptions.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence

from chainflow.core import action_tokens
from chainflow.core.errors import (
    ExternalFailure, FlowError, InsufficientFunds, InvalidAction, SessionExpired, ValidationError
)
from chainflow.core.flows import FlowState
from chainflow.core.results import Effect, Prompt, QuickAction, Transition, TransitionKind
from chainflow.core.session_store import Session
from chainflow.core.workflows import (
    BrowseWorkflow, DirectTransferWorkflow, EventWizardWorkflow, MintWizardWorkflow,
    PeerTransferWorkflow, SecretImportWorkflow, TicketPurchaseWorkflow, TradeWorkflow, UserInput, Workflow,
    WorkflowContext
)
from chainflow.core.workflows.base import MENU_ACTION, cancel_row

logger = logging.getLogger(__name__)

_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")

HELP_TEXT = (
    "🤖 Available commands\n\n"
    "/start - Main menu\n"
    "/import - Import a wallet from its private key\n"
    "/tokens - Browse your assets\n"
    "/refresh - Reload your assets\n"
    "/send - Send an asset to a wallet address\n"
    "/p2p - Send an asset to another user\n"
    "/trade <from> <to> [amount] - Swap assets at market price\n"
    "/tickets - Buy event tickets\n"
    "/create_event - Create a ticketed event (admins)\n"
    "/mint - Mint a custom asset\n"
    "/cancel - Cancel the current operation\n"
    "/help - Show this message"
)

# Errors that keep the user on the current step
_STAY_ERRORS = (ValidationError, InsufficientFunds, InvalidAction)


def default_workflows(context: WorkflowContext) -> List[Workflow]:
    return [
        SecretImportWorkflow(context),
        DirectTransferWorkflow(context),
        PeerTransferWorkflow(context),
        TradeWorkflow(context),
        TicketPurchaseWorkflow(context),
        EventWizardWorkflow(context),
        MintWizardWorkflow(context),
        BrowseWorkflow(context),
    ]


def main_menu_actions() -> List[List[QuickAction]]:
    def command(label: str, name: str) -> QuickAction:
        return QuickAction(label, action_tokens.build("cmd", name))

    return [
        [command("💼 My Assets", "tokens"), command("🔐 Import Wallet", "import")],
        [command("💸 Send", "send"), command("👥 Send to User", "p2p")],
        [command("🎟 Buy Tickets", "tickets")],
        [command("❓ Help", "help")],
    ]


class WorkflowStateMachine:
    """Registry of workflows keyed by state, command and idle action."""

    def __init__(self, context: WorkflowContext, workflows: Optional[Sequence[Workflow]] = None):
        self.context = context
        self.workflows = list(workflows) if workflows is not None else default_workflows(context)

        self._by_state: Dict[FlowState, Workflow] = {}
        self._by_command: Dict[str, Workflow] = {}
        self._by_idle_action: Dict[str, Workflow] = {}

        for workflow in self.workflows:
            for state in workflow.states:
                self._register(self._by_state, state, workflow, "state")
            for command in workflow.commands:
                self._register(self._by_command, command, workflow, "command")
            for action in workflow.idle_actions:
                self._register(self._by_idle_action, action, workflow, "idle action")

        logger.info(
            f"State machine ready: {len(self._by_state)} states, "
            f"commands={sorted(self._by_command)}"
        )

    @staticmethod
    def _register(registry: dict, key, workflow: Workflow, what: str):
        if key in registry:
            raise ValueError(
                f"Duplicate {what} {key!r}: {type(registry[key]).__name__} and {type(workflow).__name__}"
            )
        registry[key] = workflow

    def has_command(self, command: str) -> bool:
        return command in self._by_command

    def command_names(self) -> List[str]:
        return sorted(self._by_command)

    # ---- screens without a flow ----

    def main_menu(self) -> Prompt:
        return Prompt(
            message="👋 Welcome! What would you like to do?",
            actions=main_menu_actions(),
        )

    def help(self, session: Session) -> Prompt:
        actions = [cancel_row()] if not session.state.is_idle else [[MENU_ACTION]]
        return Prompt(message=HELP_TEXT, actions=actions, state=session.state)

    def cancel(self, session: Session) -> Transition:
        if session.state.is_idle:
            prompt = Prompt(message="Nothing to cancel.", actions=[[MENU_ACTION]])
        else:
            logger.info(f"User {session.user_id} cancelled {session.state.value}")
            prompt = Prompt(message="❌ Operation cancelled.", actions=[[MENU_ACTION]])
        return Transition(TransitionKind.EXIT, FlowState.IDLE, prompt, clear_flow=True)

    # ---- flows ----

    async def start(self, session: Session, command: str, args: Sequence[str]) -> Transition:
        """
        Start the flow registered for ``command``.

        A flow that fails to start leaves the user idle with the error shown.
        """
        workflow = self._by_command.get(command)
        if workflow is None:
            raise KeyError(command)

        try:
            return await workflow.start(session.user_id, session, command, args)
        except FlowError as e:
            logger.info(f"User {session.user_id} could not start /{command}: {e.kind.value}: {e.message}")
            return self._exit_with_error(e)

    async def transition(self, session: Session, user_input: UserInput) -> Transition:
        """
        Apply one input to the session's current state.

        Returns:
            Transition describing the next state, flow data and result
        """
        state = session.state

        if state.is_idle:
            return await self._transition_idle(session, user_input)

        workflow = self._by_state.get(state)
        if workflow is None:
            logger.warning(f"No workflow handles state {state.value!r} (user {session.user_id})")
            return self._exit_with_error(SessionExpired())

        try:
            return await workflow.handle(session.user_id, session, user_input)
        except FlowError as e:
            return self.error_transition(e, state)

    async def _transition_idle(self, session: Session, user_input: UserInput) -> Transition:
        if user_input.is_button:
            workflow = self._by_idle_action.get(user_input.action.name)
            if workflow is None:
                # Buttons of a finished or abandoned flow
                return self._exit_with_error(SessionExpired())
            try:
                return await workflow.handle_idle_action(session.user_id, session, user_input.action)
            except FlowError as e:
                return self._exit_with_error(e)

        prompt = Prompt(
            message="I didn't understand that. Use /help to see what I can do.",
            actions=[[MENU_ACTION]],
        )
        if _PRIVATE_KEY_RE.match((user_input.text or "").strip()):
            prompt = Prompt(
                message=(
                    "⚠️ That looks like a private key, so the message was removed.\n\n"
                    "Use /import if you want to import a wallet."
                ),
                actions=[[MENU_ACTION]],
                effects=[Effect.DELETE_USER_MESSAGE],
            )
        return Transition(TransitionKind.STAY, FlowState.IDLE, prompt)

    # ---- errors ----

    def error_transition(self, error: FlowError, state: FlowState) -> Transition:
        """Map a FlowError raised in ``state`` to a re-prompt or an exit."""
        if isinstance(error, _STAY_ERRORS) or (isinstance(error, ExternalFailure) and error.recoverable):
            prompt = Prompt.from_error(error, state, actions=[cancel_row()])
            prompt.message = f"❌ {error.message}"
            return Transition(TransitionKind.STAY, state, prompt)

        logger.info(f"Flow in state {state.value!r} ended with {error.kind.value}: {error.message}")
        return self._exit_with_error(error)

    def _exit_with_error(self, error: FlowError) -> Transition:
        prompt = Prompt.from_error(error, FlowState.IDLE, actions=[[MENU_ACTION]])
        prompt.message = f"❌ {error.message}"
        return Transition(TransitionKind.EXIT, FlowState.IDLE, prompt, clear_flow=True)
