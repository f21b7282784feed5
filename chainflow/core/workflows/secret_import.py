"""Wallet secret import flow: one prompt, one answer, back to idle."""

import logging
from typing import Sequence

from chainflow.core.errors import ErrorKind, ExternalFailure
from chainflow.core.external import call_external
from chainflow.core.flows import FlowState, SecretImportFlow
from chainflow.core.results import Effect, Outcome, Prompt, Transition
from chainflow.core.session_store import Session
from chainflow.core.workflows.base import (
    MENU_ACTION, UserInput, Workflow, advance, cancel_row, exit_flow
)

logger = logging.getLogger(__name__)


class SecretImportWorkflow(Workflow):
    """
    Import a wallet from a private key.

    The message carrying the secret is always flagged for deletion, whether
    the import succeeds or not.
    """

    states = (FlowState.AWAITING_SECRET,)
    commands = ("import",)

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        prompt = Prompt(
            message=(
                "🔐 Send the private key of the wallet you want to import.\n\n"
                "The message will be deleted right after it is read."
            ),
            actions=[cancel_row()],
        )
        return advance(FlowState.AWAITING_SECRET, prompt, SecretImportFlow())

    async def handle(self, user_id: int, session: Session, user_input: UserInput) -> Transition:
        self.flow_of(session, SecretImportFlow)
        secret = user_input.require_text().strip()

        try:
            wallet = await call_external(
                self.context.directory.import_wallet(user_id, secret),
                "import_wallet",
                self.settings.external_timeout_seconds,
                passthrough=(ValueError,)
            )
        except ValueError as e:
            logger.info(f"User {user_id} sent a wallet secret that was rejected: {e}")
            outcome = Outcome(
                success=False,
                message=f"❌ {e}. Use /import to try again.",
                actions=[[MENU_ACTION]],
                error_kind=ErrorKind.VALIDATION,
                effects=[Effect.DELETE_USER_MESSAGE],
            )
            return exit_flow(outcome)
        except ExternalFailure as e:
            outcome = Outcome(
                success=False,
                message=f"❌ {e.message}",
                actions=[[MENU_ACTION]],
                error_kind=e.kind,
                effects=[Effect.DELETE_USER_MESSAGE],
            )
            return exit_flow(outcome)

        # Cached asset lists belong to the previous wallet
        self.context.cache.invalidate(user_id, "assets")
        logger.info(f"User {user_id} imported wallet {wallet.address}")

        outcome = Outcome(
            success=True,
            message=f"✅ Wallet imported.\n\nAddress: {wallet.address}",
            actions=[[MENU_ACTION]],
            effects=[Effect.DELETE_USER_MESSAGE],
        )
        return exit_flow(outcome)
