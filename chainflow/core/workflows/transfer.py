"""
Direct and peer-to-peer transfer flows.

Direct:  asset -> recipient address -> amount -> confirm
Peer:    recipient identity -> asset -> amount -> confirm

Both end at a confirmation gate that stores a nonce together with the
displayed amount; the confirm button only carries the nonce.
"""

import logging
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Sequence

from chainflow.core import action_tokens
from chainflow.core.errors import ErrorKind, InvalidAction, ValidationError
from chainflow.core.external import call_external
from chainflow.core.flows import Confirmation, DirectTransferFlow, FlowState, PeerTransferFlow
from chainflow.core.results import Prompt, QuickAction, Transition
from chainflow.core.session_store import Session
from chainflow.core.validators import (
    looks_like_identity, parse_amount, validate_address, validate_amount_against_balance
)
from chainflow.core.workflows.assets import AssetPager
from chainflow.core.workflows.base import (
    CANCEL_ACTION, UserInput, Workflow, WorkflowContext,
    advance, cancel_row, complete, new_nonce, refresh
)

logger = logging.getLogger(__name__)


class BaseTransferWorkflow(Workflow):
    """Steps shared by the direct and peer transfer flows."""

    flow_type = DirectTransferFlow
    selecting_asset: FlowState
    entering_amount: FlowState
    awaiting_confirm: FlowState
    asset_title = "💸 Select the asset to send"

    def __init__(self, context: WorkflowContext):
        super().__init__(context)
        self.assets = AssetPager(context)

    # ---- asset selection ----

    async def show_assets(self, user_id: int, flow, page_number: int = 1, kind=advance) -> Transition:
        wallet = await self.context.require_wallet(user_id)
        await self.assets.load(user_id, wallet)
        prompt = self.assets.render(
            user_id,
            page_number,
            self.asset_title,
            select_label="Send",
            extra_rows=[cancel_row()],
        )
        return kind(self.selecting_asset, prompt, flow)

    async def handle_asset_selection(self, user_id: int, flow, user_input: UserInput) -> Transition:
        if user_input.is_button:
            action = user_input.action
            if action.name == "page":
                return await self.show_assets(user_id, flow, action.int_arg(), kind=refresh)
            if action.name == "noop":
                return await self.show_assets(user_id, flow, self.assets.current_page(user_id), kind=refresh)
            if action.name != "asset":
                raise InvalidAction()
            asset = self.assets.select(user_id, action.int_arg())
        else:
            asset = self.assets.find_by_symbol(user_id, user_input.text)

        logger.info(f"User {user_id} selected {asset.symbol} for {self.flow_type.family}")
        return self.after_asset_selected(replace(flow, asset=asset))

    def after_asset_selected(self, flow) -> Transition:
        raise NotImplementedError

    # ---- amount ----

    def amount_prompt(self, flow, prefix: str = "") -> Prompt:
        (asset,) = flow.require("asset")
        return Prompt(
            message=(
                f"{prefix}💰 How much {asset.symbol} do you want to send?\n\n"
                f"Available: {asset.balance} {asset.symbol}"
            ),
            actions=[cancel_row()],
        )

    def handle_amount(self, user_id: int, flow, user_input: UserInput) -> Transition:
        (asset,) = flow.require("asset")
        self.check_recipient(flow)
        amount = parse_amount(user_input.require_text())

        try:
            balance = Decimal(asset.balance)
        except InvalidOperation:
            balance = Decimal(0)
        validate_amount_against_balance(amount, balance, asset.symbol)

        confirmation = Confirmation(nonce=new_nonce(), amount=amount)
        flow = replace(flow, amount=amount, confirmation=confirmation)
        return advance(self.awaiting_confirm, self.confirm_prompt(flow), flow)

    def check_recipient(self, flow):
        flow.require("recipient_address")

    # ---- confirmation ----

    def describe_recipient(self, flow) -> str:
        return flow.recipient_address

    def confirm_prompt(self, flow, prefix: str = "") -> Prompt:
        asset, confirmation = flow.require("asset", "confirmation")
        return Prompt(
            message=(
                f"{prefix}⚠️ Please confirm the transfer:\n\n"
                f"Send {confirmation.amount} {asset.symbol} to {self.describe_recipient(flow)}\n\n"
                "This action cannot be undone."
            ),
            actions=[[
                QuickAction("✅ Confirm", action_tokens.build("confirm", confirmation.nonce)),
                CANCEL_ACTION,
            ]],
        )

    async def handle_confirm(self, user_id: int, flow, user_input: UserInput) -> Transition:
        if not user_input.is_button:
            raise InvalidAction("Please use the buttons to confirm or cancel the transfer.")
        action = user_input.action
        (confirmation,) = flow.require("confirmation")
        if action.name != "confirm" or action.args[0] != confirmation.nonce:
            raise InvalidAction()

        pending = flow.to_pending()
        logger.info(
            f"User {user_id} confirmed {self.flow_type.family} of {pending.amount} {pending.asset.symbol} "
            f"to {pending.recipient_address}"
        )
        outcome = await self.context.orchestrator.execute_transfer(user_id, pending)

        if outcome.success:
            self.assets.invalidate(user_id)
            return complete(outcome)

        if outcome.clear_flow:
            self.assets.invalidate(user_id)
            return complete(outcome)

        if outcome.error_kind == ErrorKind.INSUFFICIENT_FUNDS:
            # Balances changed since the list was fetched
            self.assets.invalidate(user_id)
            flow = replace(flow, amount=None, confirmation=None)
            outcome.message = f"{outcome.message}\n\nPlease enter a new amount."
            outcome.actions = [cancel_row()]
            return complete(outcome, self.entering_amount, flow=flow, clear_flow=False)

        # Transient failure before execution: confirm again with a fresh nonce
        flow = replace(flow, confirmation=Confirmation(nonce=new_nonce(), amount=confirmation.amount))
        outcome.actions = self.confirm_prompt(flow).actions
        return complete(outcome, self.awaiting_confirm, flow=flow, clear_flow=False)


class DirectTransferWorkflow(BaseTransferWorkflow):
    """Send an asset to a wallet address."""

    flow_type = DirectTransferFlow
    selecting_asset = FlowState.TRANSFER_SELECTING_ASSET
    entering_recipient = FlowState.TRANSFER_ENTERING_RECIPIENT
    entering_amount = FlowState.TRANSFER_ENTERING_AMOUNT
    awaiting_confirm = FlowState.TRANSFER_AWAITING_CONFIRM

    states = (
        FlowState.TRANSFER_SELECTING_ASSET,
        FlowState.TRANSFER_ENTERING_RECIPIENT,
        FlowState.TRANSFER_ENTERING_AMOUNT,
        FlowState.TRANSFER_AWAITING_CONFIRM,
    )
    commands = ("send",)

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        return await self.show_assets(user_id, DirectTransferFlow())

    async def handle(self, user_id: int, session: Session, user_input: UserInput) -> Transition:
        flow = self.flow_of(session, DirectTransferFlow)
        state = session.state

        if state == self.selecting_asset:
            return await self.handle_asset_selection(user_id, flow, user_input)
        if state == self.entering_recipient:
            return await self.handle_recipient(user_id, flow, user_input)
        if state == self.entering_amount:
            return self.handle_amount(user_id, flow, user_input)
        return await self.handle_confirm(user_id, flow, user_input)

    def after_asset_selected(self, flow) -> Transition:
        prompt = Prompt(
            message=(
                f"📬 Send the recipient wallet address for {flow.asset.symbol}.\n\n"
                f"Available: {flow.asset.balance} {flow.asset.symbol}"
            ),
            actions=[cancel_row()],
        )
        return advance(self.entering_recipient, prompt, flow)

    async def handle_recipient(self, user_id: int, flow, user_input: UserInput) -> Transition:
        flow.require("asset")
        address = validate_address(user_input.require_text(), self.settings.address_predicate)

        wallet = await self.context.require_wallet(user_id)
        if address.lower() == wallet.address.lower():
            raise ValidationError("You cannot send to your own wallet. Please enter another address.")

        flow = replace(flow, recipient_address=address)
        return advance(self.entering_amount, self.amount_prompt(flow), flow)


class PeerTransferWorkflow(BaseTransferWorkflow):
    """Send an asset to another registered user, resolved by @username or id."""

    flow_type = PeerTransferFlow
    entering_recipient = FlowState.P2P_ENTERING_RECIPIENT
    selecting_asset = FlowState.P2P_SELECTING_ASSET
    entering_amount = FlowState.P2P_ENTERING_AMOUNT
    awaiting_confirm = FlowState.P2P_AWAITING_CONFIRM
    asset_title = "👥 Select the asset to send"

    states = (
        FlowState.P2P_ENTERING_RECIPIENT,
        FlowState.P2P_SELECTING_ASSET,
        FlowState.P2P_ENTERING_AMOUNT,
        FlowState.P2P_AWAITING_CONFIRM,
    )
    commands = ("p2p",)

    def recipient_prompt(self, prefix: str = "") -> Prompt:
        return Prompt(
            message=f"{prefix}👥 Who do you want to send to?\n\nSend their @username or user id.",
            actions=[cancel_row()],
        )

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        await self.context.require_wallet(user_id)
        flow = PeerTransferFlow()

        if args:
            try:
                return await self.accept_recipient(user_id, flow, args[0])
            except ValidationError as e:
                prompt = self.recipient_prompt(prefix=f"❌ {e.message}\n\n")
                prompt.error_kind = e.kind
                return advance(self.entering_recipient, prompt, flow)

        return advance(self.entering_recipient, self.recipient_prompt(), flow)

    async def handle(self, user_id: int, session: Session, user_input: UserInput) -> Transition:
        flow = self.flow_of(session, PeerTransferFlow)
        state = session.state

        if state == self.entering_recipient:
            return await self.accept_recipient(user_id, flow, user_input.require_text())
        if state == self.selecting_asset:
            self.check_recipient(flow)
            return await self.handle_asset_selection(user_id, flow, user_input)
        if state == self.entering_amount:
            return self.handle_amount(user_id, flow, user_input)
        return await self.handle_confirm(user_id, flow, user_input)

    async def accept_recipient(self, user_id: int, flow: PeerTransferFlow, text: str) -> Transition:
        identifier = (text or "").strip()
        if not looks_like_identity(identifier):
            raise ValidationError("Please send a @username or a numeric user id.")

        resolution = await call_external(
            self.context.directory.resolve_identity(identifier),
            "resolve_identity",
            self.settings.external_timeout_seconds
        )
        if not resolution.found or not resolution.address:
            logger.info(f"User {user_id} entered unknown recipient {identifier}")
            raise ValidationError(resolution.error or f"User {identifier} was not found or has no wallet.")

        wallet = await self.context.require_wallet(user_id)
        if resolution.user_id == user_id or resolution.address.lower() == wallet.address.lower():
            raise ValidationError("You cannot send to yourself. Please enter another user.")

        flow = replace(
            flow,
            recipient_identity=identifier,
            recipient_user_id=resolution.user_id,
            recipient_display_name=resolution.display_name or identifier,
            recipient_address=resolution.address,
        )
        return await self.show_assets(user_id, flow)

    def check_recipient(self, flow):
        flow.require("recipient_identity", "recipient_address")

    def after_asset_selected(self, flow) -> Transition:
        return advance(self.entering_amount, self.amount_prompt(flow), flow)

    def describe_recipient(self, flow) -> str:
        return f"{flow.recipient_display_name} ({flow.recipient_address})"

