"""
Market trade flow.

``/trade IN OUT [amount]`` opens the quote display directly. Refreshing the
quote, picking a slippage preset or typing a new amount re-quotes in place
(REFRESH); the custom amount/slippage buttons detour through an entry state
that returns to the quote display. Every displayed quote carries its own
confirmation nonce, so a confirm button from an older quote is rejected.
"""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Sequence

from chainflow.core import action_tokens
from chainflow.core.errors import InvalidAction, UnsupportedOperation, ValidationError
from chainflow.core.flows import Confirmation, FlowState, TradeFlow
from chainflow.core.results import Prompt, QuickAction, Transition
from chainflow.core.session_store import Session
from chainflow.core.validators import parse_amount, parse_slippage_bps
from chainflow.core.workflows.base import (
    CANCEL_ACTION, UserInput, Workflow, advance, cancel_row, complete, new_nonce, refresh
)

logger = logging.getLogger(__name__)


def format_bps(bps: int) -> str:
    return f"{Decimal(bps) / 100:g}%"


class TradeWorkflow(Workflow):
    """Swap one configured asset for another at a quoted price."""

    states = (
        FlowState.TRADE_QUOTE,
        FlowState.TRADE_ENTERING_AMOUNT,
        FlowState.TRADE_ENTERING_SLIPPAGE,
    )
    commands = ("trade",)

    def usage(self) -> str:
        symbols = ", ".join(sorted(self.settings.trade_assets))
        return f"Usage: /trade <from> <to> [amount]\nExample: /trade SOL USDC 0.5\n\nSupported assets: {symbols}"

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        if len(args) < 2:
            raise ValidationError(self.usage())

        input_asset = self.settings.resolve_trade_asset(args[0])
        output_asset = self.settings.resolve_trade_asset(args[1])
        for raw, asset in ((args[0], input_asset), (args[1], output_asset)):
            if asset is None:
                raise UnsupportedOperation(f"Unsupported asset: {raw.upper()}.\n\n{self.usage()}")
        if input_asset.symbol == output_asset.symbol:
            raise ValidationError("Choose two different assets to trade.")

        amount = parse_amount(args[2]) if len(args) > 2 else self.settings.default_trade_amount

        await self.context.require_wallet(user_id)

        flow = TradeFlow(
            input_asset=input_asset,
            output_asset=output_asset,
            side="buy" if self.settings.is_native(input_asset) else "sell",
            amount=amount,
            slippage_bps=self.settings.default_slippage_bps,
        )
        flow = await self.requote(user_id, flow)
        logger.info(
            f"User {user_id} opened trade {input_asset.symbol}->{output_asset.symbol} "
            f"amount={amount} side={flow.side}"
        )
        return advance(FlowState.TRADE_QUOTE, self.quote_prompt(flow), flow)

    async def handle(self, user_id: int, session: Session, user_input: UserInput) -> Transition:
        flow = self.flow_of(session, TradeFlow)
        flow.require("input_asset", "output_asset", "amount", "slippage_bps")

        if session.state == FlowState.TRADE_ENTERING_AMOUNT:
            amount = parse_amount(user_input.require_text())
            flow = await self.requote(user_id, replace(flow, amount=amount))
            return advance(FlowState.TRADE_QUOTE, self.quote_prompt(flow), flow)

        if session.state == FlowState.TRADE_ENTERING_SLIPPAGE:
            slippage = parse_slippage_bps(
                user_input.require_text(),
                self.settings.min_slippage_bps,
                self.settings.max_slippage_bps
            )
            flow = await self.requote(user_id, replace(flow, slippage_bps=slippage))
            return advance(FlowState.TRADE_QUOTE, self.quote_prompt(flow), flow)

        return await self.handle_quote(user_id, flow, user_input)

    async def handle_quote(self, user_id: int, flow: TradeFlow, user_input: UserInput) -> Transition:
        if not user_input.is_button:
            amount = parse_amount(user_input.text)
            flow = await self.requote(user_id, replace(flow, amount=amount))
            return refresh(FlowState.TRADE_QUOTE, self.quote_prompt(flow), flow)

        action = user_input.action
        if action.name == "trade_refresh":
            flow = await self.requote(user_id, flow)
            return refresh(FlowState.TRADE_QUOTE, self.quote_prompt(flow), flow)

        if action.name == "slippage":
            slippage = action.int_arg()
            if not self.settings.min_slippage_bps <= slippage <= self.settings.max_slippage_bps:
                raise InvalidAction()
            flow = await self.requote(user_id, replace(flow, slippage_bps=slippage))
            return refresh(FlowState.TRADE_QUOTE, self.quote_prompt(flow), flow)

        if action.name == "trade_amount":
            prompt = Prompt(
                message=f"✏️ Send the amount of {flow.input_asset.symbol} to trade.",
                actions=[cancel_row()],
            )
            return advance(FlowState.TRADE_ENTERING_AMOUNT, prompt, flow)

        if action.name == "trade_slippage":
            prompt = Prompt(
                message=(
                    "⚙️ Send the slippage tolerance in basis points (50) or percent (0.5%).\n\n"
                    f"Allowed range: {self.settings.min_slippage_bps}-{self.settings.max_slippage_bps} bps."
                ),
                actions=[cancel_row()],
            )
            return advance(FlowState.TRADE_ENTERING_SLIPPAGE, prompt, flow)

        if action.name == "confirm":
            return await self.handle_confirm(user_id, flow, action.args[0])

        raise InvalidAction()

    async def handle_confirm(self, user_id: int, flow: TradeFlow, nonce: str) -> Transition:
        (confirmation,) = flow.require("confirmation")
        if nonce != confirmation.nonce:
            raise InvalidAction("This quote is out of date. Please use the latest quote buttons.")

        pending = flow.to_pending()
        logger.info(
            f"User {user_id} confirmed trade {pending.amount} {pending.input_asset.symbol} -> "
            f"{pending.output_asset.symbol} at {pending.slippage_bps} bps"
        )
        outcome = await self.context.orchestrator.execute_trade(user_id, pending)

        if outcome.success or outcome.clear_flow:
            if outcome.success:
                # Balances changed
                self.context.cache.invalidate(user_id, "assets")
            return complete(outcome)

        # Recoverable: stay on the quote display with a fresh gate
        flow = replace(flow, confirmation=Confirmation(nonce=new_nonce(), amount=confirmation.amount))
        outcome.actions = self.quote_actions(flow)
        return complete(outcome, FlowState.TRADE_QUOTE, flow=flow, clear_flow=False)

    async def requote(self, user_id: int, flow: TradeFlow) -> TradeFlow:
        """Fetch a preview quote and arm a new confirmation gate for it."""
        view = await self.context.orchestrator.preview_quote(
            flow.input_asset, flow.output_asset, flow.amount, flow.slippage_bps
        )
        return replace(
            flow,
            last_quote=view,
            confirmation=Confirmation(nonce=new_nonce(), amount=flow.amount),
        )

    def quote_prompt(self, flow: TradeFlow) -> Prompt:
        quote = flow.last_quote
        verb = "Buy" if flow.side == "buy" else "Sell"
        lines = [
            "📊 Trade quote",
            "",
            f"{verb}: {flow.amount} {flow.input_asset.symbol} → ≈ {quote.expected_out:f} {flow.output_asset.symbol}",
            f"Price impact: {quote.price_impact_pct:.2f}%",
            f"Slippage: {format_bps(flow.slippage_bps)}",
            "",
            "Send a new amount to update the quote.",
        ]
        return Prompt(message="\n".join(lines), actions=self.quote_actions(flow))

    def quote_actions(self, flow: TradeFlow):
        presets = []
        for bps in self.settings.slippage_presets:
            label = format_bps(bps)
            if bps == flow.slippage_bps:
                label = f"✓ {label}"
            presets.append(QuickAction(label, action_tokens.build("slippage", bps)))

        rows = [[QuickAction("🔄 Refresh", action_tokens.build("trade_refresh"))]]
        if presets:
            rows.append(presets)
        rows.append([
            QuickAction("✏️ Amount", action_tokens.build("trade_amount")),
            QuickAction("⚙️ Custom slippage", action_tokens.build("trade_slippage")),
        ])
        rows.append([
            QuickAction("✅ Confirm", action_tokens.build("confirm", flow.confirmation.nonce)),
            CANCEL_ACTION,
        ])
        return rows
