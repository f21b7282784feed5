"""
Market trade flow: quote display, in-place refreshes and the confirmation gate.
"""

from decimal import Decimal

import pytest

from chainflow.core import action_tokens
from chainflow.core.errors import ErrorKind, ValidationError
from chainflow.core.flows import FlowState, TradeAsset
from chainflow.core.results import TradeOutcome, TransitionKind
from chainflow.core.workflows import UserInput

from fakes import ALICE, ALICE_ADDRESS, Engine, token_starting_with, tokens_of

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest.fixture
def engine():
    engine = Engine()
    engine.add_user(ALICE, ALICE_ADDRESS, "alice")
    engine.wallet_backend.balances[(ALICE, "SOL")] = "5"
    engine.wallet_backend.balances[(ALICE, USDC_MINT)] = "20"
    return engine


@pytest.mark.asyncio
async def test_trade_opens_quote_with_default_slippage(engine):
    result = await engine.command(ALICE, "/trade SOL USDC 1")

    assert result.state == FlowState.TRADE_QUOTE
    assert "Buy: 1 SOL → ≈ 15 USDC" in result.message
    assert "Slippage: 1%" in result.message
    assert "Price impact: 0.12%" in result.message
    call = engine.quote_backend.quote_calls[0]
    assert call["slippage_bps"] == 100
    assert call["amount_atomic"] == 1_000_000_000
    assert engine.session(ALICE).flow.side == "buy"


@pytest.mark.asyncio
async def test_slippage_change_requotes_without_leaving_quote(engine):
    await engine.command(ALICE, "/trade SOL USDC 1")

    result = await engine.button(ALICE, "slippage:50")

    assert result.state == FlowState.TRADE_QUOTE
    assert engine.session(ALICE).state == FlowState.TRADE_QUOTE
    assert engine.session(ALICE).flow.slippage_bps == 50
    assert engine.quote_backend.quote_calls[-1]["slippage_bps"] == 50
    assert "Slippage: 0.5%" in result.message
    labels = [action.label for row in result.actions for action in row]
    assert "✓ 0.5%" in labels


@pytest.mark.asyncio
async def test_slippage_button_is_a_refresh_transition(engine):
    await engine.command(ALICE, "/trade SOL USDC 1")
    session = engine.session(ALICE)
    state_machine = engine.dispatcher.state_machine

    transition = await state_machine.transition(
        session, UserInput.from_button(action_tokens.parse("slippage:50"))
    )

    assert transition.kind == TransitionKind.REFRESH
    assert transition.next_state == FlowState.TRADE_QUOTE
    assert transition.flow.slippage_bps == 50


@pytest.mark.asyncio
async def test_confirm_executes_fresh_quote_with_stored_slippage(engine):
    await engine.command(ALICE, "/trade SOL USDC 1")
    result = await engine.button(ALICE, "slippage:50")
    quotes_before = len(engine.quote_backend.quote_calls)

    result = await engine.button(ALICE, token_starting_with(result, "confirm:"))

    assert isinstance(result, TradeOutcome)
    assert result.success is True
    assert result.reference_id == "trade1"
    assert result.input_symbol == "SOL"
    assert result.output_symbol == "USDC"
    assert len(engine.quote_backend.quote_calls) == quotes_before + 1
    assert engine.quote_backend.executed[0].slippage_bps == 50
    assert len(engine.history.trades) == 1
    assert engine.session(ALICE).state == FlowState.IDLE
    assert engine.session(ALICE).flow is None


@pytest.mark.asyncio
async def test_native_fee_buffer_shortfall_is_reported(engine):
    engine.wallet_backend.balances[(ALICE, "SOL")] = "1.005"
    result = await engine.command(ALICE, "/trade SOL USDC 1")

    result = await engine.button(ALICE, token_starting_with(result, "confirm:"))

    assert result.success is False
    assert result.error_kind == ErrorKind.INSUFFICIENT_FUNDS
    assert "Short by 0.005 SOL" in result.message
    assert result.state == FlowState.TRADE_QUOTE
    assert engine.quote_backend.executed == []


@pytest.mark.asyncio
async def test_sell_requires_native_balance_for_fees(engine):
    engine.wallet_backend.balances[(ALICE, "SOL")] = "0"
    result = await engine.command(ALICE, "/trade USDC SOL 10")
    assert engine.session(ALICE).flow.side == "sell"

    result = await engine.button(ALICE, token_starting_with(result, "confirm:"))

    assert result.error_kind == ErrorKind.INSUFFICIENT_FUNDS
    assert "network fees" in result.message
    assert engine.quote_backend.executed == []


@pytest.mark.asyncio
async def test_sell_above_token_balance_is_rejected(engine):
    result = await engine.command(ALICE, "/trade USDC SOL 50")

    result = await engine.button(ALICE, token_starting_with(result, "confirm:"))

    assert result.error_kind == ErrorKind.INSUFFICIENT_FUNDS
    assert engine.quote_backend.executed == []


@pytest.mark.asyncio
async def test_typed_amount_requotes_in_place(engine):
    await engine.command(ALICE, "/trade SOL USDC 1")

    result = await engine.text(ALICE, "2")

    assert result.state == FlowState.TRADE_QUOTE
    assert engine.session(ALICE).flow.amount == Decimal("2")
    assert engine.quote_backend.quote_calls[-1]["amount_atomic"] == 2_000_000_000


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["1e400000000", "1,000"])
async def test_unreasonable_typed_amount_reprompts(engine, text):
    await engine.command(ALICE, "/trade SOL USDC 1")
    calls = len(engine.quote_backend.quote_calls)

    result = await engine.text(ALICE, text)

    assert result.error_kind == ErrorKind.VALIDATION
    assert result.state == FlowState.TRADE_QUOTE
    assert engine.session(ALICE).flow.amount == Decimal("1")
    assert len(engine.quote_backend.quote_calls) == calls


def test_atomic_conversion_overflow_is_a_validation_error():
    asset = TradeAsset(symbol="SOL", address="So11111111111111111111111111111111111111112", decimals=9)

    with pytest.raises(ValidationError):
        asset.to_atomic(Decimal("9e999999"))


@pytest.mark.asyncio
async def test_custom_amount_and_slippage_entry(engine):
    await engine.command(ALICE, "/trade SOL USDC 1")

    result = await engine.button(ALICE, "trade_amount")
    assert result.state == FlowState.TRADE_ENTERING_AMOUNT
    result = await engine.text(ALICE, "3")
    assert result.state == FlowState.TRADE_QUOTE

    result = await engine.button(ALICE, "trade_slippage")
    assert result.state == FlowState.TRADE_ENTERING_SLIPPAGE
    result = await engine.text(ALICE, "60%")
    assert result.error_kind == ErrorKind.VALIDATION
    assert result.state == FlowState.TRADE_ENTERING_SLIPPAGE

    result = await engine.text(ALICE, "0.75%")
    assert result.state == FlowState.TRADE_QUOTE
    flow = engine.session(ALICE).flow
    assert flow.slippage_bps == 75
    assert flow.amount == Decimal("3")


@pytest.mark.asyncio
async def test_out_of_range_slippage_button_is_invalid(engine):
    await engine.command(ALICE, "/trade SOL USDC 1")

    result = await engine.button(ALICE, "slippage:9999")

    assert result.error_kind == ErrorKind.INVALID_ACTION
    assert engine.session(ALICE).flow.slippage_bps == 100


@pytest.mark.asyncio
async def test_confirm_from_older_quote_is_rejected(engine):
    first = await engine.command(ALICE, "/trade SOL USDC 1")
    old_token = token_starting_with(first, "confirm:")

    refreshed = await engine.button(ALICE, "trade_refresh")
    assert token_starting_with(refreshed, "confirm:") != old_token

    result = await engine.button(ALICE, old_token)

    assert result.error_kind == ErrorKind.INVALID_ACTION
    assert "out of date" in result.message
    assert engine.session(ALICE).state == FlowState.TRADE_QUOTE
    assert engine.quote_backend.executed == []


@pytest.mark.asyncio
async def test_execution_failure_clears_flow(engine):
    result = await engine.command(ALICE, "/trade SOL USDC 1")
    engine.quote_backend.execute_error = RuntimeError("blockhash expired")

    result = await engine.button(ALICE, token_starting_with(result, "confirm:"))

    assert result.success is False
    assert result.error_kind == ErrorKind.EXTERNAL_FAILURE
    assert "may still have been submitted" in result.message
    assert engine.session(ALICE).state == FlowState.IDLE


@pytest.mark.asyncio
async def test_unroutable_pair_ends_flow(engine):
    engine.quote_backend.unsupported = True

    result = await engine.command(ALICE, "/trade SOL USDC 1")

    assert result.error_kind == ErrorKind.UNSUPPORTED_OPERATION
    assert result.state == FlowState.IDLE
    assert engine.session(ALICE).flow is None


@pytest.mark.asyncio
@pytest.mark.parametrize("command, kind", [
    ("/trade SOL", ErrorKind.VALIDATION),
    ("/trade SOL DOGE", ErrorKind.UNSUPPORTED_OPERATION),
    ("/trade SOL WSOL", ErrorKind.VALIDATION),
    ("/trade SOL USDC abc", ErrorKind.VALIDATION),
    ("/trade SOL USDC 1e400000000", ErrorKind.VALIDATION),
])
async def test_bad_trade_commands(engine, command, kind):
    result = await engine.command(ALICE, command)

    assert result.error_kind == kind
    assert result.state == FlowState.IDLE
    assert "menu" in tokens_of(result)


@pytest.mark.asyncio
async def test_trading_unavailable_without_quote_backend():
    engine = Engine(quote=False)
    engine.add_user(ALICE, ALICE_ADDRESS)

    result = await engine.command(ALICE, "/trade SOL USDC 1")

    assert result.error_kind == ErrorKind.UNSUPPORTED_OPERATION
    assert "not available" in result.message
