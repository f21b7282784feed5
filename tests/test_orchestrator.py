"""
TransactionOrchestrator guards and external call handling.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from chainflow.core.errors import ErrorKind, ExternalFailure, UnsupportedOperation, ValidationError
from chainflow.core.external import call_external
from chainflow.core.flows import EventDraft, PendingTransfer

from fakes import ALICE, ALICE_ADDRESS, EXTERNAL_ADDRESS, Engine, native_asset


def orchestrator_of(engine):
    return engine.dispatcher.state_machine.context.orchestrator


def pending(amount: str = "1") -> PendingTransfer:
    return PendingTransfer(asset=native_asset("5"), recipient_address=EXTERNAL_ADDRESS, amount=Decimal(amount))


@pytest.fixture
def engine():
    engine = Engine()
    engine.add_user(ALICE, ALICE_ADDRESS, assets=[native_asset("5")])
    return engine


@pytest.mark.asyncio
async def test_transfer_without_wallet_returns_outcome():
    engine = Engine()

    outcome = await orchestrator_of(engine).execute_transfer(ALICE, pending())

    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.UNSUPPORTED_OPERATION
    assert outcome.clear_flow is True


@pytest.mark.asyncio
async def test_history_failure_does_not_fail_transfer(engine):
    def broken(*args):
        raise RuntimeError("database is locked")

    engine.history.record_transfer = broken

    outcome = await orchestrator_of(engine).execute_transfer(ALICE, pending())

    assert outcome.success is True
    assert len(engine.wallet_backend.transfers) == 1


@pytest.mark.asyncio
async def test_slow_execution_times_out_as_unrecoverable():
    engine = Engine(config_overrides={'external': {'timeout_seconds': 0.05}})
    engine.add_user(ALICE, ALICE_ADDRESS, assets=[native_asset("5")])

    async def slow_transfer(*args, **kwargs):
        await asyncio.sleep(1)

    engine.wallet_backend.execute_transfer = slow_transfer

    outcome = await orchestrator_of(engine).execute_transfer(ALICE, pending())

    assert outcome.success is False
    assert outcome.error_kind == ErrorKind.EXTERNAL_FAILURE
    assert outcome.clear_flow is True
    assert "took too long" in outcome.message


@pytest.mark.asyncio
async def test_preview_rejects_dust_amounts(engine):
    settings = orchestrator_of(engine).settings
    sol = settings.resolve_trade_asset("SOL")
    usdc = settings.resolve_trade_asset("USDC")

    with pytest.raises(ValidationError):
        await orchestrator_of(engine).preview_quote(sol, usdc, Decimal("0.0000000001"), 100)
    assert engine.quote_backend.quote_calls == []


@pytest.mark.asyncio
async def test_preview_treats_empty_route_as_unsupported(engine):
    engine.quote_backend.out_amount_atomic = 0
    settings = orchestrator_of(engine).settings

    with pytest.raises(UnsupportedOperation):
        await orchestrator_of(engine).preview_quote(
            settings.resolve_trade_asset("SOL"), settings.resolve_trade_asset("USDC"), Decimal("1"), 100
        )


@pytest.mark.asyncio
async def test_create_event_without_backend():
    engine = Engine(minting=False)
    draft = EventDraft(
        name="Launch",
        description="Launch party",
        date=datetime(2099, 1, 1, tzinfo=timezone.utc),
        venue="Hall",
        image_url=None,
        ticket_supply=10,
    )

    outcome = await orchestrator_of(engine).create_event(ALICE, draft)

    assert outcome.success is False
    assert outcome.item_kind == "event"
    assert outcome.error_kind == ErrorKind.UNSUPPORTED_OPERATION


@pytest.mark.asyncio
async def test_notify_without_notifier_is_false(engine):
    orchestrator = orchestrator_of(engine)
    orchestrator.notifier = None

    assert await orchestrator.notify_recipient(ALICE, {"type": "transfer_received"}) is False


# ---- call_external ----

@pytest.mark.asyncio
async def test_call_external_maps_errors():
    async def fails():
        raise ConnectionError("reset by peer")

    with pytest.raises(ExternalFailure) as exc_info:
        await call_external(fails(), "list_assets", 1, recoverable=False)

    assert exc_info.value.recoverable is False
    assert isinstance(exc_info.value.cause, ConnectionError)
    assert "reset by peer" not in exc_info.value.message


@pytest.mark.asyncio
async def test_call_external_passthrough():
    async def rejects():
        raise ValueError("Invalid private key")

    with pytest.raises(ValueError):
        await call_external(rejects(), "import_wallet", 1, passthrough=(ValueError,))


@pytest.mark.asyncio
async def test_call_external_returns_value():
    async def answer():
        return 42

    assert await call_external(answer(), "answer", 1) == 42
