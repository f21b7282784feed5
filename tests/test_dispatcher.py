"""
Dispatcher routing: commands, malformed tokens, idle input and error containment.
"""

import asyncio

import pytest

from chainflow.core.dispatcher import GENERIC_ERROR_MESSAGE, parse_command
from chainflow.core.errors import ErrorKind
from chainflow.core.flows import (
    DirectTransferFlow, EventWizardFlow, FlowState, MintWizardFlow, PeerTransferFlow, SecretImportFlow,
    TicketPurchaseFlow, TradeFlow
)
from chainflow.core.in_memory_session_store import IdleTimeoutPolicy
from chainflow.core.results import Effect

from fakes import (
    ALICE, ALICE_ADDRESS, EXTERNAL_ADDRESS, Engine, native_asset, token_asset,
    token_starting_with, tokens_of
)

NEW_USER = 2001
PRIVATE_KEY = "0x" + "4c" * 32


@pytest.fixture
def engine():
    engine = Engine()
    engine.add_user(ALICE, ALICE_ADDRESS, "alice", assets=[native_asset("5"), token_asset("10")])
    return engine


def test_parse_command():
    assert parse_command("/trade SOL USDC 1") == ("trade", ["SOL", "USDC", "1"])
    assert parse_command("/Send@chainflow_bot") == ("send", [])
    assert parse_command("help") == ("help", [])
    assert parse_command("   ") == ("", [])


@pytest.mark.asyncio
async def test_start_shows_menu_and_drops_session(engine):
    await engine.command(ALICE, "/tokens")
    assert "assets" in engine.session(ALICE).cache

    result = await engine.command(ALICE, "/start")

    assert "cmd:send" in tokens_of(result)
    assert engine.session(ALICE) is None


@pytest.mark.asyncio
async def test_menu_buttons_start_commands(engine):
    result = await engine.button(ALICE, "cmd:send")

    assert result.state == FlowState.TRANSFER_SELECTING_ASSET


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["", "bogus", "page", "page:abc:1", "confirm", "asset:1 2", "x" * 100])
async def test_malformed_tokens_are_rejected_without_state_change(engine, token):
    await engine.command(ALICE, "/send")

    result = await engine.button(ALICE, token)

    assert result.error_kind == ErrorKind.INVALID_ACTION
    assert engine.session(ALICE).state == FlowState.TRANSFER_SELECTING_ASSET


@pytest.mark.asyncio
async def test_non_numeric_page_argument_is_invalid(engine):
    await engine.command(ALICE, "/send")

    result = await engine.button(ALICE, "page:abc")

    assert result.error_kind == ErrorKind.INVALID_ACTION
    assert engine.session(ALICE).state == FlowState.TRANSFER_SELECTING_ASSET


@pytest.mark.asyncio
async def test_stale_flow_button_while_idle_expires(engine):
    result = await engine.button(ALICE, "asset:0")

    assert result.error_kind == ErrorKind.SESSION_EXPIRED
    assert result.state == FlowState.IDLE


@pytest.mark.asyncio
async def test_unknown_command(engine):
    result = await engine.command(ALICE, "/launch_rocket")

    assert result.error_kind == ErrorKind.INVALID_ACTION
    assert "/help" in result.message


@pytest.mark.asyncio
async def test_help_keeps_current_step(engine):
    await engine.command(ALICE, "/send")

    result = await engine.command(ALICE, "/help")

    assert "/trade" in result.message
    assert "cancel" in tokens_of(result)
    assert engine.session(ALICE).state == FlowState.TRANSFER_SELECTING_ASSET


@pytest.mark.asyncio
async def test_cancel_when_idle(engine):
    result = await engine.command(ALICE, "/cancel")

    assert result.message == "Nothing to cancel."
    assert result.state == FlowState.IDLE


@pytest.mark.asyncio
async def test_new_command_replaces_running_flow(engine):
    await engine.command(ALICE, "/send")
    await engine.button(ALICE, "asset:0")

    result = await engine.command(ALICE, "/p2p")

    assert result.state == FlowState.P2P_ENTERING_RECIPIENT
    assert engine.session(ALICE).flow.asset is None


@pytest.mark.asyncio
async def test_idle_private_key_is_flagged_for_deletion(engine):
    result = await engine.text(ALICE, PRIVATE_KEY)

    assert Effect.DELETE_USER_MESSAGE in result.effects
    assert PRIVATE_KEY not in result.message
    assert engine.session(ALICE).state == FlowState.IDLE


@pytest.mark.asyncio
async def test_idle_text_is_not_understood(engine):
    result = await engine.text(ALICE, "hello")

    assert "didn't understand" in result.message
    assert result.effects == []


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained(engine):
    await engine.command(ALICE, "/send")

    async def explode(session, user_input):
        raise RuntimeError("boom")

    engine.dispatcher.state_machine.transition = explode
    result = await engine.button(ALICE, "asset:0")

    assert result.message == GENERIC_ERROR_MESSAGE
    assert result.error_kind == ErrorKind.EXTERNAL_FAILURE
    session = engine.session(ALICE)
    assert session.state == FlowState.IDLE
    assert session.flow is None
    assert "assets" in session.cache


@pytest.mark.asyncio
async def test_concurrent_confirm_presses_execute_once(engine):
    await engine.command(ALICE, "/send")
    await engine.button(ALICE, "asset:0")
    await engine.text(ALICE, EXTERNAL_ADDRESS)
    result = await engine.text(ALICE, "1")
    token = token_starting_with(result, "confirm:")

    results = await asyncio.gather(engine.button(ALICE, token), engine.button(ALICE, token))

    assert sorted(bool(getattr(r, "success", False)) for r in results) == [False, True]
    assert len(engine.wallet_backend.transfers) == 1


@pytest.mark.asyncio
async def test_expired_session_turns_buttons_into_session_expired(engine):
    now = [1000.0]
    engine.store.expiry_policy = IdleTimeoutPolicy(60)
    engine.store.clock = lambda: now[0]

    await engine.command(ALICE, "/send")
    now[0] += 120

    result = await engine.button(ALICE, "asset:0")

    assert result.error_kind == ErrorKind.SESSION_EXPIRED
    assert engine.session(ALICE).state == FlowState.IDLE


@pytest.mark.asyncio
async def test_user_locks_are_released_after_events(engine):
    await engine.command(ALICE, "/send")
    await asyncio.gather(*(engine.button(ALICE, "page:2") for _ in range(5)))
    await asyncio.gather(*(engine.command(user_id, "/help") for user_id in range(3000, 3050)))

    assert engine.dispatcher._locks == {}


@pytest.mark.asyncio
async def test_sweep_sessions_drops_expired_sessions(engine):
    now = [1000.0]
    engine.store.expiry_policy = IdleTimeoutPolicy(60)
    engine.store.clock = lambda: now[0]
    for user_id in range(3000, 3010):
        await engine.command(user_id, "/help")

    now[0] += 120
    await engine.command(ALICE, "/help")

    assert engine.dispatcher.sweep_sessions() == 10
    assert len(engine.store) == 1
    assert engine.dispatcher._locks == {}


# ---- secret import ----

@pytest.mark.asyncio
async def test_import_success_deletes_secret_message(engine):
    result = await engine.command(NEW_USER, "/import")
    assert result.state == FlowState.AWAITING_SECRET

    result = await engine.text(NEW_USER, PRIVATE_KEY)

    assert result.success is True
    assert Effect.DELETE_USER_MESSAGE in result.effects
    assert PRIVATE_KEY not in result.message
    assert engine.directory.wallets[NEW_USER].address == "0x" + "4c" * 20
    assert engine.session(NEW_USER).state == FlowState.IDLE


@pytest.mark.asyncio
async def test_import_invalid_secret_still_deletes_message(engine):
    await engine.command(ALICE, "/import")

    result = await engine.text(ALICE, "not a key")

    assert result.success is False
    assert result.error_kind == ErrorKind.VALIDATION
    assert Effect.DELETE_USER_MESSAGE in result.effects
    assert "Invalid private key" in result.message
    assert engine.session(ALICE).state == FlowState.IDLE


# ---- browsing ----

@pytest.mark.asyncio
async def test_browse_pages_while_idle(engine):
    result = await engine.command(ALICE, "/tokens")
    assert result.state == FlowState.IDLE
    assert result.page.page == 1
    assert "BNB" in result.message

    result = await engine.button(ALICE, "page:2")
    assert result.page.page == 2
    assert "USDT" in result.message

    result = await engine.button(ALICE, "noop")
    assert result.page.page == 2
    assert engine.wallet_backend.list_calls == 1


@pytest.mark.asyncio
async def test_refresh_refetches_assets(engine):
    await engine.command(ALICE, "/tokens")

    result = await engine.command(ALICE, "/refresh")

    assert "Refreshed" in result.message
    assert engine.wallet_backend.list_calls == 2


@pytest.mark.asyncio
async def test_empty_wallet_has_nothing_to_browse(engine):
    engine.wallet_backend.assets[ALICE] = []

    result = await engine.command(ALICE, "/tokens")

    assert result.error_kind == ErrorKind.UNSUPPORTED_OPERATION
    assert "No assets" in result.message


# ---- missing flow data ----

def flow_type_of(state: FlowState):
    prefixes = {
        "awaiting_secret": SecretImportFlow,
        "transfer_": DirectTransferFlow,
        "p2p_": PeerTransferFlow,
        "trade_": TradeFlow,
        "event_": EventWizardFlow,
        "mint_": MintWizardFlow,
        "ticket_": TicketPurchaseFlow,
    }
    for prefix, flow_type in prefixes.items():
        if state.value.startswith(prefix):
            return flow_type
    raise AssertionError(f"No flow family for {state!r}")


# States a flow starts in, where an empty flow is legitimate
ENTRY_STATES = {
    FlowState.AWAITING_SECRET,
    FlowState.TRANSFER_SELECTING_ASSET,
    FlowState.P2P_ENTERING_RECIPIENT,
    FlowState.EVENT_NAME,
    FlowState.MINT_NAME,
    FlowState.TICKET_SELECTING_OFFER,
}

FLOW_STATES = [state for state in FlowState if not state.is_idle]


@pytest.mark.asyncio
@pytest.mark.parametrize("state", FLOW_STATES, ids=lambda state: state.value)
@pytest.mark.parametrize("payload", [("text", "hello"), ("text", "1"), ("button", "confirm:abc123")],
                         ids=lambda payload: payload[1])
@pytest.mark.parametrize("with_flow", [False, True], ids=["no_flow", "empty_flow"])
async def test_missing_flow_data_never_raises_or_executes(engine, state, payload, with_flow):
    flow = flow_type_of(state)() if with_flow else None

    def place(session):
        session.state = state
        session.flow = flow

    engine.store.mutate(ALICE, place)
    kind, value = payload

    if kind == "text":
        result = await engine.text(ALICE, value)
    else:
        result = await engine.button(ALICE, value)

    allowed = {ErrorKind.SESSION_EXPIRED, ErrorKind.INVALID_ACTION}
    if with_flow and state in ENTRY_STATES:
        allowed |= {ErrorKind.VALIDATION, None}
    assert result.error_kind in allowed
    assert result.message != GENERIC_ERROR_MESSAGE

    if result.error_kind == ErrorKind.SESSION_EXPIRED:
        assert engine.session(ALICE).state == FlowState.IDLE
        assert engine.session(ALICE).flow is None

    assert engine.wallet_backend.transfers == []
    assert engine.quote_backend.executed == []
    assert engine.minting_backend.events == [] and engine.minting_backend.mints == []
    assert engine.minting_backend.purchases == []
