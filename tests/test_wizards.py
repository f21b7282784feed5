"""
Event creation and custom asset minting wizards.
"""

from datetime import datetime, timezone

import pytest

from chainflow.core.errors import ErrorKind
from chainflow.core.flows import FlowState
from chainflow.core.results import CreationOutcome

from fakes import ALICE, ALICE_ADDRESS, BOB, BOB_ADDRESS, Engine

EVENT_ANSWERS = [
    "Launch Party",
    "A night of music and product demos",
    "2099-12-31 20:00",
    "Main Hall",
    "skip",
    "250",
]


@pytest.fixture
def engine():
    engine = Engine(config_overrides={'admin_user_ids': [ALICE]})
    engine.add_user(ALICE, ALICE_ADDRESS, "alice")
    engine.add_user(BOB, BOB_ADDRESS, "bob")
    return engine


@pytest.mark.asyncio
async def test_event_wizard_collects_every_field(engine):
    result = await engine.command(ALICE, "/create_event")
    assert result.state == FlowState.EVENT_NAME
    assert "Step 1/6" in result.message

    for answer in EVENT_ANSWERS:
        result = await engine.text(ALICE, answer)

    assert isinstance(result, CreationOutcome)
    assert result.success is True
    assert result.item_kind == "event"
    assert "Launch Party" in result.message
    assert result.reference_id == "event1"

    user_id, draft = engine.minting_backend.events[0]
    assert user_id == ALICE
    assert draft.name == "Launch Party"
    assert draft.description == "A night of music and product demos"
    assert draft.date == datetime(2099, 12, 31, 20, 0, tzinfo=timezone.utc)
    assert draft.venue == "Main Hall"
    assert draft.image_url is None
    assert draft.ticket_supply == 250
    assert engine.session(ALICE).flow is None


@pytest.mark.asyncio
async def test_event_wizard_reprompts_invalid_fields(engine):
    await engine.command(ALICE, "/create_event")

    result = await engine.text(ALICE, "ab")
    assert result.error_kind == ErrorKind.VALIDATION
    assert result.state == FlowState.EVENT_NAME

    await engine.text(ALICE, EVENT_ANSWERS[0])
    await engine.text(ALICE, EVENT_ANSWERS[1])

    result = await engine.text(ALICE, "2000-01-01")
    assert result.error_kind == ErrorKind.VALIDATION
    assert result.state == FlowState.EVENT_DATE

    await engine.text(ALICE, EVENT_ANSWERS[2])
    await engine.text(ALICE, EVENT_ANSWERS[3])

    result = await engine.text(ALICE, "ftp://example.com/image.png")
    assert result.state == FlowState.EVENT_IMAGE
    result = await engine.text(ALICE, "https://example.com/ticket.png")
    assert result.state == FlowState.EVENT_SUPPLY

    for bad in ("0", "10001", "many"):
        result = await engine.text(ALICE, bad)
        assert result.error_kind == ErrorKind.VALIDATION
        assert result.state == FlowState.EVENT_SUPPLY

    flow = engine.session(ALICE).flow
    assert flow.name == "Launch Party"
    assert flow.image_url == "https://example.com/ticket.png"
    assert flow.image_skipped is False
    assert engine.minting_backend.events == []


@pytest.mark.asyncio
async def test_buttons_are_rejected_in_text_steps(engine):
    await engine.command(ALICE, "/create_event")

    result = await engine.button(ALICE, "asset:0")

    assert result.error_kind == ErrorKind.INVALID_ACTION
    assert engine.session(ALICE).state == FlowState.EVENT_NAME


@pytest.mark.asyncio
async def test_wizards_are_limited_to_admins(engine):
    result = await engine.command(BOB, "/create_event")

    assert result.error_kind == ErrorKind.UNSUPPORTED_OPERATION
    assert "administrators" in result.message
    assert engine.session(BOB).state == FlowState.IDLE


@pytest.mark.asyncio
async def test_wizards_are_open_when_no_admins_configured():
    engine = Engine()
    engine.add_user(BOB, BOB_ADDRESS)

    result = await engine.command(BOB, "/create_event")

    assert result.state == FlowState.EVENT_NAME


@pytest.mark.asyncio
async def test_wizard_unavailable_without_minting_backend():
    engine = Engine(config_overrides={'admin_user_ids': [ALICE]}, minting=False)
    engine.add_user(ALICE, ALICE_ADDRESS)

    result = await engine.command(ALICE, "/mint")

    assert result.error_kind == ErrorKind.UNSUPPORTED_OPERATION
    assert "not available" in result.message


@pytest.mark.asyncio
async def test_mint_wizard_normalizes_answers(engine):
    result = await engine.command(ALICE, "/mint")
    assert result.state == FlowState.MINT_NAME

    for answer in ("Gold Pass", "gld", "A premium membership pass", "https://example.com/gold.png", "vip"):
        result = await engine.text(ALICE, answer)

    assert result.success is True
    assert result.item_kind == "custom asset"
    _, draft = engine.minting_backend.mints[0]
    assert draft.symbol == "GLD"
    assert draft.category == "VIP"
    assert draft.image_url == "https://example.com/gold.png"


@pytest.mark.asyncio
async def test_mint_wizard_rejects_unknown_category(engine):
    await engine.command(ALICE, "/mint")
    for answer in ("Gold Pass", "GLD", "A premium membership pass", "skip"):
        await engine.text(ALICE, answer)

    result = await engine.text(ALICE, "Platinum")

    assert result.error_kind == ErrorKind.VALIDATION
    assert "VIP, Standard, Group" in result.message
    assert engine.session(ALICE).flow.image_skipped is True


@pytest.mark.asyncio
async def test_mint_requires_wallet():
    engine = Engine()

    result = await engine.command(ALICE, "/mint")

    assert result.error_kind == ErrorKind.UNSUPPORTED_OPERATION
    assert "/import" in result.message


@pytest.mark.asyncio
async def test_minting_failure_ends_wizard(engine):
    engine.minting_backend.error = RuntimeError("metadata upload failed")
    await engine.command(ALICE, "/create_event")

    for answer in EVENT_ANSWERS:
        result = await engine.text(ALICE, answer)

    assert result.success is False
    assert result.error_kind == ErrorKind.EXTERNAL_FAILURE
    assert "may still have been submitted" in result.message
    assert engine.session(ALICE).state == FlowState.IDLE
