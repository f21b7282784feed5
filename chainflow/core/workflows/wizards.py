"""
Multi-field creation wizards (event creation, custom asset minting).

A wizard is an ordered chain of fields. Each field owns one state, one
prompt and one parser; the last field's answer triggers the creation call
instead of advancing.
"""

import logging
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Callable, Sequence, Tuple

from chainflow.core.errors import UnsupportedOperation
from chainflow.core.flows import EventWizardFlow, FlowState, MintWizardFlow
from chainflow.core.results import Prompt, Transition
from chainflow.core.session_store import Session
from chainflow.core.validators import (
    parse_choice, parse_future_date, parse_optional_url, parse_positive_int, parse_symbol, validate_text
)
from chainflow.core.workflows.base import UserInput, Workflow, advance, cancel_row, complete

logger = logging.getLogger(__name__)

MAX_TICKET_SUPPLY = 10000
MINT_CATEGORIES = ("VIP", "Standard", "Group")


@dataclass(frozen=True)
class WizardField:
    state: FlowState
    attribute: str
    prompt: str
    parse: Callable[[str], Any]
    # parse returns None for the skip keyword
    skippable: bool = False


class WizardWorkflow(Workflow):
    """Base class for ordered field-entry wizards."""

    flow_type = EventWizardFlow
    fields: Tuple[WizardField, ...] = ()
    item_kind = ""
    admin_only = True
    needs_wallet = False

    @property
    def states(self) -> Tuple[FlowState, ...]:
        return tuple(step.state for step in self.fields)

    def intro(self) -> str:
        return ""

    def field_prompt(self, index: int) -> Prompt:
        step = self.fields[index]
        message = f"Step {index + 1}/{len(self.fields)}\n\n{step.prompt}"
        if index == 0 and self.intro():
            message = f"{self.intro()}\n\n{message}"
        return Prompt(message=message, actions=[cancel_row()])

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        if self.admin_only and not self.settings.is_admin(user_id):
            logger.warning(f"User {user_id} tried to start the {self.item_kind} wizard without admin rights")
            raise UnsupportedOperation(f"Only administrators can create a {self.item_kind}.")

        if not self.context.orchestrator.supports_minting:
            raise UnsupportedOperation(f"Creating a {self.item_kind} is not available right now.")

        if self.needs_wallet:
            await self.context.require_wallet(user_id)

        logger.info(f"User {user_id} started the {self.item_kind} wizard")
        return advance(self.fields[0].state, self.field_prompt(0), self.flow_type())

    async def handle(self, user_id: int, session: Session, user_input: UserInput) -> Transition:
        flow = self.flow_of(session, self.flow_type)
        index = self.states.index(session.state)
        step = self.fields[index]

        # Earlier answers must all be present
        flow.require(*(earlier.attribute for earlier in self.fields[:index] if not earlier.skippable))

        value = step.parse(user_input.require_text())
        changes = {step.attribute: value}
        if step.skippable:
            changes["image_skipped"] = value is None
        flow = replace(flow, **changes)

        if index + 1 < len(self.fields):
            return advance(self.fields[index + 1].state, self.field_prompt(index + 1), flow)

        outcome = await self.finish(user_id, flow)
        if outcome.success or outcome.clear_flow:
            return complete(outcome)

        outcome.message = f"{outcome.message}\n\nSend the last answer again to retry."
        outcome.actions = [cancel_row()]
        return complete(outcome, step.state, flow=flow, clear_flow=False)

    async def finish(self, user_id: int, flow):
        raise NotImplementedError


class EventWizardWorkflow(WizardWorkflow):
    """Create a ticketed event."""

    flow_type = EventWizardFlow
    item_kind = "event"
    commands = ("create_event",)
    fields = (
        WizardField(
            FlowState.EVENT_NAME, "name",
            "📝 Send the event name (at least 3 characters).",
            partial(validate_text, field_name="Event name", min_length=3, max_length=100),
        ),
        WizardField(
            FlowState.EVENT_DESCRIPTION, "description",
            "📄 Send the event description (at least 10 characters).",
            partial(validate_text, field_name="Description", min_length=10, max_length=1000),
        ),
        WizardField(
            FlowState.EVENT_DATE, "date",
            "📅 Send the event date, e.g. 2030-12-31 20:00 (UTC). It must be in the future.",
            parse_future_date,
        ),
        WizardField(
            FlowState.EVENT_VENUE, "venue",
            "📍 Send the venue (at least 3 characters).",
            partial(validate_text, field_name="Venue", min_length=3, max_length=200),
        ),
        WizardField(
            FlowState.EVENT_IMAGE, "image_url",
            "🖼 Send an image URL for the tickets, or 'skip'.",
            parse_optional_url,
            skippable=True,
        ),
        WizardField(
            FlowState.EVENT_SUPPLY, "ticket_supply",
            f"🎟 How many tickets? (1-{MAX_TICKET_SUPPLY})",
            partial(parse_positive_int, field_name="Ticket supply", maximum=MAX_TICKET_SUPPLY),
        ),
    )

    def intro(self) -> str:
        return "🎫 Let's create a new event."

    async def finish(self, user_id: int, flow: EventWizardFlow):
        return await self.context.orchestrator.create_event(user_id, flow.to_draft())


class MintWizardWorkflow(WizardWorkflow):
    """Mint a custom asset."""

    flow_type = MintWizardFlow
    item_kind = "custom asset"
    commands = ("mint",)
    needs_wallet = True
    fields = (
        WizardField(
            FlowState.MINT_NAME, "name",
            "📝 Send the asset name (at least 3 characters).",
            partial(validate_text, field_name="Name", min_length=3, max_length=100),
        ),
        WizardField(
            FlowState.MINT_SYMBOL, "symbol",
            "🔤 Send the symbol (2-10 letters or digits).",
            parse_symbol,
        ),
        WizardField(
            FlowState.MINT_DESCRIPTION, "description",
            "📄 Send the description (at least 10 characters).",
            partial(validate_text, field_name="Description", min_length=10, max_length=1000),
        ),
        WizardField(
            FlowState.MINT_IMAGE, "image_url",
            "🖼 Send an image URL, or 'skip'.",
            parse_optional_url,
            skippable=True,
        ),
        WizardField(
            FlowState.MINT_CATEGORY, "category",
            f"🏷 Send the category: {', '.join(MINT_CATEGORIES)}.",
            partial(parse_choice, choices=MINT_CATEGORIES, field_name="Category"),
        ),
    )

    def intro(self) -> str:
        return "🎨 Let's mint a custom asset."

    async def finish(self, user_id: int, flow: MintWizardFlow):
        return await self.context.orchestrator.mint_asset(user_id, flow.to_draft())
