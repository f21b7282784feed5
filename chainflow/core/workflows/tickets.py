"""
Ticket purchase flow.

offer -> quantity -> confirm

Offers of all active events are fetched once per flow, cached and browsed a
page at a time. The confirmation gate stores the quantity together with a
nonce; the confirm button only carries the nonce.
"""

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Sequence, Tuple

from chainflow.core import action_tokens
from chainflow.core.errors import ErrorKind, InvalidAction, SessionExpired, UnsupportedOperation, ValidationError
from chainflow.core.flows import Confirmation, FlowState, TicketPurchaseFlow
from chainflow.core.results import Prompt, QuickAction, Transition
from chainflow.core.session_store import Session
from chainflow.core.utils.pagination import PaginationHelper
from chainflow.core.validators import parse_positive_int
from chainflow.core.workflows.base import (
    CANCEL_ACTION, UserInput, Workflow, advance, cancel_row, complete, new_nonce, refresh
)
from chainflow.services.capabilities import TicketOffer

logger = logging.getLogger(__name__)

OFFERS_CACHE_KEY = "ticket_offers"


def format_offer(offer: TicketOffer) -> str:
    lines = [f"{offer.event_name} ({offer.category})"]
    if offer.event_date:
        lines.append(f"Date: {offer.event_date}")
    if offer.venue:
        lines.append(f"Venue: {offer.venue}")
    lines.append(f"Price: {offer.price} {offer.currency}")
    lines.append("Sold out" if offer.sold_out else f"Available: {offer.available}")
    return "\n".join(lines)


class TicketPurchaseWorkflow(Workflow):
    """Buy tickets of an active event."""

    states = (
        FlowState.TICKET_SELECTING_OFFER,
        FlowState.TICKET_ENTERING_QUANTITY,
        FlowState.TICKET_AWAITING_CONFIRM,
    )
    commands = ("tickets",)

    # ---- offer list ----

    async def load_offers(self, user_id: int) -> Tuple[TicketOffer, ...]:
        """
        Get the cached offer list, fetching it when absent.

        Raises:
            UnsupportedOperation: If nothing is on sale
            ExternalFailure: If the listing call fails or times out
        """
        async def fetch():
            logger.info(f"Fetching ticket offers for user {user_id}")
            return await self.context.orchestrator.list_ticket_offers()

        offers = await self.context.cache.get_or_fetch(user_id, OFFERS_CACHE_KEY, fetch)
        if not offers:
            raise UnsupportedOperation("No events have tickets on sale right now.")
        return offers

    def invalidate(self, user_id: int):
        self.context.cache.invalidate(user_id, OFFERS_CACHE_KEY)

    def show_offers(self, user_id: int, flow: TicketPurchaseFlow, page_number: int = 1, kind=advance) -> Transition:
        paginated = self.context.cache.page(
            user_id, OFFERS_CACHE_KEY, page_number, self.settings.offer_page_size
        )

        body = "\n\n".join(format_offer(offer) for offer in paginated.items)
        rows = []
        for offset, offer in enumerate(paginated.items):
            if offer.sold_out:
                continue
            index = paginated.start_index + offset
            rows.append([QuickAction(
                f"🎟 {offer.event_name} - {offer.category}", action_tokens.build("offer", index)
            )])
        rows.append(cancel_row())

        prompt = Prompt(
            message=f"🎟 Choose your tickets\n\n{body}",
            actions=PaginationHelper.navigation_actions(paginated, rows),
            page=paginated.to_page_info(),
        )
        return kind(FlowState.TICKET_SELECTING_OFFER, prompt, flow)

    def select_offer(self, user_id: int, index: int) -> TicketOffer:
        """
        Pick an offer by its position in the cached list.

        Raises:
            SessionExpired: Nothing cached
            InvalidAction: Index out of range
            ValidationError: The offer is sold out
        """
        cached = self.context.cache.get_cached(user_id, OFFERS_CACHE_KEY)
        if cached is None:
            raise SessionExpired("This ticket list has expired. Please start again.")
        if not 0 <= index < len(cached.items):
            raise InvalidAction()

        offer = cached.items[index]
        if offer.sold_out:
            raise ValidationError(f"{offer.category} tickets for {offer.event_name} are sold out.")
        return offer

    # ---- steps ----

    async def start(self, user_id: int, session: Session, command: str, args: Sequence[str]) -> Transition:
        if not self.context.orchestrator.supports_minting:
            raise UnsupportedOperation("Ticket sales are not available right now.")
        await self.context.require_wallet(user_id)

        # Availability changes between purchases
        self.invalidate(user_id)
        await self.load_offers(user_id)
        logger.info(f"User {user_id} started a ticket purchase")
        return self.show_offers(user_id, TicketPurchaseFlow())

    async def handle(self, user_id: int, session: Session, user_input: UserInput) -> Transition:
        flow = self.flow_of(session, TicketPurchaseFlow)
        state = session.state

        if state == FlowState.TICKET_SELECTING_OFFER:
            return self.handle_offer_selection(user_id, flow, user_input)
        if state == FlowState.TICKET_ENTERING_QUANTITY:
            return self.handle_quantity(user_id, flow, user_input)
        return await self.handle_confirm(user_id, flow, user_input)

    def handle_offer_selection(self, user_id: int, flow: TicketPurchaseFlow, user_input: UserInput) -> Transition:
        if not user_input.is_button:
            raise ValidationError("Please choose your tickets with the buttons.")

        action = user_input.action
        if action.name == "page":
            return self.show_offers(user_id, flow, action.int_arg(), kind=refresh)
        if action.name == "noop":
            page = self.context.cache.current_page(user_id, OFFERS_CACHE_KEY)
            return self.show_offers(user_id, flow, page, kind=refresh)
        if action.name != "offer":
            raise InvalidAction()

        offer = self.select_offer(user_id, action.int_arg())
        logger.info(f"User {user_id} selected ticket offer {offer.offer_id}")
        flow = replace(flow, offer=offer)
        return advance(FlowState.TICKET_ENTERING_QUANTITY, self.quantity_prompt(flow), flow)

    def max_quantity(self, offer: TicketOffer) -> int:
        return min(offer.available, self.settings.max_tickets_per_purchase)

    def quantity_prompt(self, flow: TicketPurchaseFlow) -> Prompt:
        (offer,) = flow.require("offer")
        return Prompt(
            message=(
                f"🔢 How many {offer.category} tickets for {offer.event_name}? "
                f"(1-{self.max_quantity(offer)})\n\n"
                f"Price: {offer.price} {offer.currency} each"
            ),
            actions=[cancel_row()],
        )

    def handle_quantity(self, user_id: int, flow: TicketPurchaseFlow, user_input: UserInput) -> Transition:
        (offer,) = flow.require("offer")
        quantity = parse_positive_int(user_input.require_text(), "Quantity", self.max_quantity(offer))

        confirmation = Confirmation(nonce=new_nonce(), amount=Decimal(quantity))
        flow = replace(flow, quantity=quantity, confirmation=confirmation)
        return advance(FlowState.TICKET_AWAITING_CONFIRM, self.confirm_prompt(flow), flow)

    def confirm_prompt(self, flow: TicketPurchaseFlow) -> Prompt:
        pending = flow.to_pending()
        offer = pending.offer
        return Prompt(
            message=(
                "⚠️ Please confirm the purchase:\n\n"
                f"{pending.quantity} x {offer.category} for {offer.event_name}\n"
                f"Total: {pending.total_price} {offer.currency}\n\n"
                "This action cannot be undone."
            ),
            actions=[[
                QuickAction("✅ Confirm", action_tokens.build("confirm", flow.confirmation.nonce)),
                CANCEL_ACTION,
            ]],
        )

    async def handle_confirm(self, user_id: int, flow: TicketPurchaseFlow, user_input: UserInput) -> Transition:
        if not user_input.is_button:
            raise InvalidAction("Please use the buttons to confirm or cancel the purchase.")
        action = user_input.action
        (confirmation,) = flow.require("confirmation")
        if action.name != "confirm" or action.args[0] != confirmation.nonce:
            raise InvalidAction()

        pending = flow.to_pending()
        logger.info(
            f"User {user_id} confirmed {pending.quantity} x {pending.offer.category} "
            f"of offer {pending.offer.offer_id}"
        )
        outcome = await self.context.orchestrator.purchase_ticket(user_id, pending)

        if outcome.success or outcome.clear_flow:
            self.invalidate(user_id)
            return complete(outcome)

        if outcome.error_kind == ErrorKind.INSUFFICIENT_FUNDS:
            flow = replace(flow, quantity=None, confirmation=None)
            outcome.message = f"{outcome.message}\n\nPlease enter a smaller quantity."
            outcome.actions = [cancel_row()]
            return complete(outcome, FlowState.TICKET_ENTERING_QUANTITY, flow=flow, clear_flow=False)

        # Transient failure before execution: confirm again with a fresh nonce
        flow = replace(flow, confirmation=Confirmation(nonce=new_nonce(), amount=confirmation.amount))
        outcome.actions = self.confirm_prompt(flow).actions
        return complete(outcome, FlowState.TICKET_AWAITING_CONFIRM, flow=flow, clear_flow=False)
