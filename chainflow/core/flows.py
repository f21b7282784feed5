"""
Flow states and typed flow data.

Each flow family owns one dataclass that carries only the fields of that
family. Steps read their prerequisites through ``require``, which turns a
missing field into SessionExpired instead of an AttributeError/TypeError.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, DecimalException
from enum import Enum
from typing import Any, ClassVar, Optional, Tuple

from chainflow.core.errors import SessionExpired, ValidationError
from chainflow.services.capabilities import AssetInfo, TicketOffer


class FlowState(str, Enum):
    """Closed set of conversation states. IDLE is the empty state."""

    IDLE = ""

    # Secret import
    AWAITING_SECRET = "awaiting_secret"

    # Direct transfer
    TRANSFER_SELECTING_ASSET = "transfer_selecting_asset"
    TRANSFER_ENTERING_RECIPIENT = "transfer_entering_recipient"
    TRANSFER_ENTERING_AMOUNT = "transfer_entering_amount"
    TRANSFER_AWAITING_CONFIRM = "transfer_awaiting_confirm"

    # Peer transfer
    P2P_ENTERING_RECIPIENT = "p2p_entering_recipient"
    P2P_SELECTING_ASSET = "p2p_selecting_asset"
    P2P_ENTERING_AMOUNT = "p2p_entering_amount"
    P2P_AWAITING_CONFIRM = "p2p_awaiting_confirm"

    # Market trade
    TRADE_QUOTE = "trade_quote"
    TRADE_ENTERING_AMOUNT = "trade_entering_amount"
    TRADE_ENTERING_SLIPPAGE = "trade_entering_slippage"

    # Event creation wizard
    EVENT_NAME = "event_name"
    EVENT_DESCRIPTION = "event_description"
    EVENT_DATE = "event_date"
    EVENT_VENUE = "event_venue"
    EVENT_IMAGE = "event_image"
    EVENT_SUPPLY = "event_supply"

    # Custom asset minting wizard
    MINT_NAME = "mint_name"
    MINT_SYMBOL = "mint_symbol"
    MINT_DESCRIPTION = "mint_description"
    MINT_IMAGE = "mint_image"
    MINT_CATEGORY = "mint_category"

    # Ticket purchase
    TICKET_SELECTING_OFFER = "ticket_selecting_offer"
    TICKET_ENTERING_QUANTITY = "ticket_entering_quantity"
    TICKET_AWAITING_CONFIRM = "ticket_awaiting_confirm"

    @property
    def is_idle(self) -> bool:
        return self is FlowState.IDLE


@dataclass(frozen=True)
class Confirmation:
    """What was shown at the confirmation gate."""

    nonce: str
    amount: Decimal


@dataclass
class FlowData:
    """Base class for per-family flow data."""

    family: ClassVar[str] = ""

    def require(self, *names: str) -> Tuple[Any, ...]:
        """
        Return the values of the named fields.

        Raises:
            SessionExpired: If any field is unset
        """
        values = []
        for name in names:
            value = getattr(self, name, None)
            if value is None:
                raise SessionExpired()
            values.append(value)
        return tuple(values)


@dataclass
class SecretImportFlow(FlowData):
    family: ClassVar[str] = "import"


@dataclass(frozen=True)
class PendingTransfer:
    """A fully specified transfer, consumed once by the orchestrator."""

    asset: AssetInfo
    recipient_address: str
    amount: Decimal
    recipient_identity: Optional[str] = None
    recipient_user_id: Optional[int] = None


@dataclass
class DirectTransferFlow(FlowData):
    family: ClassVar[str] = "transfer"

    asset: Optional[AssetInfo] = None
    recipient_address: Optional[str] = None
    amount: Optional[Decimal] = None
    confirmation: Optional[Confirmation] = None

    def to_pending(self) -> PendingTransfer:
        asset, recipient, confirmation = self.require("asset", "recipient_address", "confirmation")
        # Amount comes from the confirmation prompt, never from later input
        return PendingTransfer(asset=asset, recipient_address=recipient, amount=confirmation.amount)


@dataclass
class PeerTransferFlow(DirectTransferFlow):
    family: ClassVar[str] = "p2p"

    recipient_identity: Optional[str] = None
    recipient_user_id: Optional[int] = None
    recipient_display_name: Optional[str] = None

    def to_pending(self) -> PendingTransfer:
        asset, recipient, identity, confirmation = self.require(
            "asset", "recipient_address", "recipient_identity", "confirmation"
        )
        return PendingTransfer(
            asset=asset,
            recipient_address=recipient,
            amount=confirmation.amount,
            recipient_identity=identity,
            recipient_user_id=self.recipient_user_id,
        )


@dataclass(frozen=True)
class TradeAsset:
    """Tradable asset from the trading configuration."""

    symbol: str
    address: str
    decimals: int

    def to_atomic(self, amount: Decimal) -> int:
        """
        Convert a display amount to base units.

        Raises:
            ValidationError: If the amount cannot be represented
        """
        try:
            return int((amount * (Decimal(10) ** self.decimals)).to_integral_value())
        except DecimalException as e:
            raise ValidationError(f"Amount is out of range for {self.symbol}.") from e

    def from_atomic(self, atomic: int) -> Decimal:
        return Decimal(atomic) / (Decimal(10) ** self.decimals)


@dataclass(frozen=True)
class PendingTrade:
    """A fully specified trade, consumed once by the orchestrator."""

    input_asset: TradeAsset
    output_asset: TradeAsset
    side: str
    amount: Decimal
    slippage_bps: int


@dataclass(frozen=True)
class QuoteView:
    """Quote figures shown to the user (informational, never executed)."""

    expected_out: Decimal
    price_impact_pct: float


@dataclass
class TradeFlow(FlowData):
    family: ClassVar[str] = "trade"

    input_asset: Optional[TradeAsset] = None
    output_asset: Optional[TradeAsset] = None
    side: Optional[str] = None
    amount: Optional[Decimal] = None
    slippage_bps: Optional[int] = None
    last_quote: Optional[QuoteView] = None
    confirmation: Optional[Confirmation] = None

    def to_pending(self) -> PendingTrade:
        input_asset, output_asset, side, slippage, confirmation = self.require(
            "input_asset", "output_asset", "side", "slippage_bps", "confirmation"
        )
        return PendingTrade(
            input_asset=input_asset,
            output_asset=output_asset,
            side=side,
            amount=confirmation.amount,
            slippage_bps=slippage,
        )


@dataclass(frozen=True)
class EventDraft:
    name: str
    description: str
    date: datetime
    venue: str
    image_url: Optional[str]
    ticket_supply: int


@dataclass
class EventWizardFlow(FlowData):
    family: ClassVar[str] = "event"

    name: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    venue: Optional[str] = None
    image_url: Optional[str] = None
    image_skipped: bool = False
    ticket_supply: Optional[int] = None

    def to_draft(self) -> EventDraft:
        name, description, date, venue, supply = self.require(
            "name", "description", "date", "venue", "ticket_supply"
        )
        if self.image_url is None and not self.image_skipped:
            raise SessionExpired()
        return EventDraft(
            name=name,
            description=description,
            date=date,
            venue=venue,
            image_url=self.image_url,
            ticket_supply=supply,
        )


@dataclass(frozen=True)
class MintDraft:
    name: str
    symbol: str
    description: str
    image_url: Optional[str]
    category: str


@dataclass
class MintWizardFlow(FlowData):
    family: ClassVar[str] = "mint"

    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    image_skipped: bool = False
    category: Optional[str] = None

    def to_draft(self) -> MintDraft:
        name, symbol, description, category = self.require("name", "symbol", "description", "category")
        if self.image_url is None and not self.image_skipped:
            raise SessionExpired()
        return MintDraft(
            name=name,
            symbol=symbol,
            description=description,
            image_url=self.image_url,
            category=category,
        )


@dataclass(frozen=True)
class PendingTicketPurchase:
    """A fully specified ticket purchase, consumed once by the orchestrator."""

    offer: TicketOffer
    quantity: int

    @property
    def total_price(self) -> Decimal:
        return self.offer.total_price(self.quantity)


@dataclass
class TicketPurchaseFlow(FlowData):
    family: ClassVar[str] = "ticket"

    offer: Optional[TicketOffer] = None
    quantity: Optional[int] = None
    confirmation: Optional[Confirmation] = None

    def to_pending(self) -> PendingTicketPurchase:
        offer, confirmation = self.require("offer", "confirmation")
        # Quantity comes from the confirmation prompt
        return PendingTicketPurchase(offer=offer, quantity=int(confirmation.amount))
