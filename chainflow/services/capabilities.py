"""
Capability interfaces consumed by the conversation engine.

Every external collaborator (wallet directory, balance/transfer backend,
quote/swap backend, minting backend, notifier) is described here as an
abstract base class with async methods, together with the plain data types
exchanged through it. Concrete implementations live next to this module
(UserWalletService, EvmWalletBackend) or are injected by the host
application.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AssetInfo:
    """Asset held by a wallet, as returned by ``WalletBackend.list_assets``."""

    symbol: str
    name: str
    address: Optional[str]
    """Token contract address, None for the chain's native asset."""

    decimal_places: int
    balance: str
    """Human readable balance as a decimal string."""

    price_usd: Optional[float] = None

    @property
    def is_native(self) -> bool:
        return self.address is None

    @property
    def lookup_key(self) -> str:
        """Identifier passed back to ``get_balance`` (address, or symbol for native)."""
        return self.address or self.symbol


@dataclass(frozen=True)
class WalletRecord:
    """Wallet owned by a bot user."""

    user_id: int
    address: str
    signing_handle: str
    """Opaque reference the execution backends use to sign for this wallet."""


@dataclass(frozen=True)
class IdentityResolution:
    """Result of resolving a directory identity (``@handle`` or user id)."""

    found: bool
    address: Optional[str] = None
    user_id: Optional[int] = None
    display_name: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Quote:
    """Swap quote returned by ``QuoteBackend.get_quote``."""

    input_asset: str
    output_asset: str
    in_amount_atomic: int
    out_amount_atomic: int
    price_impact_pct: float
    slippage_bps: int
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)
    """Backend specific payload needed to execute the quote."""


@dataclass(frozen=True)
class ExecutionReceipt:
    """Reference to an executed external action."""

    reference_id: str
    viewer_link: Optional[str] = None


class UnsupportedPairError(Exception):
    """Raised by a quote backend when no route exists for the requested pair."""


@dataclass(frozen=True)
class TicketOffer:
    """One ticket category of an event that is on sale."""

    offer_id: str
    event_name: str
    category: str
    price: Decimal
    currency: str
    """Symbol (native asset) or token address the price is paid in."""

    available: int
    event_date: Optional[str] = None
    venue: Optional[str] = None

    @property
    def sold_out(self) -> bool:
        return self.available <= 0

    def total_price(self, quantity: int) -> Decimal:
        return self.price * quantity


class SoldOutError(Exception):
    """Raised by a minting backend when an offer no longer has enough tickets."""


class IdentityDirectory(ABC):
    """Persistent user/wallet directory."""

    @abstractmethod
    async def resolve_identity(self, identifier: str) -> IdentityResolution:
        """
        Resolve a directory identity to a wallet address.

        Args:
            identifier: ``@username`` or numeric user id

        Returns:
            IdentityResolution (found=False with an error message when unknown)
        """

    @abstractmethod
    async def get_wallet(self, user_id: int) -> Optional[WalletRecord]:
        """Return the wallet of a user, or None when the user has none."""

    @abstractmethod
    async def import_wallet(self, user_id: int, secret: str) -> WalletRecord:
        """
        Attach a wallet derived from ``secret`` to the user.

        Raises:
            ValueError: If the secret is not a valid private key
        """


class WalletBackend(ABC):
    """Balance lookup, asset listing and transfer execution."""

    @abstractmethod
    async def get_balance(self, user_id: int, asset: str) -> str:
        """
        Get the balance of one asset as a decimal string.

        Args:
            user_id: Owner of the wallet
            asset: Asset symbol (native asset) or token address
        """

    @abstractmethod
    async def list_assets(self, user_id: int) -> List[AssetInfo]:
        """List all assets held by the user's wallet."""

    @abstractmethod
    async def execute_transfer(
        self,
        from_address: str,
        to_address: str,
        amount: Decimal,
        asset_address: Optional[str] = None,
        decimal_places: Optional[int] = None
    ) -> ExecutionReceipt:
        """Send ``amount`` of an asset (native when asset_address is None)."""


class QuoteBackend(ABC):
    """Market quotes and swap execution."""

    @abstractmethod
    async def get_quote(
        self,
        input_asset: str,
        output_asset: str,
        amount_atomic: int,
        slippage_bps: int
    ) -> Quote:
        """
        Fetch a swap quote.

        Raises:
            UnsupportedPairError: If the pair cannot be routed
        """

    @abstractmethod
    async def execute_trade(self, quote: Quote, from_address: str, signing_handle: str) -> ExecutionReceipt:
        """Execute a previously fetched quote."""


class MintingBackend(ABC):
    """Ticket/NFT creation and ticket sales."""

    @abstractmethod
    async def create_event(self, user_id: int, draft) -> ExecutionReceipt:
        """Create an event and its ticket assets from an ``EventDraft``."""

    @abstractmethod
    async def mint_asset(self, user_id: int, draft) -> ExecutionReceipt:
        """Mint a custom asset from a ``MintDraft``."""

    @abstractmethod
    async def list_ticket_offers(self) -> List[TicketOffer]:
        """List the ticket categories of active events."""

    @abstractmethod
    async def purchase_ticket(
        self,
        user_id: int,
        from_address: str,
        offer_id: str,
        quantity: int
    ) -> ExecutionReceipt:
        """
        Pay for ``quantity`` tickets of an offer and deliver them to the buyer.

        Raises:
            SoldOutError: If fewer than ``quantity`` tickets are left
        """


class Notifier(ABC):
    """Out-of-band user notification (best effort)."""

    @abstractmethod
    async def notify_user(self, user_id: int, payload: Dict[str, Any]):
        """Send a notification to a user. Callers swallow failures."""
