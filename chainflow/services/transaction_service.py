"""
Transaction orchestrator.

Turns a confirmed PendingTransfer, PendingTrade or PendingTicketPurchase
(or a finished wizard draft) into exactly one external side-effecting call. Pre-flight guards
re-check everything that may have changed since the user started the flow;
the execution step itself is never retried.

All public execute/create methods return typed outcomes and never raise.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from chainflow.core.errors import (
    ExternalFailure, FlowError, InsufficientFunds, UnsupportedOperation, ValidationError
)
from chainflow.core.external import call_external
from chainflow.core.flows import (
    EventDraft, MintDraft, PendingTicketPurchase, PendingTrade, PendingTransfer, QuoteView, TradeAsset
)
from chainflow.core.results import CreationOutcome, TicketOutcome, TradeOutcome, TransferOutcome
from chainflow.core.settings import EngineSettings
from chainflow.core.validators import validate_amount_against_balance
from chainflow.services.capabilities import (
    ExecutionReceipt, IdentityDirectory, MintingBackend, Notifier, Quote, QuoteBackend,
    SoldOutError, TicketOffer, UnsupportedPairError, WalletBackend, WalletRecord
)

logger = logging.getLogger(__name__)

EXECUTION_FAILED_HINT = "The operation may still have been submitted. Check your wallet before trying again."


class TransactionOrchestrator:
    """Pre-flight checks plus single execution of irreversible actions."""

    def __init__(
        self,
        wallet_backend: WalletBackend,
        directory: IdentityDirectory,
        settings: Optional[EngineSettings] = None,
        quote_backend: Optional[QuoteBackend] = None,
        minting_backend: Optional[MintingBackend] = None,
        notifier: Optional[Notifier] = None,
        history=None
    ):
        """
        Initialize orchestrator.

        Args:
            wallet_backend: Balance lookup and transfer execution
            directory: User/wallet directory
            settings: Engine settings (defaults when omitted)
            quote_backend: Quote/swap backend; trades are unsupported without it
            minting_backend: Event/asset minting backend; wizards are unsupported without it
            notifier: Out-of-band notifier for peer transfer recipients
            history: Optional HistoryService recording executed operations
        """
        self.wallet_backend = wallet_backend
        self.directory = directory
        self.settings = settings or EngineSettings.from_config()
        self.quote_backend = quote_backend
        self.minting_backend = minting_backend
        self.notifier = notifier
        self.history = history

    @property
    def supports_trading(self) -> bool:
        return self.quote_backend is not None

    @property
    def supports_minting(self) -> bool:
        return self.minting_backend is not None

    # ---- helpers ----

    async def _call(self, awaitable, operation: str, recoverable: bool = True, passthrough=()):
        return await call_external(
            awaitable,
            operation,
            self.settings.external_timeout_seconds,
            recoverable=recoverable,
            passthrough=passthrough
        )

    async def _require_wallet(self, user_id: int) -> WalletRecord:
        wallet = await self._call(self.directory.get_wallet(user_id), "get_wallet")
        if wallet is None:
            raise UnsupportedOperation("No wallet found. Use /import to add your wallet first.")
        return wallet

    async def _fresh_balance(self, user_id: int, asset: str) -> Decimal:
        raw = await self._call(self.wallet_backend.get_balance(user_id, asset), "get_balance")
        try:
            balance = Decimal(str(raw))
        except InvalidOperation:
            raise ExternalFailure(f"Could not read the balance of {asset}. Please try again.")
        if not balance.is_finite():
            raise ExternalFailure(f"Could not read the balance of {asset}. Please try again.")
        return balance

    def _viewer_link(self, receipt: ExecutionReceipt) -> str:
        return receipt.viewer_link or self.settings.viewer_link(receipt.reference_id)

    @staticmethod
    def _failure_fields(error: FlowError, prefix: str = "") -> Dict[str, Any]:
        message = f"❌ {prefix}{error.message}"
        if isinstance(error, ExternalFailure) and not error.recoverable:
            message = f"{message}\n\n{EXECUTION_FAILED_HINT}"
        return {
            "success": False,
            "message": message,
            "error_kind": error.kind,
            "clear_flow": not error.recoverable,
        }

    def _record(self, method: str, *args):
        if self.history is None:
            return
        try:
            getattr(self.history, method)(*args)
        except Exception as e:
            # History is bookkeeping; the operation already happened
            logger.error(f"Failed to record history ({method}): {e}", exc_info=True)

    # ---- transfers ----

    async def execute_transfer(self, user_id: int, pending: PendingTransfer) -> TransferOutcome:
        """
        Execute a confirmed transfer.

        Guards: the sender still has a wallet, a peer recipient still
        resolves to the same address, and the fresh balance covers the
        confirmed amount.

        Args:
            user_id: Sender
            pending: Transfer built by the flow (amount taken from the confirmation)

        Returns:
            TransferOutcome (never raises)
        """
        asset = pending.asset
        base = {
            "amount": str(pending.amount),
            "asset_symbol": asset.symbol,
            "recipient_address": pending.recipient_address,
        }

        try:
            wallet = await self._require_wallet(user_id)

            if pending.recipient_identity:
                await self._recheck_recipient(pending)

            balance = await self._fresh_balance(user_id, asset.lookup_key)
            validate_amount_against_balance(pending.amount, balance, asset.symbol)
        except FlowError as e:
            logger.info(f"Transfer pre-flight failed for user {user_id}: {e.kind.value}: {e.message}")
            return TransferOutcome(**self._failure_fields(e), **base)

        logger.info(
            f"Executing transfer: user={user_id} {pending.amount} {asset.symbol} "
            f"{wallet.address} -> {pending.recipient_address}"
        )
        try:
            receipt = await self._call(
                self.wallet_backend.execute_transfer(
                    wallet.address,
                    pending.recipient_address,
                    pending.amount,
                    asset_address=asset.address,
                    decimal_places=asset.decimal_places
                ),
                "execute_transfer",
                recoverable=False
            )
        except FlowError as e:
            logger.error(f"Transfer execution failed for user {user_id}: {e.message}")
            return TransferOutcome(**self._failure_fields(e, prefix="Transfer failed: "), **base)

        viewer_link = self._viewer_link(receipt)
        logger.info(f"Transfer executed for user {user_id}: {receipt.reference_id}")
        self._record("record_transfer", user_id, wallet.address, pending, receipt.reference_id)

        notified = False
        if pending.recipient_user_id is not None:
            notified = await self.notify_recipient(pending.recipient_user_id, {
                "type": "transfer_received",
                "from_user_id": user_id,
                "amount": str(pending.amount),
                "asset_symbol": asset.symbol,
                "reference_id": receipt.reference_id,
                "viewer_link": viewer_link,
            })

        recipient = pending.recipient_identity or pending.recipient_address
        return TransferOutcome(
            success=True,
            message=(
                f"✅ Sent {pending.amount} {asset.symbol} to {recipient}\n\n"
                f"Transaction: {receipt.reference_id}\n{viewer_link}"
            ),
            reference_id=receipt.reference_id,
            viewer_link=viewer_link,
            recipient_notified=notified,
            **base
        )

    async def _recheck_recipient(self, pending: PendingTransfer):
        resolution = await self._call(
            self.directory.resolve_identity(pending.recipient_identity), "resolve_identity"
        )
        if not resolution.found or not resolution.address:
            raise UnsupportedOperation(f"Recipient {pending.recipient_identity} is no longer available.")
        if resolution.address.lower() != pending.recipient_address.lower():
            raise UnsupportedOperation(
                f"The wallet of {pending.recipient_identity} changed. Please start the transfer again."
            )

    async def notify_recipient(self, user_id: int, payload: Dict[str, Any]) -> bool:
        """
        Notify a user out of band. Failures are logged and swallowed.

        Returns:
            True if the notifier accepted the notification
        """
        if self.notifier is None:
            return False
        try:
            await self._call(self.notifier.notify_user(user_id, payload), "notify_user")
            return True
        except FlowError as e:
            logger.warning(f"Failed to notify user {user_id}: {e.message}")
            return False

    # ---- trades ----

    async def _fetch_quote(
        self,
        input_asset: TradeAsset,
        output_asset: TradeAsset,
        amount: Decimal,
        slippage_bps: int
    ) -> Quote:
        if self.quote_backend is None:
            raise UnsupportedOperation("Trading is not available right now.")

        amount_atomic = input_asset.to_atomic(amount)
        if amount_atomic <= 0:
            raise ValidationError(f"Amount is too small for {input_asset.symbol}.")

        try:
            quote = await self._call(
                self.quote_backend.get_quote(input_asset.address, output_asset.address, amount_atomic, slippage_bps),
                "get_quote",
                passthrough=(UnsupportedPairError,)
            )
        except UnsupportedPairError:
            raise UnsupportedOperation(f"No route found for {input_asset.symbol} → {output_asset.symbol}.")

        if quote.out_amount_atomic <= 0:
            raise UnsupportedOperation(f"No route found for {input_asset.symbol} → {output_asset.symbol}.")
        return quote

    async def preview_quote(
        self,
        input_asset: TradeAsset,
        output_asset: TradeAsset,
        amount: Decimal,
        slippage_bps: int
    ) -> QuoteView:
        """
        Fetch an informational quote for display.

        Raises:
            FlowError: UnsupportedOperation for unroutable pairs, ExternalFailure
                for failed or slow quote calls
        """
        quote = await self._fetch_quote(input_asset, output_asset, amount, slippage_bps)
        return QuoteView(
            expected_out=output_asset.from_atomic(quote.out_amount_atomic),
            price_impact_pct=float(quote.price_impact_pct),
        )

    async def _check_trade_funds(self, user_id: int, pending: PendingTrade):
        settings = self.settings
        buffer = settings.native_fee_buffer
        native = settings.native_symbol
        input_asset = pending.input_asset

        balance = await self._fresh_balance(user_id, settings.balance_key(input_asset))

        if settings.is_native(input_asset):
            required = pending.amount + buffer
            if balance < required:
                shortfall = required - balance
                raise InsufficientFunds(
                    f"Insufficient {native} balance. You need {required} {native} "
                    f"({pending.amount} + {buffer} reserved for fees) but have {balance} {native}. "
                    f"Short by {shortfall} {native}.",
                    shortfall=shortfall,
                )
            return

        validate_amount_against_balance(pending.amount, balance, input_asset.symbol)

        native_balance = await self._fresh_balance(user_id, native)
        if native_balance < buffer:
            shortfall = buffer - native_balance
            raise InsufficientFunds(
                f"Not enough {native} for network fees. Keep at least {buffer} {native} "
                f"(you have {native_balance} {native}, short by {shortfall} {native}).",
                shortfall=shortfall,
            )

    async def execute_trade(self, user_id: int, pending: PendingTrade) -> TradeOutcome:
        """
        Execute a confirmed trade.

        A fresh quote is always fetched with the stored slippage; the quote
        shown to the user is never executed.

        Args:
            user_id: Trader
            pending: Trade built by the flow (amount taken from the confirmation)

        Returns:
            TradeOutcome (never raises)
        """
        base = {
            "amount": str(pending.amount),
            "input_symbol": pending.input_asset.symbol,
            "output_symbol": pending.output_asset.symbol,
        }

        try:
            wallet = await self._require_wallet(user_id)
            await self._check_trade_funds(user_id, pending)
            quote = await self._fetch_quote(
                pending.input_asset, pending.output_asset, pending.amount, pending.slippage_bps
            )
        except FlowError as e:
            logger.info(f"Trade pre-flight failed for user {user_id}: {e.kind.value}: {e.message}")
            return TradeOutcome(**self._failure_fields(e), **base)

        expected_out = pending.output_asset.from_atomic(quote.out_amount_atomic)
        logger.info(
            f"Executing trade: user={user_id} {pending.amount} {pending.input_asset.symbol} -> "
            f"~{expected_out} {pending.output_asset.symbol} (slippage {pending.slippage_bps} bps, side {pending.side})"
        )
        try:
            receipt = await self._call(
                self.quote_backend.execute_trade(quote, wallet.address, wallet.signing_handle),
                "execute_trade",
                recoverable=False
            )
        except FlowError as e:
            logger.error(f"Trade execution failed for user {user_id}: {e.message}")
            return TradeOutcome(
                **self._failure_fields(e, prefix="Trade failed: "),
                expected_out=str(expected_out),
                price_impact_pct=float(quote.price_impact_pct),
                **base
            )

        viewer_link = self._viewer_link(receipt)
        logger.info(f"Trade executed for user {user_id}: {receipt.reference_id}")
        self._record("record_trade", user_id, wallet.address, pending, receipt.reference_id)

        return TradeOutcome(
            success=True,
            message=(
                f"✅ Swapped {pending.amount} {pending.input_asset.symbol} for "
                f"≈ {expected_out:f} {pending.output_asset.symbol}\n\n"
                f"Transaction: {receipt.reference_id}\n{viewer_link}"
            ),
            reference_id=receipt.reference_id,
            viewer_link=viewer_link,
            expected_out=str(expected_out),
            price_impact_pct=float(quote.price_impact_pct),
            **base
        )

    # ---- creation ----

    async def _create(self, user_id: int, item_kind: str, operation: str, draft) -> CreationOutcome:
        if self.minting_backend is None:
            error = UnsupportedOperation(f"Creating a {item_kind} is not available right now.")
            return CreationOutcome(item_kind=item_kind, **self._failure_fields(error))

        call = getattr(self.minting_backend, operation)
        logger.info(f"Creating {item_kind} '{draft.name}' for user {user_id}")
        try:
            receipt = await self._call(call(user_id, draft), operation, recoverable=False)
        except FlowError as e:
            logger.error(f"{operation} failed for user {user_id}: {e.message}")
            return CreationOutcome(item_kind=item_kind, **self._failure_fields(e, prefix="Creation failed: "))

        viewer_link = self._viewer_link(receipt)
        logger.info(f"Created {item_kind} for user {user_id}: {receipt.reference_id}")
        return CreationOutcome(
            success=True,
            item_kind=item_kind,
            message=f"✅ {item_kind.capitalize()} '{draft.name}' created!\n\nReference: {receipt.reference_id}\n{viewer_link}",
            reference_id=receipt.reference_id,
            viewer_link=viewer_link,
        )

    async def create_event(self, user_id: int, draft: EventDraft) -> CreationOutcome:
        """Create an event and its tickets. Never raises."""
        return await self._create(user_id, "event", "create_event", draft)

    async def mint_asset(self, user_id: int, draft: MintDraft) -> CreationOutcome:
        """Mint a custom asset. Never raises."""
        return await self._create(user_id, "custom asset", "mint_asset", draft)

    # ---- tickets ----

    async def list_ticket_offers(self) -> List[TicketOffer]:
        """
        Fetch the ticket categories currently on sale.

        Raises:
            UnsupportedOperation: If no minting backend is configured
            ExternalFailure: If the listing call fails or times out
        """
        if self.minting_backend is None:
            raise UnsupportedOperation("Ticket sales are not available right now.")
        offers = await self._call(self.minting_backend.list_ticket_offers(), "list_ticket_offers")
        return list(offers)

    async def purchase_ticket(self, user_id: int, pending: PendingTicketPurchase) -> TicketOutcome:
        """
        Buy confirmed tickets.

        Guards: the buyer still has a wallet and the fresh balance of the
        offer's currency covers price times quantity. Availability is
        enforced by the backend, which raises SoldOutError.

        Args:
            user_id: Buyer
            pending: Purchase built by the flow (quantity taken from the confirmation)

        Returns:
            TicketOutcome (never raises)
        """
        offer = pending.offer
        total = pending.total_price
        base = {
            "amount": str(total),
            "event_name": offer.event_name,
            "category": offer.category,
            "quantity": pending.quantity,
            "currency": offer.currency,
        }

        try:
            if self.minting_backend is None:
                raise UnsupportedOperation("Ticket sales are not available right now.")
            wallet = await self._require_wallet(user_id)

            balance = await self._fresh_balance(user_id, offer.currency)
            if balance < total:
                shortfall = total - balance
                raise InsufficientFunds(
                    f"Insufficient {offer.currency} balance. {pending.quantity} x {offer.category} "
                    f"costs {total} {offer.currency} but you have {balance} {offer.currency}.",
                    shortfall=shortfall,
                )
        except FlowError as e:
            logger.info(f"Ticket pre-flight failed for user {user_id}: {e.kind.value}: {e.message}")
            return TicketOutcome(**self._failure_fields(e), **base)

        logger.info(
            f"Purchasing tickets: user={user_id} {pending.quantity} x {offer.category} "
            f"for '{offer.event_name}' ({total} {offer.currency})"
        )
        try:
            receipt = await self._call(
                self.minting_backend.purchase_ticket(user_id, wallet.address, offer.offer_id, pending.quantity),
                "purchase_ticket",
                recoverable=False,
                passthrough=(SoldOutError,)
            )
        except SoldOutError:
            logger.info(f"Offer {offer.offer_id} sold out before user {user_id} could buy")
            error = UnsupportedOperation(
                f"Not enough {offer.category} tickets left for {offer.event_name}. Please choose again."
            )
            return TicketOutcome(**self._failure_fields(error), **base)
        except FlowError as e:
            logger.error(f"Ticket purchase failed for user {user_id}: {e.message}")
            return TicketOutcome(**self._failure_fields(e, prefix="Purchase failed: "), **base)

        viewer_link = self._viewer_link(receipt)
        logger.info(f"Tickets purchased for user {user_id}: {receipt.reference_id}")
        self._record("record_ticket_purchase", user_id, wallet.address, pending, receipt.reference_id)

        return TicketOutcome(
            success=True,
            message=(
                f"🎟 Purchased {pending.quantity} x {offer.category} for {offer.event_name} "
                f"({total} {offer.currency})\n\n"
                f"Transaction: {receipt.reference_id}\n{viewer_link}"
            ),
            reference_id=receipt.reference_id,
            viewer_link=viewer_link,
            **base
        )
