"""Operation history backed by the TransferRecord model."""

import logging
from typing import List

from chainflow.core.flows import PendingTicketPurchase, PendingTrade, PendingTransfer
from chainflow.models.transfer_record import TransferRecord

logger = logging.getLogger(__name__)


class HistoryService:
    """Records executed operations and lists them per user."""

    def __init__(self, database=None):
        self.database = database

    def record_transfer(
        self,
        user_id: int,
        from_address: str,
        pending: PendingTransfer,
        reference_id: str
    ) -> TransferRecord:
        record = TransferRecord.create(
            telegram_user_id=user_id,
            kind="p2p" if pending.recipient_identity else "transfer",
            from_address=from_address,
            to_address=pending.recipient_address,
            recipient_user_id=pending.recipient_user_id,
            asset_symbol=pending.asset.symbol,
            amount=pending.amount,
            reference_id=reference_id,
        )
        logger.debug(f"Recorded {record.kind} {reference_id} for user {user_id}")
        return record

    def record_trade(
        self,
        user_id: int,
        from_address: str,
        pending: PendingTrade,
        reference_id: str
    ) -> TransferRecord:
        record = TransferRecord.create(
            telegram_user_id=user_id,
            kind="trade",
            from_address=from_address,
            asset_symbol=pending.input_asset.symbol,
            output_symbol=pending.output_asset.symbol,
            amount=pending.amount,
            reference_id=reference_id,
        )
        logger.debug(f"Recorded trade {reference_id} for user {user_id}")
        return record

    def record_ticket_purchase(
        self,
        user_id: int,
        from_address: str,
        pending: PendingTicketPurchase,
        reference_id: str
    ) -> TransferRecord:
        record = TransferRecord.create(
            telegram_user_id=user_id,
            kind="ticket",
            from_address=from_address,
            asset_symbol=pending.offer.currency,
            output_symbol=pending.offer.category,
            amount=pending.total_price,
            reference_id=reference_id,
        )
        logger.debug(f"Recorded ticket purchase {reference_id} for user {user_id}")
        return record

    def list_for_user(self, user_id: int, limit: int = 20) -> List[TransferRecord]:
        """
        Most recent operations sent or received by a user.

        Args:
            user_id: Bot user ID
            limit: Maximum records returned

        Returns:
            Records, newest first
        """
        query = (
            TransferRecord
            .select()
            .where(
                (TransferRecord.telegram_user_id == user_id)
                | (TransferRecord.recipient_user_id == user_id)
            )
            .order_by(TransferRecord.created_at.desc(), TransferRecord.id.desc())
            .limit(limit)
        )
        return list(query)
