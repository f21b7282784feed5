"""
Database models for chainflow.

This package contains the wallet directory and transfer history models.
"""

from .user_wallet import UserWallet
from .transfer_record import TransferRecord

ALL_MODELS = [UserWallet, TransferRecord]

__all__ = ["UserWallet", "TransferRecord", "ALL_MODELS"]
