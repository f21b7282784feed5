"""
User wallet association model for bot users.

Maps bot user IDs (and their last known @username) to EVM wallet
credentials. Private keys are stored in plaintext; access controls on the
database are the security boundary.
"""

from datetime import datetime
from peewee import Model, BigIntegerField, CharField, DateTimeField
from chainflow.core.models import db


class UserWallet(Model):
    """One wallet per bot user."""

    telegram_user_id = BigIntegerField(primary_key=True)
    """Bot user ID (64-bit integer). Primary key: one wallet per user."""

    username = CharField(max_length=64, null=True, index=True)
    """
    Last known @username, stored lower-case without the '@'.
    Used to resolve peer transfer recipients.
    """

    wallet_address = CharField(max_length=42, unique=True, index=True)
    """Wallet address in checksum format (0x + 40 hex chars)."""

    private_key = CharField(max_length=66)
    """Private key (0x + 64 hex chars). Never indexed, never logged."""

    created_at = DateTimeField(default=datetime.now)
    updated_at = DateTimeField(default=datetime.now)

    class Meta:
        database = db
        table_name = 'user_wallets'

    @property
    def display_name(self) -> str:
        return f"@{self.username}" if self.username else f"user {self.telegram_user_id}"

    def save(self, *args, **kwargs):
        """Override save to update updated_at timestamp."""
        self.updated_at = datetime.now()
        return super().save(*args, **kwargs)
