"""History of executed transfers, trades and ticket purchases."""

from datetime import datetime
from peewee import Model, AutoField, BigIntegerField, CharField, DecimalField, DateTimeField
from chainflow.core.models import db


class TransferRecord(Model):
    """One executed transfer, peer transfer, trade or ticket purchase."""

    id = AutoField()
    telegram_user_id = BigIntegerField(index=True)
    kind = CharField(max_length=16)
    """'transfer', 'p2p', 'trade' or 'ticket'."""

    from_address = CharField(max_length=64)
    to_address = CharField(max_length=64, null=True)
    recipient_user_id = BigIntegerField(null=True, index=True)
    asset_symbol = CharField(max_length=64)
    """Asset sent, or the currency a ticket was paid in."""

    output_symbol = CharField(max_length=32, null=True)
    """Output asset of a trade, or the category of a ticket."""

    amount = DecimalField(max_digits=36, decimal_places=18)
    reference_id = CharField(max_length=255, index=True)
    created_at = DateTimeField(default=datetime.now, index=True)

    class Meta:
        database = db
        table_name = 'transfer_records'
