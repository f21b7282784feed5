"""
Out-of-band notifications delivered as Telegram messages.
"""

import logging
from typing import Any, Dict

from telegram import Bot

from chainflow.services.capabilities import Notifier

logger = logging.getLogger(__name__)


def format_notification(payload: Dict[str, Any]) -> str:
    """Render a notification payload as message text."""
    if payload.get("type") == "transfer_received":
        lines = [
            "💰 You received a transfer!",
            "",
            f"Amount: {payload.get('amount')} {payload.get('asset_symbol')}",
        ]
        if payload.get("from_user_id") is not None:
            lines.append(f"From user: {payload['from_user_id']}")
        if payload.get("reference_id"):
            lines.append(f"Transaction: {payload['reference_id']}")
        if payload.get("viewer_link"):
            lines.append(payload["viewer_link"])
        return "\n".join(lines)

    return payload.get("message") or str(payload)


class TelegramNotifier(Notifier):
    """Sends notification payloads to a user's private chat."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def notify_user(self, user_id: int, payload: Dict[str, Any]):
        # Private chat id equals the user id
        await self.bot.send_message(chat_id=user_id, text=format_notification(payload))
        logger.debug(f"Sent {payload.get('type', 'message')} notification to user {user_id}")
