"""
Conversation handlers for Telegram bot.

Every command, button press and text reply is forwarded to the engine's
dispatcher; the returned Prompt or Outcome is rendered as a message with
an inline keyboard.
"""

import logging
from telegram import Update
from telegram.error import BadRequest, TelegramError
from telegram.ext import ContextTypes

from chainflow.core.dispatcher import Dispatcher
from chainflow.core.results import Effect, Result
from chainflow.services.user_wallet_service import UserWalletService
from chainflow.bot.keyboards import build_inline_keyboard

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = "⚠️ Service temporarily unavailable. Try again later."


def _sync_username(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user_wallet_service: UserWalletService = context.bot_data.get('user_wallet_service')
    user = update.effective_user
    if not user_wallet_service or user is None:
        return
    try:
        user_wallet_service.sync_username(user.id, user.username)
    except Exception as e:
        logger.warning(f"Failed to sync username for user {user.id}: {e}")


async def _delete_user_message(update: Update, result: Result):
    """Remove the user's message when the result asks for it (private keys)."""
    if Effect.DELETE_USER_MESSAGE not in result.effects or update.message is None:
        return
    try:
        await update.message.delete()
    except TelegramError as e:
        logger.warning(f"Could not delete message from user {update.effective_user.id}: {e}")


async def _reply(update: Update, result: Result):
    await update.effective_chat.send_message(
        result.message,
        reply_markup=build_inline_keyboard(result.actions),
        disable_web_page_preview=True
    )


async def command_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Handle any slash command by forwarding it to the dispatcher.

    Args:
        update: Telegram update containing command.
        context: Bot context.
    """
    dispatcher: Dispatcher = context.bot_data.get('dispatcher')
    if not dispatcher:
        await update.message.reply_text(SERVICE_UNAVAILABLE)
        return

    _sync_username(update, context)
    result = await dispatcher.handle_command(update.effective_user.id, update.message.text)
    await _reply(update, result)


async def text_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Handle a free-text message.

    The user's message is deleted before replying when the engine flags it
    as sensitive.
    """
    dispatcher: Dispatcher = context.bot_data.get('dispatcher')
    if not dispatcher:
        await update.message.reply_text(SERVICE_UNAVAILABLE)
        return

    _sync_username(update, context)
    result = await dispatcher.handle_text(update.effective_user.id, update.message.text)
    await _delete_user_message(update, result)
    await _reply(update, result)


async def callback_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """
    Handle callback queries from inline keyboards.

    The callback data is the action token; the message holding the keyboard
    is edited in place with the next screen.
    """
    query = update.callback_query
    await query.answer()

    dispatcher: Dispatcher = context.bot_data.get('dispatcher')
    if not dispatcher:
        await query.edit_message_text(SERVICE_UNAVAILABLE)
        return

    result = await dispatcher.handle_button(update.effective_user.id, query.data or "")
    try:
        await query.edit_message_text(
            result.message,
            reply_markup=build_inline_keyboard(result.actions),
            disable_web_page_preview=True
        )
    except BadRequest as e:
        # Pressing "noop" or refreshing an unchanged screen
        if "not modified" in str(e).lower():
            logger.debug(f"Callback for user {update.effective_user.id} left message unchanged")
            return
        raise
