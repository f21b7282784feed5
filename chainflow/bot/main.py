"""
Telegram Bot application entry point.

Run with: python -m chainflow.bot.main
"""

import logging
import os
from telegram import Update
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters
)

from chainflow.core.config_loader import load_config
from chainflow.core.engine import build_dispatcher, load_backend
from chainflow.core.logger import setup_logger_from_config
from chainflow.core.models import initialize_database
from chainflow.services.evm_wallet_backend import EvmWalletBackend
from chainflow.services.history_service import HistoryService
from chainflow.services.user_wallet_service import UserWalletService
from chainflow.bot.handlers.conversation_handler import (
    callback_handler,
    command_handler,
    text_handler
)
from chainflow.bot.notifier import TelegramNotifier

logger = logging.getLogger(__name__)

# Handled by the dispatcher itself rather than by a workflow
BUILTIN_COMMANDS = ("start", "menu", "help", "cancel")


async def sweep_sessions(context: ContextTypes.DEFAULT_TYPE):
    """Job queue callback dropping expired sessions."""
    context.bot_data['dispatcher'].sweep_sessions()


def schedule_session_sweep(application: Application, config: dict):
    """
    Run ``sweep_sessions`` every ``session.sweep_interval_seconds``.

    Nothing is scheduled when sessions never expire.

    Returns:
        The repeating Job, or None
    """
    session = config['session']
    if not session.get('idle_timeout_seconds'):
        logger.info("Sessions never expire, no sweep job scheduled")
        return None

    if application.job_queue is None:
        raise RuntimeError("Session expiry needs the job queue: install python-telegram-bot[job-queue]")

    interval = session['sweep_interval_seconds']
    job = application.job_queue.run_repeating(sweep_sessions, interval=interval, first=interval, name="session_sweep")
    logger.info(f"Scheduled session sweep every {interval}s")
    return job


def main():
    """Run the Telegram bot."""
    try:
        # Load configuration
        config = load_config()
        setup_logger_from_config(config)

        # Get Telegram bot token from environment
        bot_token = os.environ.get("TELEGRAM_BOT_TOKEN")
        if not bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN environment variable not set")

        # Initialize database
        database = initialize_database(config)

        # Initialize services
        user_wallet_service = UserWalletService(database=database)
        history_service = HistoryService(database=database)
        wallet_backend = EvmWalletBackend.from_config(config, user_wallet_service)

        # Create application
        application = Application.builder().token(bot_token).build()

        backends = config.get('backends', {})
        dispatcher = build_dispatcher(
            config,
            directory=user_wallet_service,
            wallet_backend=wallet_backend,
            quote_backend=load_backend(backends.get('quote'), config),
            minting_backend=load_backend(backends.get('minting'), config),
            notifier=TelegramNotifier(application.bot),
            history=history_service,
        )

        # Store services in bot_data
        application.bot_data['user_wallet_service'] = user_wallet_service
        application.bot_data['history_service'] = history_service
        application.bot_data['dispatcher'] = dispatcher
        application.bot_data['config'] = config

        schedule_session_sweep(application, config)

        # Add command handlers
        commands = list(BUILTIN_COMMANDS) + dispatcher.state_machine.command_names()
        application.add_handler(CommandHandler(commands, command_handler))

        # Add callback query handler (for all inline keyboard buttons)
        application.add_handler(CallbackQueryHandler(callback_handler))

        # Free-text replies (amounts, addresses, private keys, wizard fields)
        application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_handler))

        # Start bot
        logger.info(f"Starting Telegram bot with commands: {', '.join(commands)}")
        application.run_polling(allowed_updates=Update.ALL_TYPES)

    except Exception as e:
        logger.error(f"Failed to start Telegram bot: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
