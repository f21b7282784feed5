"""
FastAPI dependency injection.

Provides shared dependencies for API routes.
"""

from typing import Optional
import logging

from chainflow.core.config_loader import load_config
from chainflow.core.dispatcher import Dispatcher
from chainflow.core.engine import build_dispatcher, load_backend
from chainflow.core.logger import setup_logger_from_config
from chainflow.core.models import initialize_database
from chainflow.services.evm_wallet_backend import EvmWalletBackend
from chainflow.services.history_service import HistoryService
from chainflow.services.user_wallet_service import UserWalletService

logger = logging.getLogger(__name__)


# Global instances (initialized on startup)
_config: Optional[dict] = None
_dispatcher: Optional[Dispatcher] = None
_user_wallet_service: Optional[UserWalletService] = None
_history_service: Optional[HistoryService] = None


def initialize_services(config: Optional[dict] = None):
    """
    Initialize all services on application startup.

    This should be called once when the FastAPI app starts.

    Args:
        config: Configuration dictionary (loaded from config/config.yaml when omitted)
    """
    global _config, _dispatcher, _user_wallet_service, _history_service

    _config = config or load_config()
    setup_logger_from_config(_config)
    logger.info("Configuration loaded")

    database = initialize_database(_config)

    _user_wallet_service = UserWalletService(database=database)
    _history_service = HistoryService(database=database)
    wallet_backend = EvmWalletBackend.from_config(_config, _user_wallet_service)

    backends = _config.get('backends', {})
    _dispatcher = build_dispatcher(
        _config,
        directory=_user_wallet_service,
        wallet_backend=wallet_backend,
        quote_backend=load_backend(backends.get('quote'), _config),
        minting_backend=load_backend(backends.get('minting'), _config),
        history=_history_service,
    )

    logger.info("All services initialized successfully")


def get_config() -> dict:
    """Get application configuration."""
    if _config is None:
        raise RuntimeError("Services not initialized. Call initialize_services() first.")
    return _config


def get_dispatcher() -> Dispatcher:
    """Get conversation dispatcher instance."""
    if _dispatcher is None:
        raise RuntimeError("Services not initialized. Call initialize_services() first.")
    return _dispatcher


def get_user_wallet_service() -> UserWalletService:
    """Get user wallet service instance."""
    if _user_wallet_service is None:
        raise RuntimeError("Services not initialized. Call initialize_services() first.")
    return _user_wallet_service


def get_history_service() -> HistoryService:
    """Get history service instance."""
    if _history_service is None:
        raise RuntimeError("Services not initialized. Call initialize_services() first.")
    return _history_service
