"""
Engine assembly.

Builds the session store, pagination cache, orchestrator, state machine and
dispatcher from configuration plus the capability implementations supplied
by the host (Telegram bot, HTTP API or tests).
"""

import importlib
import logging
from typing import Optional

from chainflow.core.dispatcher import Dispatcher
from chainflow.core.in_memory_session_store import InMemorySessionStore, expiry_policy_from_config
from chainflow.core.pagination_cache import PaginationCache
from chainflow.core.session_store import SessionStore
from chainflow.core.settings import EngineSettings
from chainflow.core.state_machine import WorkflowStateMachine
from chainflow.core.workflows import WorkflowContext
from chainflow.services.capabilities import (
    IdentityDirectory, MintingBackend, Notifier, QuoteBackend, WalletBackend
)
from chainflow.services.transaction_service import TransactionOrchestrator

logger = logging.getLogger(__name__)


def load_backend(dotted_path: Optional[str], config: dict):
    """
    Instantiate an optional backend from ``"package.module:ClassName"``.

    The class is built with ``from_config(config)`` when it defines one,
    otherwise with no arguments.

    Returns:
        Backend instance, or None when no path is configured

    Raises:
        ValueError: Malformed path or missing class
    """
    if not dotted_path:
        return None

    module_name, sep, class_name = dotted_path.partition(":")
    if not sep or not module_name or not class_name:
        raise ValueError(f"Backend path must look like 'package.module:ClassName', got: {dotted_path}")

    module = importlib.import_module(module_name)
    try:
        backend_class = getattr(module, class_name)
    except AttributeError:
        raise ValueError(f"Backend class '{class_name}' not found in module '{module_name}'")

    if hasattr(backend_class, "from_config"):
        backend = backend_class.from_config(config)
    else:
        backend = backend_class()
    logger.info(f"Loaded backend {dotted_path}")
    return backend


def build_dispatcher(
    config: dict,
    directory: IdentityDirectory,
    wallet_backend: WalletBackend,
    quote_backend: Optional[QuoteBackend] = None,
    minting_backend: Optional[MintingBackend] = None,
    notifier: Optional[Notifier] = None,
    history=None,
    store: Optional[SessionStore] = None
) -> Dispatcher:
    """
    Assemble a ready-to-use dispatcher.

    Args:
        config: Configuration dictionary (load_config/build_config output)
        directory: User/wallet directory
        wallet_backend: Balance/transfer backend
        quote_backend: Optional quote/swap backend
        minting_backend: Optional event/asset minting backend
        notifier: Optional out-of-band notifier
        history: Optional HistoryService
        store: Session store (default: in-memory store with the configured expiry policy)

    Returns:
        Dispatcher
    """
    settings = EngineSettings.from_config(config)

    if store is None:
        store = InMemorySessionStore(expiry_policy=expiry_policy_from_config(config))

    if not settings.admin_user_ids:
        logger.warning("No admin_user_ids configured: creation wizards are open to every user")

    orchestrator = TransactionOrchestrator(
        wallet_backend=wallet_backend,
        directory=directory,
        settings=settings,
        quote_backend=quote_backend,
        minting_backend=minting_backend,
        notifier=notifier,
        history=history,
    )
    context = WorkflowContext(
        settings=settings,
        cache=PaginationCache(store),
        directory=directory,
        wallet_backend=wallet_backend,
        orchestrator=orchestrator,
    )

    logger.info(
        f"Engine ready (trading={'on' if orchestrator.supports_trading else 'off'}, "
        f"minting={'on' if orchestrator.supports_minting else 'off'})"
    )
    return Dispatcher(store, WorkflowStateMachine(context), serialize_per_user=settings.serialize_per_user)
