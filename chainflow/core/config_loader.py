"""Configuration loading utilities."""

import copy
import logging
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from chainflow.core.logger import parse_level

logger = logging.getLogger(__name__)

# Defaults for every section the engine reads
DEFAULT_CONFIG = {
    'session': {
        'idle_timeout_seconds': 0,  # 0 means sessions never expire
        'serialize_per_user': True,
        'sweep_interval_seconds': 60,  # expired-session sweep job of the Telegram adapter
    },
    'pagination': {
        'asset_page_size': 1,
        'offer_page_size': 3,
    },
    'trading': {
        'native_symbol': 'SOL',
        'default_amount': '0.1',
        'default_slippage_bps': 100,
        'min_slippage_bps': 1,
        'max_slippage_bps': 5000,
        'slippage_presets': [50, 100, 300],
        'native_fee_buffer': '0.01',
        'assets': {
            'SOL': {'address': 'So11111111111111111111111111111111111111112', 'decimals': 9},
            'USDC': {'address': 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v', 'decimals': 6},
            'USDT': {'address': 'Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB', 'decimals': 6},
        },
        'aliases': {
            'WSOL': 'SOL',
        },
    },
    'transfer': {
        'address_format': 'evm',
    },
    'external': {
        'timeout_seconds': 20,
    },
    'explorer': {
        'tx_url_template': 'https://bscscan.com/tx/{reference_id}',
    },
    'tickets': {
        'max_per_purchase': 10,
    },
    'admin_user_ids': [],
    'logging': {
        'level': 'INFO',
        'log_dir': None,
        'log_filename': None,
        'rotate_when': 'midnight',
        'backup_count': 30,
    },
    'database': {
        'sqlite_path': 'chainflow.db',
    },
    'evm': {
        'rpc_url': 'https://bsc-dataseed.binance.org',
        'chain_id': 56,
        'native_symbol': 'BNB',
        'native_name': 'BNB',
        'tokens': [],
    },
    # Optional capability backends as dotted paths ("package.module:ClassName")
    'backends': {
        'quote': None,
        'minting': None,
    },
}

VALID_ADDRESS_FORMATS = ['evm', 'solana']


def load_config(path: str = "config/config.yaml") -> dict:
    """
    Load YAML configuration file, merge it over defaults and validate it.

    Args:
        path: Configuration file path (default: config/config.yaml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        ValueError: If configuration file is empty or invalid
    """
    # __file__ is chainflow/core/config_loader.py, project root is 3 levels up
    root_dir = Path(__file__).parent.parent.parent
    env_path = root_dir / '.env'
    if env_path.exists():
        load_dotenv(env_path)
        logger.info(f"Loaded .env file: {env_path}")
    else:
        logger.info("Note: .env file not found, will use system environment variables")

    config_path = Path(path)
    if not config_path.is_absolute():
        config_path = root_dir / path

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file does not exist: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f)

    if not raw:
        raise ValueError(f"Configuration file is empty or has invalid format: {path}")

    return build_config(raw)


def build_config(raw: Optional[dict] = None) -> dict:
    """
    Merge a raw configuration dictionary over the defaults and validate it.

    Args:
        raw: Partial configuration (None for pure defaults)

    Returns:
        Complete, validated configuration dictionary

    Raises:
        ValueError: Configuration validation failed
    """
    config = _merge(copy.deepcopy(DEFAULT_CONFIG), raw or {})
    _validate_session(config['session'])
    _validate_trading(config['trading'])
    _validate_transfer(config['transfer'])
    _validate_logging(config['logging'])

    if config['external'].get('timeout_seconds', 0) <= 0:
        raise ValueError("external.timeout_seconds must be greater than 0")

    if config['pagination'].get('asset_page_size', 0) < 1:
        raise ValueError("pagination.asset_page_size must be >= 1")

    if config['pagination'].get('offer_page_size', 0) < 1:
        raise ValueError("pagination.offer_page_size must be >= 1")

    max_tickets = config['tickets'].get('max_per_purchase', 0)
    if not isinstance(max_tickets, int) or max_tickets < 1:
        raise ValueError(f"tickets.max_per_purchase must be a positive integer, current value: {max_tickets}")

    if '{reference_id}' not in config['explorer'].get('tx_url_template', ''):
        raise ValueError("explorer.tx_url_template must contain '{reference_id}'")

    config['admin_user_ids'] = [int(uid) for uid in config.get('admin_user_ids') or []]
    return config


def _merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base (dicts merge, everything else replaces)."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(base[key], value)
        else:
            base[key] = value
    return base


def _validate_session(session: dict):
    timeout = session.get('idle_timeout_seconds', 0)
    if not isinstance(timeout, (int, float)) or timeout < 0:
        raise ValueError(
            f"session.idle_timeout_seconds must be a non-negative number, current value: {timeout}"
        )

    interval = session.get('sweep_interval_seconds', 60)
    if not isinstance(interval, (int, float)) or interval <= 0:
        raise ValueError(f"session.sweep_interval_seconds must be greater than 0, current value: {interval}")


def _validate_trading(trading: dict):
    """
    Validate trading configuration.

    Args:
        trading: ``trading`` section

    Raises:
        ValueError: Configuration validation failed
    """
    assets = trading.get('assets') or {}
    if not assets:
        raise ValueError("trading.assets must define at least one asset")

    for symbol, asset in assets.items():
        if not isinstance(asset, dict) or 'address' not in asset or 'decimals' not in asset:
            raise ValueError(f"Trading asset '{symbol}' must specify 'address' and 'decimals'")

    native = trading.get('native_symbol')
    if native not in assets:
        raise ValueError(f"trading.native_symbol '{native}' is not listed in trading.assets")

    for alias, target in (trading.get('aliases') or {}).items():
        if target not in assets:
            raise ValueError(f"Trading alias '{alias}' points to unknown asset '{target}'")

    low = trading.get('min_slippage_bps', 1)
    high = trading.get('max_slippage_bps', 5000)
    default = trading.get('default_slippage_bps', 100)
    if not (0 < low <= default <= high):
        raise ValueError(
            f"Slippage bounds must satisfy 0 < min ({low}) <= default ({default}) <= max ({high})"
        )

    for preset in trading.get('slippage_presets') or []:
        if not (low <= preset <= high):
            raise ValueError(f"Slippage preset {preset} is outside [{low}, {high}]")


def _validate_transfer(transfer: dict):
    address_format = transfer.get('address_format')
    if address_format not in VALID_ADDRESS_FORMATS:
        raise ValueError(
            f"transfer.address_format must be one of {VALID_ADDRESS_FORMATS}, current value: {address_format}"
        )


def _validate_logging(log_config: dict):
    parse_level(log_config.get('level', 'INFO'))

    backup_count = log_config.get('backup_count', 30)
    if not isinstance(backup_count, int) or backup_count < 0:
        raise ValueError(f"logging.backup_count must be a non-negative integer, current value: {backup_count}")
