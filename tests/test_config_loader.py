"""
Configuration defaults, validation and engine settings.
"""

from decimal import Decimal

import pytest

from chainflow.core.config_loader import build_config, load_config
from chainflow.core.settings import EngineSettings


def test_defaults_are_complete():
    config = build_config()

    assert config['pagination']['asset_page_size'] == 1
    assert config['trading']['default_slippage_bps'] == 100
    assert config['backends'] == {'quote': None, 'minting': None}
    assert config['tickets']['max_per_purchase'] == 10
    assert config['session']['sweep_interval_seconds'] == 60


def test_overrides_merge_into_defaults():
    config = build_config({'trading': {'default_slippage_bps': 50}, 'admin_user_ids': ['7']})

    assert config['trading']['default_slippage_bps'] == 50
    assert config['trading']['native_symbol'] == 'SOL'
    assert config['admin_user_ids'] == [7]


@pytest.mark.parametrize("raw", [
    {'session': {'idle_timeout_seconds': -1}},
    {'pagination': {'asset_page_size': 0}},
    {'pagination': {'offer_page_size': 0}},
    {'session': {'sweep_interval_seconds': 0}},
    {'tickets': {'max_per_purchase': 0}},
    {'tickets': {'max_per_purchase': '5'}},
    {'logging': {'level': 'loud'}},
    {'logging': {'backup_count': -1}},
    {'transfer': {'address_format': 'bitcoin'}},
    {'external': {'timeout_seconds': 0}},
    {'explorer': {'tx_url_template': 'https://scan/tx/'}},
    {'trading': {'native_symbol': 'ETH'}},
    {'trading': {'default_slippage_bps': 9000}},
    {'trading': {'slippage_presets': [0]}},
    {'trading': {'aliases': {'WETH': 'ETH'}}},
    {'trading': {'assets': {'BONK': {'address': 'x'}}}},
])
def test_invalid_configuration_is_rejected(raw):
    with pytest.raises(ValueError):
        build_config(raw)


def test_load_config_reads_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("pagination:\n  asset_page_size: 5\n", encoding="utf-8")

    config = load_config(str(path))

    assert config['pagination']['asset_page_size'] == 5


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.yaml"))


def test_engine_settings_from_config():
    settings = EngineSettings.from_config(build_config({
        'trading': {'aliases': {'wsol': 'SOL'}},
        'admin_user_ids': [1],
    }))

    assert settings.default_trade_amount == Decimal("0.1")
    assert settings.max_tickets_per_purchase == 10
    assert settings.offer_page_size == 3
    assert settings.native_fee_buffer == Decimal("0.01")
    assert settings.resolve_trade_asset("wsol").symbol == "SOL"
    assert settings.resolve_trade_asset("usdc").decimals == 6
    assert settings.resolve_trade_asset("DOGE") is None
    assert settings.viewer_link("0xabc") == "https://bscscan.com/tx/0xabc"
    assert settings.is_admin(1)
    assert not settings.is_admin(2)

    sol = settings.resolve_trade_asset("SOL")
    usdc = settings.resolve_trade_asset("USDC")
    assert settings.balance_key(sol) == "SOL"
    assert settings.balance_key(usdc) == usdc.address
