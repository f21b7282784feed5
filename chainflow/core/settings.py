"""Typed engine settings derived from the configuration dictionary."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

from chainflow.core.config_loader import build_config
from chainflow.core.flows import TradeAsset
from chainflow.core.validators import get_address_predicate


@dataclass(frozen=True)
class EngineSettings:
    asset_page_size: int = 1
    offer_page_size: int = 3
    native_symbol: str = "SOL"
    default_trade_amount: Decimal = Decimal("0.1")
    default_slippage_bps: int = 100
    min_slippage_bps: int = 1
    max_slippage_bps: int = 5000
    slippage_presets: Tuple[int, ...] = (50, 100, 300)
    native_fee_buffer: Decimal = Decimal("0.01")
    trade_assets: Dict[str, TradeAsset] = field(default_factory=dict)
    trade_aliases: Dict[str, str] = field(default_factory=dict)
    address_format: str = "evm"
    external_timeout_seconds: float = 20
    tx_url_template: str = "https://bscscan.com/tx/{reference_id}"
    max_tickets_per_purchase: int = 10
    admin_user_ids: Tuple[int, ...] = ()
    serialize_per_user: bool = True

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "EngineSettings":
        """
        Build settings from a configuration dictionary.

        Args:
            config: Output of load_config/build_config (None for defaults)
        """
        if config is None:
            config = build_config()

        trading = config['trading']
        assets = {
            symbol.upper(): TradeAsset(symbol=symbol.upper(), address=asset['address'], decimals=int(asset['decimals']))
            for symbol, asset in trading['assets'].items()
        }
        aliases = {alias.upper(): target.upper() for alias, target in (trading.get('aliases') or {}).items()}

        return cls(
            asset_page_size=int(config['pagination']['asset_page_size']),
            offer_page_size=int(config['pagination']['offer_page_size']),
            native_symbol=trading['native_symbol'].upper(),
            default_trade_amount=Decimal(str(trading['default_amount'])),
            default_slippage_bps=int(trading['default_slippage_bps']),
            min_slippage_bps=int(trading['min_slippage_bps']),
            max_slippage_bps=int(trading['max_slippage_bps']),
            slippage_presets=tuple(int(p) for p in trading.get('slippage_presets') or []),
            native_fee_buffer=Decimal(str(trading['native_fee_buffer'])),
            trade_assets=assets,
            trade_aliases=aliases,
            address_format=config['transfer']['address_format'],
            external_timeout_seconds=float(config['external']['timeout_seconds']),
            tx_url_template=config['explorer']['tx_url_template'],
            max_tickets_per_purchase=int(config['tickets']['max_per_purchase']),
            admin_user_ids=tuple(config.get('admin_user_ids') or ()),
            serialize_per_user=bool(config['session'].get('serialize_per_user', True)),
        )

    @property
    def address_predicate(self) -> Callable[[str], bool]:
        return get_address_predicate(self.address_format)

    def resolve_trade_asset(self, symbol: str) -> Optional[TradeAsset]:
        """Look up a tradable asset by symbol or alias (case-insensitive)."""
        key = (symbol or "").strip().upper()
        key = self.trade_aliases.get(key, key)
        return self.trade_assets.get(key)

    def is_native(self, asset: TradeAsset) -> bool:
        return asset.symbol == self.native_symbol

    def balance_key(self, asset: TradeAsset) -> str:
        """Identifier passed to WalletBackend.get_balance for a trade asset."""
        return asset.symbol if self.is_native(asset) else asset.address

    def viewer_link(self, reference_id: str) -> str:
        return self.tx_url_template.format(reference_id=reference_id)

    def is_admin(self, user_id: int) -> bool:
        """Wizards are open to everyone when no admin ids are configured."""
        return not self.admin_user_ids or user_id in self.admin_user_ids
