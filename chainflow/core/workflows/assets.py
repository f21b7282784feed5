"""Cached, paged asset list shared by the browse and transfer flows."""

import logging
from typing import List, Optional, Tuple

from chainflow.core import action_tokens
from chainflow.core.errors import InvalidAction, SessionExpired, UnsupportedOperation, ValidationError
from chainflow.core.external import call_external
from chainflow.core.results import Prompt, QuickAction
from chainflow.core.utils.pagination import PaginationHelper
from chainflow.core.workflows.base import WorkflowContext
from chainflow.services.capabilities import AssetInfo, WalletRecord

logger = logging.getLogger(__name__)

ASSETS_CACHE_KEY = "assets"


def format_asset(asset: AssetInfo) -> str:
    lines = [
        f"{asset.symbol} ({asset.name})",
        f"Balance: {asset.balance} {asset.symbol}",
    ]
    if asset.price_usd is not None:
        lines.append(f"Price: ${asset.price_usd:,.4f}")
    if asset.address:
        lines.append(f"Contract: {asset.address}")
    return "\n".join(lines)


class AssetPager:
    """Fetch-once asset list of the user's wallet, browsed one page at a time."""

    def __init__(self, context: WorkflowContext):
        self.context = context

    @property
    def page_size(self) -> int:
        return self.context.settings.asset_page_size

    async def load(self, user_id: int, wallet: WalletRecord) -> Tuple[AssetInfo, ...]:
        """
        Get the cached asset list, fetching it for a new or changed wallet.

        Raises:
            UnsupportedOperation: If the wallet holds no assets
            ExternalFailure: If the listing call fails or times out
        """
        async def fetch():
            logger.info(f"Fetching assets for user {user_id}")
            return await call_external(
                self.context.wallet_backend.list_assets(user_id),
                "list_assets",
                self.context.settings.external_timeout_seconds
            )

        assets = await self.context.cache.get_or_fetch(
            user_id, ASSETS_CACHE_KEY, fetch, owner=wallet.address
        )
        if not assets:
            raise UnsupportedOperation("No assets found in your wallet.")
        return assets

    def invalidate(self, user_id: int):
        self.context.cache.invalidate(user_id, ASSETS_CACHE_KEY)

    def render(
        self,
        user_id: int,
        page_number: int,
        title: str,
        select_label: Optional[str] = None,
        extra_rows: Optional[List[List[QuickAction]]] = None
    ) -> Prompt:
        """
        Render one page of the cached asset list.

        Args:
            user_id: Owner of the cache
            page_number: Requested page (clamped)
            title: Heading line
            select_label: When set, each asset gets a selection button
                labelled ``f"{select_label} {symbol}"``
            extra_rows: Rows appended below navigation

        Raises:
            SessionExpired: If the asset list is no longer cached
        """
        paginated = self.context.cache.page(user_id, ASSETS_CACHE_KEY, page_number, self.page_size)

        body = "\n\n".join(format_asset(asset) for asset in paginated.items)
        message = f"{title}\n\n{body}" if body else title

        rows = []
        if select_label:
            for offset, asset in enumerate(paginated.items):
                index = paginated.start_index + offset
                rows.append([QuickAction(f"{select_label} {asset.symbol}", action_tokens.build("asset", index))])
        rows.extend(extra_rows or [])

        return Prompt(
            message=message,
            actions=PaginationHelper.navigation_actions(paginated, rows),
            page=paginated.to_page_info(),
        )

    def current_page(self, user_id: int) -> int:
        return self.context.cache.current_page(user_id, ASSETS_CACHE_KEY)

    def _cached_items(self, user_id: int) -> Tuple[AssetInfo, ...]:
        cached = self.context.cache.get_cached(user_id, ASSETS_CACHE_KEY)
        if cached is None:
            raise SessionExpired("This asset list has expired. Please start again.")
        return cached.items

    def select(self, user_id: int, index: int) -> AssetInfo:
        """
        Pick an asset by its position in the cached list.

        Raises:
            SessionExpired: Nothing cached
            InvalidAction: Index out of range
        """
        items = self._cached_items(user_id)
        if not 0 <= index < len(items):
            raise InvalidAction()
        return items[index]

    def find_by_symbol(self, user_id: int, text: str) -> AssetInfo:
        """
        Pick an asset by symbol or contract address typed by the user.

        Raises:
            ValidationError: No asset, or more than one, matches
        """
        needle = (text or "").strip().lower()
        items = self._cached_items(user_id)
        matches = [
            asset for asset in items
            if asset.symbol.lower() == needle or (asset.address and asset.address.lower() == needle)
        ]
        if len(matches) != 1:
            raise ValidationError("Unknown asset. Use the buttons or send the asset symbol.")
        return matches[0]
