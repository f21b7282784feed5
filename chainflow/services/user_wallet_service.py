"""
Service for managing user wallet associations.

Links bot users to EVM wallets and resolves directory identities
(``@username`` or numeric user id) to wallet addresses. Implements the
IdentityDirectory capability consumed by the conversation engine.
"""

import logging
import re
from typing import Optional

from web3 import Web3
from eth_account import Account
from peewee import DoesNotExist, fn

from chainflow.models.user_wallet import UserWallet
from chainflow.services.capabilities import IdentityDirectory, IdentityResolution, WalletRecord

logger = logging.getLogger(__name__)

_HEX_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class UserWalletService(IdentityDirectory):
    """
    Service for managing user wallet associations.

    Synchronous CRUD methods are used by scripts and the HTTP surface; the
    async capability methods wrap them for the conversation engine.
    """

    def __init__(self, database=None):
        """
        Initialize the service with database connection.

        Args:
            database: Peewee Database instance (PostgreSQL or SQLite).
                     If None, uses the default database from models.
        """
        self.database = database

    # ---- CRUD ----

    def import_user_wallet(
        self,
        telegram_user_id: int,
        private_key: str,
        username: Optional[str] = None
    ) -> UserWallet:
        """
        Attach the wallet derived from ``private_key`` to a user.

        An existing wallet of the same user is replaced.

        Args:
            telegram_user_id: Bot user ID
            private_key: Private key, with or without 0x prefix
            username: Optional @username to store for peer lookups

        Returns:
            UserWallet: Created or updated record

        Raises:
            ValueError: Invalid key, or the wallet belongs to another user

        Example:
            >>> service = UserWalletService(database)
            >>> wallet = service.import_user_wallet(123456789, "0x" + "a" * 64)
            >>> assert wallet.telegram_user_id == 123456789
        """
        normalized = self._normalize_private_key(private_key)
        is_valid, derived_address = self._validate_private_key(normalized)
        if not is_valid:
            logger.warning("Invalid private key format", extra={"telegram_user_id": telegram_user_id})
            raise ValueError("Invalid private key")

        owner = self.get_user_wallet_by_address(derived_address)
        if owner is not None and owner.telegram_user_id != telegram_user_id:
            logger.warning(
                "Wallet address already registered",
                extra={"telegram_user_id": telegram_user_id, "wallet_address": derived_address}
            )
            raise ValueError("Wallet address already registered to another user")

        wallet = self.get_user_wallet(telegram_user_id)
        if wallet is None:
            wallet = UserWallet(telegram_user_id=telegram_user_id)
            created = True
        else:
            created = False

        wallet.wallet_address = derived_address
        wallet.private_key = normalized
        if username:
            wallet.username = self._normalize_username(username)
        wallet.save(force_insert=created)

        logger.info(
            f"{'Created' if created else 'Replaced'} wallet for user {telegram_user_id}: {derived_address}"
        )
        return wallet

    def get_user_wallet(self, telegram_user_id: int) -> Optional[UserWallet]:
        """
        Retrieve user wallet by bot user ID.

        Returns:
            UserWallet if found, None if user has no wallet.
        """
        try:
            return UserWallet.get(UserWallet.telegram_user_id == telegram_user_id)
        except DoesNotExist:
            return None

    def get_user_wallet_by_address(self, wallet_address: str) -> Optional[UserWallet]:
        """Retrieve user wallet by address (reverse lookup)."""
        try:
            # Normalize to checksum address for case-insensitive comparison
            checksum_address = Web3.to_checksum_address(wallet_address)
            return UserWallet.get(UserWallet.wallet_address == checksum_address)
        except (DoesNotExist, ValueError):
            # ValueError can be raised by to_checksum_address if invalid format
            return None

    def get_user_wallet_by_username(self, username: str) -> Optional[UserWallet]:
        """Retrieve user wallet by @username (case-insensitive, '@' optional)."""
        normalized = self._normalize_username(username)
        if not normalized:
            return None
        try:
            return UserWallet.get(fn.LOWER(UserWallet.username) == normalized)
        except DoesNotExist:
            return None

    def sync_username(self, telegram_user_id: int, username: Optional[str]) -> bool:
        """
        Store the latest @username of a user who has a wallet.

        Returns:
            True if the stored username changed
        """
        normalized = self._normalize_username(username) if username else None
        wallet = self.get_user_wallet(telegram_user_id)
        if wallet is None or wallet.username == normalized:
            return False

        wallet.username = normalized
        wallet.save()
        logger.debug(f"Updated username for user {telegram_user_id}")
        return True

    def get_signing_key(self, wallet_address: str) -> Optional[str]:
        """Private key of a registered wallet, for execution backends only."""
        wallet = self.get_user_wallet_by_address(wallet_address)
        return wallet.private_key if wallet else None

    def delete_user_wallet(self, telegram_user_id: int) -> bool:
        """
        Delete user wallet (admin operation).

        Returns:
            True if wallet was deleted, False if wallet didn't exist.
        """
        wallet = self.get_user_wallet(telegram_user_id)
        if wallet is None:
            return False

        wallet.delete_instance()
        logger.warning(f"Deleted wallet of user {telegram_user_id}: {wallet.wallet_address}")
        return True

    def wallet_exists(self, telegram_user_id: int) -> bool:
        return UserWallet.select().where(
            UserWallet.telegram_user_id == telegram_user_id
        ).exists()

    # ---- IdentityDirectory ----

    async def resolve_identity(self, identifier: str) -> IdentityResolution:
        text = (identifier or "").strip()
        if text.isdigit():
            wallet = self.get_user_wallet(int(text))
        else:
            wallet = self.get_user_wallet_by_username(text)

        if wallet is None:
            return IdentityResolution(
                found=False,
                error=f"User {text} was not found. They need to import a wallet first.",
            )

        return IdentityResolution(
            found=True,
            address=wallet.wallet_address,
            user_id=wallet.telegram_user_id,
            display_name=wallet.display_name,
        )

    async def get_wallet(self, user_id: int) -> Optional[WalletRecord]:
        wallet = self.get_user_wallet(user_id)
        if wallet is None:
            return None
        return self._to_record(wallet)

    async def import_wallet(self, user_id: int, secret: str) -> WalletRecord:
        return self._to_record(self.import_user_wallet(user_id, secret))

    # ---- helpers ----

    @staticmethod
    def _to_record(wallet: UserWallet) -> WalletRecord:
        return WalletRecord(
            user_id=wallet.telegram_user_id,
            address=wallet.wallet_address,
            signing_handle=str(wallet.telegram_user_id),
        )

    @staticmethod
    def _normalize_username(username: str) -> str:
        return (username or "").strip().lstrip("@").lower()

    @staticmethod
    def _normalize_private_key(private_key: str) -> str:
        key = (private_key or "").strip()
        if _HEX_KEY_RE.match(key) and not key.startswith("0x"):
            key = "0x" + key
        return key

    @staticmethod
    def _validate_private_key(private_key: str) -> tuple:
        """
        Validate private key format and derive address.

        Args:
            private_key: Private key to validate

        Returns:
            Tuple of (is_valid, derived_address or None)
        """
        if not private_key or len(private_key) != 66:
            return False, None
        if not private_key.startswith('0x'):
            return False, None
        try:
            # Attempt to create account from private key
            account = Account.from_key(private_key)
            return True, account.address
        except Exception:
            return False, None
