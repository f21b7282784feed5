"""
EVM wallet backend.

Balance lookup, asset listing and native/ERC20 transfers over web3.py.
Blocking web3 calls run in the default executor so the engine's timeouts
stay effective.
"""

import asyncio
import logging
import os
from decimal import Decimal
from functools import partial
from typing import Dict, List, Optional

import requests
from web3 import Web3

from chainflow.services.capabilities import AssetInfo, ExecutionReceipt, WalletBackend

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "https://bsc-dataseed.binance.org"
DEFAULT_CHAIN_ID = 56
NATIVE_TRANSFER_GAS = 21000
TOKEN_TRANSFER_GAS = 100000

# ERC20 ABI (balanceOf, decimals and transfer only)
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"}
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function"
    }
]


def init_web3(evm_config: Optional[Dict] = None) -> Web3:
    """
    Initialize Web3 client with proxy and SSL configuration.

    Args:
        evm_config: ``evm`` config section (rpc_url, proxy, verify_ssl)
    """
    evm_config = evm_config or {}
    rpc_url = os.environ.get('EVM_RPC_URL') or evm_config.get('rpc_url', DEFAULT_RPC_URL)
    proxy = evm_config.get('proxy') or os.environ.get('EVM_RPC_PROXY')
    verify_ssl = evm_config.get('verify_ssl', True)

    # Create custom Session with SSL verification settings
    session = requests.Session()
    session.verify = verify_ssl
    if proxy:
        session.proxies = {'http': proxy, 'https': proxy}
        logger.info(f"Using proxy for EVM RPC: {proxy} (SSL verify: {verify_ssl})")

    request_kwargs = {'timeout': 60 if proxy else 30}
    provider = Web3.HTTPProvider(rpc_url, request_kwargs=request_kwargs, session=session)
    return Web3(provider)


class EvmWalletBackend(WalletBackend):
    """WalletBackend for EVM chains (native coin plus configured ERC20 tokens)."""

    def __init__(
        self,
        w3: Web3,
        wallet_service,
        native_symbol: str = "BNB",
        native_name: str = "BNB",
        chain_id: int = DEFAULT_CHAIN_ID,
        tokens: Optional[List[Dict]] = None
    ):
        """
        Initialize backend.

        Args:
            w3: Web3 client
            wallet_service: UserWalletService (address lookup and signing keys)
            native_symbol: Symbol of the chain's native coin
            native_name: Display name of the native coin
            chain_id: Chain ID used when signing
            tokens: ERC20 tokens to list, as dicts with symbol/name/address/decimals
        """
        self.w3 = w3
        self.wallet_service = wallet_service
        self.native_symbol = native_symbol
        self.native_name = native_name
        self.chain_id = chain_id
        self.tokens = [dict(token) for token in (tokens or [])]

    @classmethod
    def from_config(cls, config: dict, wallet_service) -> "EvmWalletBackend":
        evm = config.get('evm', {})
        return cls(
            w3=init_web3(evm),
            wallet_service=wallet_service,
            native_symbol=evm.get('native_symbol', 'BNB'),
            native_name=evm.get('native_name', evm.get('native_symbol', 'BNB')),
            chain_id=int(evm.get('chain_id', DEFAULT_CHAIN_ID)),
            tokens=evm.get('tokens') or [],
        )

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def _address_of(self, user_id: int) -> str:
        wallet = self.wallet_service.get_user_wallet(user_id)
        if wallet is None:
            raise ValueError(f"User {user_id} has no wallet")
        return Web3.to_checksum_address(wallet.wallet_address)

    def _token(self, asset: str) -> Optional[Dict]:
        needle = asset.lower()
        for token in self.tokens:
            if token['symbol'].lower() == needle or token['address'].lower() == needle:
                return token
        return None

    def _contract(self, token_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)

    # ---- balances ----

    def _native_balance(self, address: str) -> Decimal:
        wei = self.w3.eth.get_balance(address)
        return Decimal(wei) / Decimal(10 ** 18)

    def _token_balance(self, address: str, token_address: str, decimals: Optional[int] = None) -> Decimal:
        contract = self._contract(token_address)
        raw = contract.functions.balanceOf(address).call()
        if decimals is None:
            decimals = contract.functions.decimals().call()
        return Decimal(raw) / Decimal(10 ** int(decimals))

    def _get_balance_sync(self, user_id: int, asset: str) -> str:
        address = self._address_of(user_id)
        if asset.upper() == self.native_symbol.upper():
            return str(self._native_balance(address))

        token = self._token(asset)
        if token is not None:
            return str(self._token_balance(address, token['address'], token.get('decimals')))
        if Web3.is_address(asset):
            return str(self._token_balance(address, asset))
        raise ValueError(f"Unknown asset: {asset}")

    async def get_balance(self, user_id: int, asset: str) -> str:
        return await self._run(self._get_balance_sync, user_id, asset)

    def _list_assets_sync(self, user_id: int) -> List[AssetInfo]:
        address = self._address_of(user_id)
        assets = [AssetInfo(
            symbol=self.native_symbol,
            name=self.native_name,
            address=None,
            decimal_places=18,
            balance=str(self._native_balance(address)),
        )]

        for token in self.tokens:
            try:
                balance = self._token_balance(address, token['address'], token.get('decimals'))
            except Exception as e:
                logger.warning(f"Failed to read {token['symbol']} balance of {address}: {e}")
                continue
            if balance <= 0:
                continue
            assets.append(AssetInfo(
                symbol=token['symbol'],
                name=token.get('name', token['symbol']),
                address=Web3.to_checksum_address(token['address']),
                decimal_places=int(token.get('decimals', 18)),
                balance=str(balance),
            ))

        logger.debug(f"Listed {len(assets)} asset(s) for {address}")
        return assets

    async def list_assets(self, user_id: int) -> List[AssetInfo]:
        return await self._run(self._list_assets_sync, user_id)

    # ---- transfers ----

    def _execute_transfer_sync(
        self,
        from_address: str,
        to_address: str,
        amount: Decimal,
        asset_address: Optional[str],
        decimal_places: Optional[int]
    ) -> ExecutionReceipt:
        private_key = self.wallet_service.get_signing_key(from_address)
        if not private_key:
            raise ValueError(f"No signing key registered for {from_address}")

        sender = Web3.to_checksum_address(from_address)
        recipient = Web3.to_checksum_address(to_address)
        base_tx = {
            'from': sender,
            'nonce': self.w3.eth.get_transaction_count(sender),
            'gasPrice': self.w3.eth.gas_price,
            'chainId': self.chain_id
        }

        if asset_address is None:
            tx = dict(base_tx, to=recipient, value=self.w3.to_wei(amount, 'ether'), gas=NATIVE_TRANSFER_GAS)
        else:
            contract = self._contract(asset_address)
            if decimal_places is None:
                decimal_places = contract.functions.decimals().call()
            atomic = int(amount * (Decimal(10) ** int(decimal_places)))
            tx = contract.functions.transfer(recipient, atomic).build_transaction(
                dict(base_tx, gas=TOKEN_TRANSFER_GAS)
            )

        # Sign and send transaction
        signed_txn = self.w3.eth.account.sign_transaction(tx, private_key=private_key)
        tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        logger.info(f"Transfer transaction submitted: {tx_hash.hex()}")

        return ExecutionReceipt(reference_id=tx_hash.hex())

    async def execute_transfer(
        self,
        from_address: str,
        to_address: str,
        amount: Decimal,
        asset_address: Optional[str] = None,
        decimal_places: Optional[int] = None
    ) -> ExecutionReceipt:
        """
        Sign and submit a transfer.

        Returns as soon as the node accepts the transaction. Confirmation is
        not awaited, so the hash always reaches the user within the engine's
        execution timeout and they can follow it in the block explorer.
        """
        return await self._run(
            self._execute_transfer_sync, from_address, to_address, amount, asset_address, decimal_places
        )
