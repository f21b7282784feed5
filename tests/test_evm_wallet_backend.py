"""
EVM backend transfers against a mocked web3 client.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from chainflow.services.evm_wallet_backend import EvmWalletBackend

from fakes import ALICE_ADDRESS, BOB_ADDRESS, USDT_ADDRESS


def make_backend():
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.gas_price = 5_000_000_000
    w3.to_wei.return_value = 10 ** 18
    tx_hash = MagicMock()
    tx_hash.hex.return_value = "0xsubmitted"
    w3.eth.send_raw_transaction.return_value = tx_hash

    wallet_service = MagicMock()
    wallet_service.get_signing_key.return_value = "11" * 32
    return EvmWalletBackend(w3, wallet_service, chain_id=56), w3


@pytest.mark.asyncio
async def test_transfer_returns_hash_once_submitted():
    backend, w3 = make_backend()

    receipt = await backend.execute_transfer(ALICE_ADDRESS, BOB_ADDRESS, Decimal("1"))

    assert receipt.reference_id == "0xsubmitted"
    w3.eth.send_raw_transaction.assert_called_once()
    w3.eth.wait_for_transaction_receipt.assert_not_called()
    (tx,), kwargs = w3.eth.account.sign_transaction.call_args
    assert tx["nonce"] == 7
    assert tx["chainId"] == 56
    assert tx["gas"] == 21000
    assert kwargs["private_key"] == "11" * 32


@pytest.mark.asyncio
async def test_token_transfer_uses_atomic_amount():
    backend, w3 = make_backend()
    transfer = w3.eth.contract.return_value.functions.transfer

    receipt = await backend.execute_transfer(
        ALICE_ADDRESS, BOB_ADDRESS, Decimal("2.5"), asset_address=USDT_ADDRESS, decimal_places=6
    )

    assert receipt.reference_id == "0xsubmitted"
    (recipient, atomic), _ = transfer.call_args
    assert atomic == 2_500_000
    w3.eth.wait_for_transaction_receipt.assert_not_called()


@pytest.mark.asyncio
async def test_transfer_without_signing_key_is_not_submitted():
    backend, w3 = make_backend()
    backend.wallet_service.get_signing_key.return_value = None

    with pytest.raises(ValueError):
        await backend.execute_transfer(ALICE_ADDRESS, BOB_ADDRESS, Decimal("1"))

    w3.eth.send_raw_transaction.assert_not_called()
