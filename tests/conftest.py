"""
Shared fixtures: a fake AsyncWeb3 built from MagicMock/AsyncMock and helpers
for fake contracts, transactions and receipts.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from web3 import Web3

from licensechain_polygon.config import PolygonConfig

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
OTHER_PRIVATE_KEY = "0xb25c7db31feed9122727bf0939dc769a96564b2de4c4726d035b36ecf1e5b364"

TOKEN_ADDRESS = "0x7ceb23fd6bc0add59e62ac25578270cff1b9f619"
OTHER_TOKEN_ADDRESS = "0x2791bca1f2de4661ed88a30c99a7a9449aa84174"
RECIPIENT = "0x742d35cc6634c0532925a3b844bc454e4438f44e"
NFT_ADDRESS = "0x60e4d786628fea6478f785a6d7e704777c86a7c6"
PAIR_ADDRESS = "0x853ee4b2a13f8a742d64c8f088be7ba2131f670d"

TX_HASH = "0x" + "ab" * 32
BLOCK_HASH = "0x" + "11" * 32
GWEI = 10 ** 9
ETHER = 10 ** 18


class Awaitable:
    """Re-awaitable value standing in for web3's coroutine properties."""

    def __init__(self, value):
        self.value = value

    def __await__(self):
        return self._resolve().__await__()

    async def _resolve(self):
        if isinstance(self.value, BaseException):
            raise self.value
        return self.value


def make_receipt(status=1, block_number=100, contract_address=None, to=RECIPIENT, sender=None):
    return {
        'transactionHash': bytes.fromhex(TX_HASH[2:]),
        'blockNumber': block_number,
        'blockHash': bytes.fromhex(BLOCK_HASH[2:]),
        'transactionIndex': 3,
        'from': sender,
        'to': to,
        'gasUsed': 21000,
        'effectiveGasPrice': 30 * GWEI,
        'status': status,
        'logs': [],
        'contractAddress': contract_address,
    }


def make_tx(sender, to=RECIPIENT, value=0, block_number=100):
    return {
        'hash': bytes.fromhex(TX_HASH[2:]),
        'from': sender,
        'to': to,
        'value': value,
        'gas': 25200,
        'gasPrice': 30 * GWEI,
        'blockNumber': block_number,
        'blockHash': bytes.fromhex(BLOCK_HASH[2:]) if block_number is not None else None,
        'transactionIndex': 3,
    }


def _bound(result, to):
    bound = MagicMock()
    if isinstance(result, BaseException):
        bound.call = AsyncMock(side_effect=result)
    else:
        bound.call = AsyncMock(return_value=result)
    bound.estimate_gas = AsyncMock(return_value=50000)
    bound.build_transaction = AsyncMock(side_effect=lambda params: {**params, 'to': to, 'data': '0x1234'})
    return bound


def make_contract(address, **results):
    """
    Fake contract whose ``functions.<name>(...)`` return bound calls.

    A result may be a value, an exception instance (raised by ``call``), or a
    function of the call arguments returning either.
    """
    address = Web3.to_checksum_address(address)
    contract = MagicMock()
    contract.address = address
    for name, result in results.items():
        if callable(result) and not isinstance(result, BaseException):
            function = MagicMock(side_effect=lambda *args, _result=result: _bound(_result(*args), address))
        else:
            function = MagicMock(return_value=_bound(result, address))
        setattr(contract.functions, name, function)
    return contract


def register_contracts(w3, *contracts):
    """Route ``w3.eth.contract(address=...)`` to the given fakes."""
    by_address = {c.address.lower(): c for c in contracts}

    def contract(address=None, abi=None, **kwargs):
        return by_address[address.lower()]

    w3.eth.contract = MagicMock(side_effect=contract)


@pytest.fixture
def account():
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def fake_w3(account):
    w3 = MagicMock()
    w3.eth.get_balance = AsyncMock(return_value=5 * ETHER)
    w3.eth.get_transaction_count = AsyncMock(return_value=7)
    w3.eth.get_code = AsyncMock(return_value=b'')
    w3.eth.get_storage_at = AsyncMock(return_value=b'\x00' * 31 + b'\x2a')
    w3.eth.estimate_gas = AsyncMock(return_value=21000)
    w3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex(TX_HASH[2:]))
    w3.eth.wait_for_transaction_receipt = AsyncMock(return_value=make_receipt(sender=account.address))
    w3.eth.get_transaction = AsyncMock(return_value=make_tx(account.address))
    w3.eth.get_transaction_receipt = AsyncMock(return_value=make_receipt(sender=account.address))
    w3.eth.get_block = AsyncMock(return_value={'number': 100, 'hash': bytes.fromhex(BLOCK_HASH[2:]), 'baseFeePerGas': 40 * GWEI})
    w3.eth.gas_price = Awaitable(30 * GWEI)
    w3.eth.max_priority_fee = Awaitable(2 * GWEI)
    w3.eth.block_number = Awaitable(105)
    w3.eth.chain_id = Awaitable(137)
    w3.provider.disconnect = AsyncMock()
    return w3


@pytest.fixture
def config():
    return PolygonConfig(
        rpc_url="http://localhost:8545",
        private_key=TEST_PRIVATE_KEY,
        network_id=137,
        gas_limit=None,
        max_retries=1,
        retry_delay_ms=0,
        retry_timeout=None,
        dex_router_address="0xa5e0829caced8ffdd4de3c43696c57f7d7a678ff",
        dex_factory_address="0x5757371414417b8c6caad45baef941abc7d3ab32",
    )


@pytest.fixture
def readonly_config(config):
    return config.updated(private_key=None)
