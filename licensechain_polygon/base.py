"""
Shared plumbing for the SDK managers: provider, signer slot, retries and
transaction submission.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted

from .config import GAS_LIMIT_BUFFER, PolygonConfig
from .exceptions import (
    InvalidPrivateKeyError, PolygonError, SignerRequiredError, TransactionFailedError, translate_error
)
from .models import FeeData, TransactionRecord
from .retry import retry_with_policy
from .utils import parse_gwei, require_gas_price, validate_private_key

logger = logging.getLogger("licensechain_polygon.base")

T = TypeVar("T")


def create_web3(config: PolygonConfig) -> AsyncWeb3:
    """Create an AsyncWeb3 client for ``config.rpc_url``."""
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
        config.rpc_url,
        request_kwargs={"timeout": config.request_timeout}
    ))


def load_account(private_key: str, action: str = "signer setup") -> LocalAccount:
    """Build a local signing account, never echoing the key in errors."""
    if not validate_private_key(private_key):
        raise InvalidPrivateKeyError(action)
    return Account.from_key(private_key)


class BaseManager:
    """
    Base class for the resource managers.

    Each manager owns one configuration snapshot and at most one signing
    identity. The web3 client is created from the configuration unless one is
    injected, in which case the caller keeps ownership of its session.
    """

    def __init__(self, config: PolygonConfig, w3: Optional[AsyncWeb3] = None):
        self.config = config
        self._owns_provider = w3 is None
        self.w3 = w3 if w3 is not None else create_web3(config)
        self._retired_providers: List[AsyncWeb3] = []
        self._account: Optional[LocalAccount] = (
            load_account(config.private_key) if config.private_key else None
        )

    # Signer slot

    @property
    def has_signer(self) -> bool:
        return self._account is not None

    @property
    def signer_address(self) -> Optional[str]:
        return self._account.address if self._account else None

    def set_signer(self, private_key: str) -> str:
        """
        Replace the signing identity.

        Returns:
            str: The address of the new signer
        """
        self._account = load_account(private_key, "set_signer")
        logger.info(f"Signer set to {self._account.address}")
        return self._account.address

    def clear_signer(self) -> None:
        self._account = None

    def _require_signer(self, action: str) -> LocalAccount:
        if self._account is None:
            raise SignerRequiredError(action)
        return self._account

    # Configuration

    def update_config(self, config: PolygonConfig) -> None:
        """
        Replace the configuration snapshot.

        The provider is rebuilt when it is owned by this manager and the RPC
        URL changed. The old provider stays open until :meth:`disconnect`.
The signer follows ``config.private_key``.
        """
        previous = self.config
        account = load_account(config.private_key) if config.private_key else None
        if self._owns_provider and (
                config.rpc_url != previous.rpc_url or config.request_timeout != previous.request_timeout):
            self._retired_providers.append(self.w3)
            self.w3 = create_web3(config)
        self.config = config
        if config.private_key != previous.private_key:
            self._account = account

    # Errors, retry and submission

    def _fail(self, error: Exception, message: str, method: Optional[str] = None) -> PolygonError:
        """Log ``error`` under the manager's module logger and translate it."""
        logging.getLogger(type(self).__module__).error(f"{message}: {str(error)}")
        return translate_error(error, message, method=method)

    async def _retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await retry_with_policy(operation, self.config.retry_policy)

    async def _gas_price(self, gas_price: Optional[str] = None) -> int:
        """Gas price in wei: explicit gwei value, then config, then network."""
        gwei = gas_price or self.config.gas_price
        if gwei:
            return int(parse_gwei(gwei))
        return await self.w3.eth.gas_price

    async def _prepare_transaction(
            self,
            account: LocalAccount,
            tx: Dict[str, Any],
            gas_limit: Optional[int] = None,
            gas_price: Optional[str] = None
        ) -> Dict[str, Any]:
        """Fill nonce, chain id, gas and gas price into ``tx``."""
        tx = dict(tx)
        tx['from'] = account.address
        tx.setdefault('chainId', self.config.network_id)
        tx['nonce'] = await self.w3.eth.get_transaction_count(account.address, 'pending')
        if 'gasPrice' not in tx and 'maxFeePerGas' not in tx:
            tx['gasPrice'] = await self._gas_price(gas_price)
        limit = gas_limit or tx.get('gas') or self.config.gas_limit
        if not limit:
            estimate = await self.w3.eth.estimate_gas(tx)
            limit = int(estimate * GAS_LIMIT_BUFFER)
        tx['gas'] = limit
        return tx

    async def _build_call(
            self,
            function: Any,
            account: LocalAccount,
            value: int = 0,
            gas_limit: Optional[int] = None,
            gas_price: Optional[str] = None
        ) -> Dict[str, Any]:
        """
        Turn a bound contract function into unsigned transaction fields.

        Gas is estimated with a safety buffer unless a limit is given
        explicitly or in the configuration.
        """
        params = {
            'from': account.address,
            'value': value,
            'chainId': self.config.network_id,
            'gasPrice': await self._gas_price(gas_price),
        }
        limit = gas_limit or self.config.gas_limit
        if not limit:
            estimate = await function.estimate_gas({'from': account.address, 'value': value})
            limit = int(estimate * GAS_LIMIT_BUFFER)
        params['gas'] = limit
        return await function.build_transaction(params)

    async def _submit_transaction(
            self,
            build: Callable[[LocalAccount], Awaitable[Dict[str, Any]]],
            action: str,
            gas_limit: Optional[int] = None,
            gas_price: Optional[str] = None
        ) -> TransactionRecord:
        """
        Build, sign and broadcast a transaction, then wait for its receipt.

        ``build`` receives the signer and returns the unsigned transaction
        fields. The build-sign-send step is retried as a whole so every
        attempt uses a fresh nonce and gas quote; waiting for the receipt is
        not retried.

        Args:
            build: Coroutine function producing the transaction dict
            action (str): Name used in errors and logs
            gas_limit (int, optional): Explicit gas limit
            gas_price (str, optional): Explicit gas price in gwei

        Returns:
            TransactionRecord: The confirmed transaction
        """
        if gas_price is not None:
            gas_price = require_gas_price(gas_price)
        account = self._require_signer(action)

        async def send_once():
            tx = await build(account)
            tx = await self._prepare_transaction(account, tx, gas_limit, gas_price)
            signed = account.sign_transaction(tx)
            return await self.w3.eth.send_raw_transaction(signed.raw_transaction)

        try:
            tx_hash = await self._retry(send_once)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, f"Failed to submit {action}", method=action) from e

        tx_hex = Web3.to_hex(tx_hash)
        logger.info(f"{action} submitted: {tx_hex}")
        return await self._confirm(tx_hex, action)

    async def _confirm(self, tx_hex: str, action: str) -> TransactionRecord:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hex, timeout=self.config.transaction_timeout
            )
            tx = await self.w3.eth.get_transaction(tx_hex)
        except TimeExhausted as e:
            logger.warning(f"{action} {tx_hex} not mined within {self.config.transaction_timeout}s")
            raise TransactionFailedError(tx_hex, f"not mined within {self.config.transaction_timeout}s") from e
        except Exception as e:
            raise translate_error(e, f"Failed to confirm {action}", method=action, tx_hash=tx_hex) from e

        record = TransactionRecord.from_chain(tx, receipt)
        logger.info(f"{action} {tx_hex} mined in block {record.block_number} with status {record.status.value}")
        return record

    async def disconnect(self) -> None:
        """
        Drop the signer and close the provider session if this manager owns it.

        Providers replaced by :meth:`update_config` are closed here as well.
        """
        self.clear_signer()
        if self._owns_provider:
            for w3 in self._retired_providers + [self.w3]:
                await w3.provider.disconnect()
            self._retired_providers.clear()


class GasPriceMixin:
    """Network fee queries shared by the contract and wallet managers."""

    async def get_gas_price(self) -> str:
        """Current legacy gas price in wei."""
        try:
            return str(await self.w3.eth.gas_price)
        except Exception as e:
            raise self._fail(e, "Failed to get gas price") from e

    async def get_fee_data(self) -> FeeData:
        """
        Current legacy and EIP-1559 fee suggestions in wei.

        ``max_fee_per_gas`` is twice the latest base fee plus the priority
        fee; both EIP-1559 fields are None on nodes without a base fee.
        """
        try:
            gas_price, block = await asyncio.gather(
                self.w3.eth.gas_price,
                self.w3.eth.get_block('latest'),
            )
            base_fee = block.get('baseFeePerGas')
            if base_fee is None:
                return FeeData(gas_price=str(gas_price))
            priority_fee = await self.w3.eth.max_priority_fee
            return FeeData(
                gas_price=str(gas_price),
                max_fee_per_gas=str(base_fee * 2 + priority_fee),
                max_priority_fee_per_gas=str(priority_fee),
            )
        except Exception as e:
            raise self._fail(e, "Failed to get fee data") from e
