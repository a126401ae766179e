"""
Generic contract interaction: deployment, calls, transactions, events and
chain queries.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import ABIEventNotFound, ABIFunctionNotFound, TimeExhausted, TransactionNotFound

from . import polygonscan
from .base import BaseManager, GasPriceMixin
from .exceptions import ContractError, PolygonError, TransactionFailedError, translate_error
from .models import ContractEvent, DeployedContract, TransactionRecord, TransactionStatus, to_plain
from .utils import is_hex_string, require_address, require_gas_price, require_units

logger = logging.getLogger("licensechain_polygon.contracts")

CONFIRMATION_POLL_INTERVAL = 2.0  # seconds


class ContractManager(GasPriceMixin, BaseManager):
    """Deploy and interact with arbitrary contracts on Polygon."""

    async def deploy_contract(
            self,
            bytecode: str,
            abi: List[Dict[str, Any]],
            constructor_args: Sequence[Any] = (),
            gas_limit: Optional[int] = None
        ) -> DeployedContract:
        """
        Deploy a contract and wait for it to be mined.

        Args:
            bytecode (str): Creation bytecode
            abi (list): Contract ABI
            constructor_args: Positional constructor arguments
            gas_limit (int, optional): Explicit gas limit

        Returns:
            DeployedContract: Address and deployment details

        Raises:
            SignerRequiredError: If no signer is configured
            TransactionFailedError: If the deployment reverts
        """
        self._require_signer("deploy_contract")

        async def build(account: LocalAccount) -> Dict[str, Any]:
            factory = self.w3.eth.contract(abi=abi, bytecode=bytecode)
            return await self._build_call(factory.constructor(*constructor_args), account, gas_limit=gas_limit)

        record = await self._submit_transaction(build, "deploy_contract", gas_limit=gas_limit)
        if record.status != TransactionStatus.SUCCESS or not record.to:
            raise TransactionFailedError(record.hash, "contract deployment reverted")

        logger.info(f"Contract deployed at {record.to}")
        return DeployedContract(
            address=record.to,
            abi=abi,
            bytecode=bytecode,
            deployed_at=datetime.now(timezone.utc).isoformat(),
            transaction_hash=record.hash,
            gas_used=record.gas_used,
            gas_price=record.gas_price,
        )

    async def get_contract(self, address: str, abi: Optional[List[Dict[str, Any]]] = None):
        """
        Bind a contract object to ``address``.

        When ``abi`` is omitted the verified ABI is fetched from Polygonscan.
        """
        checksum = require_address(address, "Invalid contract address")
        if abi is None:
            abi = await asyncio.to_thread(polygonscan.get_contract_abi, checksum, self.config.network_id)
        return self.w3.eth.contract(address=checksum, abi=abi)

    @staticmethod
    def _function(contract, method: str, args: Sequence[Any]):
        try:
            return getattr(contract.functions, method)(*args)
        except ABIFunctionNotFound as e:
            raise ContractError(method, "function not found in ABI") from e

    async def call_contract_method(
            self,
            address: str,
            abi: Optional[List[Dict[str, Any]]],
            method: str,
            args: Sequence[Any] = ()
        ) -> Any:
        """Execute a read-only contract method and return its decoded result."""
        try:
            contract = await self.get_contract(address, abi)
            return await self._function(contract, method, args).call()
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, f"Failed to call contract method {method}", method=method) from e

    async def send_contract_transaction(
            self,
            address: str,
            abi: Optional[List[Dict[str, Any]]],
            method: str,
            args: Sequence[Any] = (),
            value: Optional[str] = None,
            gas_limit: Optional[int] = None,
            gas_price: Optional[str] = None
        ) -> TransactionRecord:
        """
        Send a state-changing contract call and wait for the receipt.

        Args:
            address (str): Contract address
            abi (list, optional): Contract ABI, fetched from the explorer if None
            method (str): Function name
            args: Positional function arguments
            value (str, optional): MATIC to attach, as a decimal string
            gas_limit (int, optional): Explicit gas limit
            gas_price (str, optional): Gas price in gwei

        Returns:
            TransactionRecord: The confirmed transaction
        """
        wei = require_units(value) if value is not None else 0
        if gas_price is not None:
            gas_price = require_gas_price(gas_price)
        self._require_signer(method)
        try:
            contract = await self.get_contract(address, abi)
            function = self._function(contract, method, args)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, f"Failed to prepare contract transaction {method}", method=method) from e

        async def build(account: LocalAccount) -> Dict[str, Any]:
            return await self._build_call(function, account, wei, gas_limit, gas_price)

        return await self._submit_transaction(build, method, gas_limit, gas_price)

    async def get_contract_events(
            self,
            address: str,
            abi: Optional[List[Dict[str, Any]]],
            event_name: str,
            from_block: Optional[int] = None,
            to_block: Optional[Union[int, str]] = None
        ) -> List[ContractEvent]:
        """Fetch decoded logs of ``event_name`` in a block range (default: all)."""
        try:
            contract = await self.get_contract(address, abi)
            try:
                event = getattr(contract.events, event_name)
            except ABIEventNotFound as e:
                raise ContractError(event_name, "event not found in ABI") from e
            logs = await event.get_logs(
                from_block=from_block if from_block is not None else 0,
                to_block=to_block if to_block is not None else 'latest'
            )
            return [ContractEvent.from_log(log) for log in logs]
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, f"Failed to get contract events {event_name}", method=event_name) from e

    async def get_contract_balance(self, address: str) -> str:
        """Native balance of ``address`` in wei."""
        checksum = require_address(address)
        try:
            return str(await self.w3.eth.get_balance(checksum))
        except Exception as e:
            raise self._fail(e, "Failed to get contract balance") from e

    async def get_contract_code(self, address: str) -> str:
        checksum = require_address(address)
        try:
            return Web3.to_hex(await self.w3.eth.get_code(checksum))
        except Exception as e:
            raise self._fail(e, "Failed to get contract code") from e

    async def is_contract(self, address: str) -> bool:
        code = await self.get_contract_code(address)
        return code not in ('0x', '0x0', '')

    async def get_contract_storage_at(self, address: str, position: Union[int, str]) -> str:
        """Raw 32-byte storage slot as hex. ``position`` may be an int or hex string."""
        checksum = require_address(address)
        if isinstance(position, str) and is_hex_string(position) and len(position) > 2:
            slot = int(position, 16)
        elif isinstance(position, int) and not isinstance(position, bool) and position >= 0:
            slot = position
        else:
            raise ContractError("get_contract_storage_at", f"invalid storage position {position!r}")
        try:
            return Web3.to_hex(await self.w3.eth.get_storage_at(checksum, slot))
        except Exception as e:
            raise self._fail(e, "Failed to get contract storage") from e

    async def estimate_gas(self, to: str, data: str, value: Optional[str] = None) -> str:
        """Gas estimate for a call; ``value`` is MATIC as a decimal string."""
        tx = {'to': require_address(to), 'data': data}
        if value is not None:
            tx['value'] = require_units(value)
        try:
            return str(await self.w3.eth.estimate_gas(tx))
        except Exception as e:
            raise self._fail(e, "Failed to estimate gas", method="estimate_gas") from e

    async def get_transaction_count(self, address: str) -> int:
        checksum = require_address(address)
        try:
            return await self.w3.eth.get_transaction_count(checksum)
        except Exception as e:
            raise self._fail(e, "Failed to get transaction count") from e

    async def get_transaction(self, tx_hash: str) -> Optional[TransactionRecord]:
        """
        Look up a transaction and its receipt.

        Returns:
            TransactionRecord: The record, with status ``pending`` while
            unmined, or None when the node does not know the hash
        """
        try:
            try:
                tx = await self.w3.eth.get_transaction(tx_hash)
            except TransactionNotFound:
                return None
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            return TransactionRecord.from_chain(tx, receipt)
        except Exception as e:
            raise self._fail(e, "Failed to get transaction") from e

    async def wait_for_transaction(
            self,
            tx_hash: str,
            confirmations: int = 1,
            timeout: Optional[float] = None
        ) -> TransactionRecord:
        """
        Wait until ``tx_hash`` is mined and buried under ``confirmations`` blocks.

        Args:
            tx_hash (str): Transaction hash
            confirmations (int): Blocks including the one it was mined in
            timeout (float, optional): Seconds to wait, defaults to the
                configured transaction timeout

        Raises:
            TransactionFailedError: If the wait times out
        """
        timeout = timeout or self.config.transaction_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            while confirmations > 1:
                current = await self.w3.eth.block_number
                if current - receipt['blockNumber'] + 1 >= confirmations:
                    break
                if loop.time() >= deadline:
                    raise TransactionFailedError(tx_hash, f"fewer than {confirmations} confirmations after {timeout}s")
                await asyncio.sleep(CONFIRMATION_POLL_INTERVAL)
            tx = await self.w3.eth.get_transaction(tx_hash)
            return TransactionRecord.from_chain(tx, receipt)
        except PolygonError:
            raise
        except TimeExhausted as e:
            raise TransactionFailedError(tx_hash, f"not mined within {timeout}s") from e
        except Exception as e:
            logger.error(f"Failed to wait for transaction {tx_hash}: {str(e)}")
            raise translate_error(e, "Failed to wait for transaction", tx_hash=tx_hash) from e

    async def get_current_block_number(self) -> int:
        try:
            return await self.w3.eth.block_number
        except Exception as e:
            raise self._fail(e, "Failed to get current block number") from e

    async def get_block(self, block_number: Union[int, str]) -> Dict[str, Any]:
        """Block header as a plain dict; ``block_number`` may also be a tag like 'latest'."""
        try:
            return to_plain(await self.w3.eth.get_block(block_number))
        except Exception as e:
            raise self._fail(e, "Failed to get block") from e

    async def get_network(self) -> Dict[str, Any]:
        try:
            chain_id = await self.w3.eth.chain_id
        except Exception as e:
            raise self._fail(e, "Failed to get network") from e
        name = self.config.network_name if chain_id == self.config.network_id else f"chain-{chain_id}"
        return {'chain_id': chain_id, 'name': name}

