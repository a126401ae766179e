"""
ERC-20 token management for the LicenseChain Polygon SDK.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from eth_account.signers.local import LocalAccount

from .base import BaseManager
from .config import ERC20_ABI, ZERO_ADDRESS
from .exceptions import InsufficientBalanceError, InvalidAmountError, PolygonError
from .models import TokenInfo, TokenTransfer, TransactionRecord
from .utils import format_units, parse_units, require_address, require_amount

logger = logging.getLogger("licensechain_polygon.tokens")

BlockId = Optional[Union[int, str]]


class TokenManager(BaseManager):
    """Read and move ERC-20 tokens."""

    def _token(self, token_address: str, message: str = "Invalid token address"):
        checksum = require_address(token_address, message)
        return self.w3.eth.contract(address=checksum, abi=ERC20_ABI)

    async def get_token_info(self, token_address: str) -> TokenInfo:
        """
        Get token information.

        The four metadata reads are issued concurrently.

        Args:
            token_address (str): The token contract address

        Returns:
            TokenInfo: Name, symbol, decimals and total supply
        """
        contract = self._token(token_address)
        try:
            name, symbol, decimals, total_supply = await asyncio.gather(
                contract.functions.name().call(),
                contract.functions.symbol().call(),
                contract.functions.decimals().call(),
                contract.functions.totalSupply().call(),
            )
        except Exception as e:
            raise self._fail(e, "Failed to get token info") from e

        return TokenInfo(
            address=contract.address,
            name=name,
            symbol=symbol,
            decimals=int(decimals),
            total_supply=str(total_supply),
        )

    async def get_token_balance(self, token_address: str, owner_address: str) -> str:
        """Raw token balance of ``owner_address`` in base units."""
        contract = self._token(token_address)
        owner = require_address(owner_address, "Invalid owner address")
        try:
            return str(await contract.functions.balanceOf(owner).call())
        except Exception as e:
            raise self._fail(e, "Failed to get token balance", method="balanceOf") from e

    async def get_token_allowance(self, token_address: str, owner_address: str, spender_address: str) -> str:
        contract = self._token(token_address)
        owner = require_address(owner_address, "Invalid owner address")
        spender = require_address(spender_address, "Invalid spender address")
        try:
            return str(await contract.functions.allowance(owner, spender).call())
        except Exception as e:
            raise self._fail(e, "Failed to get token allowance", method="allowance") from e

    async def _base_amount(self, contract, amount: str) -> int:
        decimals = await contract.functions.decimals().call()
        try:
            return int(parse_units(amount, decimals))
        except ValueError as e:
            raise InvalidAmountError(amount) from e

    async def _check_balance(self, contract, holder: str, required: int) -> None:
        decimals, available = await asyncio.gather(
            contract.functions.decimals().call(),
            contract.functions.balanceOf(holder).call(),
        )
        if available < required:
            raise InsufficientBalanceError(format_units(required, decimals), format_units(available, decimals))

    async def transfer_token(
            self,
            token_address: str,
            to_address: str,
            amount: str,
            gas_limit: Optional[int] = None
        ) -> TransactionRecord:
        """
        Transfer tokens from the signer.

        Args:
            token_address (str): The token contract address
            to_address (str): Recipient
            amount (str): Human-readable amount, scaled by the token's decimals
            gas_limit (int, optional): Explicit gas limit

        Returns:
            TransactionRecord: The confirmed transfer

        Raises:
            InsufficientBalanceError: If the signer holds less than ``amount``
        """
        contract = self._token(token_address)
        recipient = require_address(to_address, "Invalid recipient address")
        amount = require_amount(amount)
        account = self._require_signer("transfer_token")

        try:
            value = await self._base_amount(contract, amount)
            await self._check_balance(contract, account.address, value)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to transfer token", method="transfer") from e

        async def build(signer: LocalAccount) -> Dict[str, Any]:
            return await self._build_call(contract.functions.transfer(recipient, value), signer, gas_limit=gas_limit)

        logger.info(f"Transferring {amount} of {contract.address} to {recipient}")
        return await self._submit_transaction(build, "transfer", gas_limit=gas_limit)

    async def approve_token(
            self,
            token_address: str,
            spender_address: str,
            amount: str,
            gas_limit: Optional[int] = None
        ) -> TransactionRecord:
        """Allow ``spender_address`` to move ``amount`` of the signer's tokens."""
        contract = self._token(token_address)
        spender = require_address(spender_address, "Invalid spender address")
        amount = require_amount(amount)
        self._require_signer("approve_token")

        try:
            value = await self._base_amount(contract, amount)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to approve token", method="approve") from e

        async def build(signer: LocalAccount) -> Dict[str, Any]:
            return await self._build_call(contract.functions.approve(spender, value), signer, gas_limit=gas_limit)

        return await self._submit_transaction(build, "approve", gas_limit=gas_limit)

    async def transfer_from_token(
            self,
            token_address: str,
            from_address: str,
            to_address: str,
            amount: str,
            gas_limit: Optional[int] = None
        ) -> TransactionRecord:
        """Move tokens out of ``from_address`` using the signer's allowance."""
        contract = self._token(token_address)
        source = require_address(from_address, "Invalid source address")
        recipient = require_address(to_address, "Invalid recipient address")
        amount = require_amount(amount)
        self._require_signer("transfer_from_token")

        try:
            value = await self._base_amount(contract, amount)
            await self._check_balance(contract, source, value)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to transferFrom token", method="transferFrom") from e

        async def build(signer: LocalAccount) -> Dict[str, Any]:
            function = contract.functions.transferFrom(source, recipient, value)
            return await self._build_call(function, signer, gas_limit=gas_limit)

        return await self._submit_transaction(build, "transferFrom", gas_limit=gas_limit)

    async def _transfer_logs(
            self,
            contract,
            from_block: BlockId,
            to_block: BlockId,
            argument_filters: Optional[Dict[str, Any]] = None
        ) -> List[TokenTransfer]:
        logs = await contract.events.Transfer.get_logs(
            argument_filters=argument_filters,
            from_block=from_block if from_block is not None else 0,
            to_block=to_block if to_block is not None else 'latest'
        )
        return [TokenTransfer.from_event(log) for log in logs]

    async def get_token_transfers(
            self,
            token_address: str,
            from_block: BlockId = None,
            to_block: BlockId = None
        ) -> List[TokenTransfer]:
        """All Transfer events of a token in a block range."""
        contract = self._token(token_address)
        try:
            return await self._transfer_logs(contract, from_block, to_block)
        except Exception as e:
            raise self._fail(e, "Failed to get token transfers") from e

    async def get_token_transfers_by_address(
            self,
            token_address: str,
            address: str,
            from_block: BlockId = None,
            to_block: BlockId = None
        ) -> List[TokenTransfer]:
        """
        Transfers sent or received by ``address``.

        Sent and received logs are fetched separately, merged without
        duplicates and ordered by block number and log index.
        """
        contract = self._token(token_address)
        holder = require_address(address)
        try:
            sent, received = await asyncio.gather(
                self._transfer_logs(contract, from_block, to_block, {'from': holder}),
                self._transfer_logs(contract, from_block, to_block, {'to': holder}),
            )
        except Exception as e:
            raise self._fail(e, "Failed to get token transfers by address") from e

        unique = {(t.transaction_hash, t.log_index): t for t in sent + received}
        return sorted(unique.values(), key=lambda t: (t.block_number, t.log_index))

    async def get_token_holders(
            self,
            token_address: str,
            from_block: BlockId = None,
            to_block: BlockId = None
        ) -> Dict[str, str]:
        """
        Replay Transfer events into net balances.

        Mints and burns only touch the non-zero side. Holders whose net
        balance in the range is not positive are left out.
        """
        transfers = await self.get_token_transfers(token_address, from_block, to_block)
        balances: Dict[str, int] = {}
        for transfer in transfers:
            value = int(transfer.value)
            if transfer.from_address != ZERO_ADDRESS:
                balances[transfer.from_address] = balances.get(transfer.from_address, 0) - value
            if transfer.to != ZERO_ADDRESS:
                balances[transfer.to] = balances.get(transfer.to, 0) + value
        return {holder: str(balance) for holder, balance in balances.items() if balance > 0}

    async def get_token_supply(self, token_address: str) -> str:
        contract = self._token(token_address)
        try:
            return str(await contract.functions.totalSupply().call())
        except Exception as e:
            raise self._fail(e, "Failed to get token supply", method="totalSupply") from e

    async def get_token_decimals(self, token_address: str) -> int:
        contract = self._token(token_address)
        try:
            return int(await contract.functions.decimals().call())
        except Exception as e:
            raise self._fail(e, "Failed to get token decimals", method="decimals") from e

    async def format_token_amount(self, token_address: str, amount: Union[str, int]) -> str:
        """Base units to a human decimal string using the token's decimals."""
        decimals = await self.get_token_decimals(token_address)
        try:
            return format_units(amount, decimals)
        except ValueError as e:
            raise InvalidAmountError(amount) from e

    async def parse_token_amount(self, token_address: str, amount: str) -> str:
        decimals = await self.get_token_decimals(token_address)
        try:
            return parse_units(amount, decimals)
        except ValueError as e:
            raise InvalidAmountError(amount) from e

    async def get_token_symbol(self, token_address: str) -> str:
        contract = self._token(token_address)
        try:
            return await contract.functions.symbol().call()
        except Exception as e:
            raise self._fail(e, "Failed to get token symbol", method="symbol") from e

    async def get_token_name(self, token_address: str) -> str:
        contract = self._token(token_address)
        try:
            return await contract.functions.name().call()
        except Exception as e:
            raise self._fail(e, "Failed to get token name", method="name") from e
