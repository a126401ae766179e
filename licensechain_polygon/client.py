"""
Top-level client for the LicenseChain Polygon SDK.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from web3 import AsyncWeb3

from . import polygonscan
from .base import create_web3, load_account
from .config import PolygonConfig
from .contracts import ContractManager
from .defi import DeFiManager
from .exceptions import TransactionNotFoundError
from .licenses import LicenseManager
from .models import NFT, DeFiPool, License, SwapQuote, TransactionRecord
from .nft import NFTManager
from .tokens import TokenManager
from .utils import require_address
from .wallets import WalletManager

logger = logging.getLogger("licensechain_polygon.client")


class LicenseChainPolygon:
    """
    Facade over the contract, token, wallet, NFT, license and DeFi managers.

    All managers share one AsyncWeb3 client and one configuration snapshot.

    Example:
        async with LicenseChainPolygon(PolygonConfig.for_network('amoy')) as client:
            status = await client.ping()
    """

    def __init__(self, config: Optional[PolygonConfig] = None, w3: Optional[AsyncWeb3] = None):
        """
        Initialize the client.

        Args:
            config (PolygonConfig, optional): Settings; read from the
                environment when omitted
            w3 (AsyncWeb3, optional): Client to use instead of creating one.
                The caller keeps ownership of its session.
        """
        self.config = config if config is not None else PolygonConfig.from_env()
        self._owns_provider = w3 is None
        self.w3 = w3 if w3 is not None else create_web3(self.config)
        self._retired_providers: List[AsyncWeb3] = []

        self.contracts = ContractManager(self.config, self.w3)
        self.tokens = TokenManager(self.config, self.w3)
        self.wallet = WalletManager(self.config, self.w3)
        self.nfts = NFTManager(self.config, self.w3)
        self.licenses = LicenseManager(self.config, self.w3)
        self.defi = DeFiManager(self.config, self.w3)
        logger.info(f"Client ready for {self.config.network_name}")

    @property
    def managers(self):
        return (self.contracts, self.tokens, self.wallet, self.nfts, self.licenses, self.defi)

    async def __aenter__(self) -> "LicenseChainPolygon":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    # License operations

    async def create_license(
            self,
            product_id: str,
            license_type: str,
            metadata: Optional[Mapping[str, Any]] = None
        ) -> TransactionRecord:
        return await self.licenses.create_license(product_id, license_type, metadata)

    async def get_license(self, license_id: str) -> License:
        return await self.licenses.get_license(license_id)

    async def update_license(self, license_id: str, updates: Mapping[str, Any]) -> TransactionRecord:
        return await self.licenses.update_license(license_id, updates)

    async def revoke_license(self, license_id: str) -> TransactionRecord:
        return await self.licenses.revoke_license(license_id)

    async def get_licenses_by_owner(self, owner_address: str) -> List[License]:
        return await self.licenses.get_licenses_by_owner(owner_address)

    # NFT operations

    async def mint_nft(self, contract_address: str, to: str, metadata: Optional[Mapping[str, Any]] = None):
        return await self.nfts.mint(contract_address, to, metadata)

    async def get_nft(self, token_id: str, contract_address: str) -> NFT:
        return await self.nfts.get_nft(token_id, contract_address)

    async def transfer_nft(self, contract_address: str, token_id: str, from_address: str, to_address: str) -> TransactionRecord:
        return await self.nfts.transfer(contract_address, token_id, from_address, to_address)

    async def get_nfts_by_owner(self, contract_address: str, owner_address: str) -> List[NFT]:
        return await self.nfts.get_nfts_by_owner(contract_address, owner_address)

    # DeFi operations

    async def get_pools(self, limit: int = 20) -> List[DeFiPool]:
        return await self.defi.get_pools(limit)

    async def get_quote(self, token_in: str, token_out: str, amount_in: str) -> SwapQuote:
        return await self.defi.get_quote(token_in, token_out, amount_in)

    async def add_liquidity(self, token_a: str, token_b: str, amount_a: str, amount_b: str) -> TransactionRecord:
        return await self.defi.add_liquidity(token_a, token_b, amount_a, amount_b)

    async def remove_liquidity(self, token_a: str, token_b: str, lp_token_amount: str) -> TransactionRecord:
        return await self.defi.remove_liquidity(token_a, token_b, lp_token_amount)

    async def swap(self, token_in: str, token_out: str, amount_in: str, amount_out_min: str) -> TransactionRecord:
        return await self.defi.swap(token_in, token_out, amount_in, amount_out_min)

    # Transactions

    async def get_transaction_status(self, tx_hash: str) -> TransactionRecord:
        """
        Current state of a transaction.

        Returns:
            TransactionRecord: With status pending, success or failed

        Raises:
            TransactionNotFoundError: If the node does not know the hash
        """
        record = await self.contracts.get_transaction(tx_hash)
        if record is None:
            raise TransactionNotFoundError(tx_hash)
        return record

    async def wait_for_transaction(
            self,
            tx_hash: str,
            confirmations: int = 1,
            timeout: Optional[float] = None
        ) -> TransactionRecord:
        return await self.contracts.wait_for_transaction(tx_hash, confirmations, timeout)

    async def get_transaction_history(
            self,
            address: str,
            page: int = 1,
            offset: int = 10,
            sort: str = 'desc'
        ) -> List[Dict[str, Any]]:
        """Explorer transaction history of ``address`` on the configured chain."""
        checksum = require_address(address)
        return await asyncio.to_thread(
            polygonscan.get_transaction_history, checksum, self.config.network_id, page, offset, sort
        )

    # Health

    async def ping(self, timeout: float = 5.0) -> Dict[str, Any]:
        """
        Check that the RPC node answers and serves the configured chain.

        Never raises for an unreachable or slow node; the result reports
        ``healthy=False`` instead.

        Args:
            timeout (float): Seconds allowed for the whole check

        Returns:
            dict: ``healthy``, ``chain_id``, ``block_number`` and ``latency_ms``
        """
        start = time.perf_counter()
        try:
            chain_id, block_number = await asyncio.wait_for(
                asyncio.gather(self.w3.eth.chain_id, self.w3.eth.block_number),
                timeout
            )
        except Exception as e:
            latency_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.warning(f"Ping to {self.config.rpc_url} failed after {latency_ms}ms: {str(e) or type(e).__name__}")
            return {'healthy': False, 'chain_id': None, 'block_number': None, 'latency_ms': latency_ms}

        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        healthy = chain_id == self.config.network_id
        if not healthy:
            logger.warning(f"Node reports chain {chain_id}, expected {self.config.network_id}")
        return {'healthy': healthy, 'chain_id': chain_id, 'block_number': block_number, 'latency_ms': latency_ms}

    # Configuration and lifecycle

    def get_config(self) -> PolygonConfig:
        return self.config

    def update_config(self, **changes) -> PolygonConfig:
        """
        Replace the configuration with a copy carrying ``changes``.

        The new snapshot is validated as a whole before any manager sees it,
        so a bad value leaves the client untouched.
        A replaced provider is closed by :meth:`disconnect`.

        Returns:
            PolygonConfig: The new configuration
        """
        config = self.config.updated(**changes)
        if config.private_key:
            load_account(config.private_key, "update_config")

        if self._owns_provider and (
                config.rpc_url != self.config.rpc_url or config.request_timeout != self.config.request_timeout):
            self._retired_providers.append(self.w3)
            self.w3 = create_web3(config)
        for manager in self.managers:
            manager.w3 = self.w3
            manager.update_config(config)
        self.config = config
        logger.info(f"Configuration updated: {', '.join(sorted(changes)) or 'no changes'}")
        return config

    async def disconnect(self) -> None:
        """Drop every signer and close the shared provider session if owned."""
        for manager in self.managers:
            await manager.disconnect()
        if self._owns_provider:
            for w3 in self._retired_providers + [self.w3]:
                await w3.provider.disconnect()
            self._retired_providers.clear()
