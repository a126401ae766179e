"""
DeFi pool operations for the LicenseChain Polygon SDK.

Talks to a Uniswap V2 compatible router and factory (QuickSwap on Polygon
mainnet). Networks without a configured router and factory report every
operation as not implemented.
"""
import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from eth_account.signers.local import LocalAccount

from .base import BaseManager
from .config import (
    DEX_DEADLINE_SECONDS, ERC20_ABI, UNISWAP_V2_FACTORY_ABI, UNISWAP_V2_PAIR_ABI, UNISWAP_V2_ROUTER_ABI
)
from .exceptions import FeatureNotImplementedError, InvalidAmountError, PolygonError, PoolNotFoundError
from .models import DeFiPool, SwapQuote, TransactionRecord
from .utils import format_units, parse_units, require_address, require_amount, require_units

logger = logging.getLogger("licensechain_polygon.defi")

BPS = 10000
LP_DECIMALS = 18


class DeFiManager(BaseManager):
    """Query pools and trade through a Uniswap V2 style DEX."""

    # Plumbing

    def _dex(self, feature: str) -> Tuple[Any, Any]:
        router, factory = self.config.dex_router_address, self.config.dex_factory_address
        if not router or not factory:
            raise FeatureNotImplementedError(feature)
        return (
            self.w3.eth.contract(address=require_address(router, "Invalid router address"), abi=UNISWAP_V2_ROUTER_ABI),
            self.w3.eth.contract(address=require_address(factory, "Invalid factory address"), abi=UNISWAP_V2_FACTORY_ABI),
        )

    def _erc20(self, address: str):
        return self.w3.eth.contract(address=address, abi=ERC20_ABI)

    async def _to_base(self, token: str, amount: str) -> int:
        decimals = await self._erc20(token).functions.decimals().call()
        try:
            return int(parse_units(amount, decimals))
        except ValueError as e:
            raise InvalidAmountError(amount) from e

    def _min_amount(self, amount: int) -> int:
        return amount * (BPS - self.config.slippage_bps) // BPS

    @staticmethod
    def _deadline() -> int:
        return int(time.time()) + DEX_DEADLINE_SECONDS

    async def _pair_address(self, factory, token_a: str, token_b: str) -> str:
        pair = await factory.functions.getPair(token_a, token_b).call()
        if not pair or int(pair, 16) == 0:
            raise PoolNotFoundError(f"{token_a}-{token_b}")
        return pair

    async def _pool_at(self, pair_address: str) -> DeFiPool:
        pair = self.w3.eth.contract(address=pair_address, abi=UNISWAP_V2_PAIR_ABI)
        token0, token1, reserves, total_supply = await asyncio.gather(
            pair.functions.token0().call(),
            pair.functions.token1().call(),
            pair.functions.getReserves().call(),
            pair.functions.totalSupply().call(),
        )
        return DeFiPool(
            address=pair_address,
            token0=token0,
            token1=token1,
            reserve0=str(reserves[0]),
            reserve1=str(reserves[1]),
            total_supply=str(total_supply),
            fee=self.config.dex_fee_bps,
        )

    @staticmethod
    def _oriented(pool: DeFiPool, token_a: str) -> Tuple[int, int]:
        """Reserves of (token_a, other token)."""
        if pool.token0.lower() == token_a.lower():
            return int(pool.reserve0), int(pool.reserve1)
        return int(pool.reserve1), int(pool.reserve0)

    async def _ensure_allowance(self, token: str, owner: str, spender: str, amount: int) -> None:
        contract = self._erc20(token)
        allowance = await contract.functions.allowance(owner, spender).call()
        if allowance >= amount:
            return

        logger.info(f"Approving {spender} to spend {amount} of {token}")

        async def build(account: LocalAccount) -> Dict[str, Any]:
            return await self._build_call(contract.functions.approve(spender, amount), account)

        await self._submit_transaction(build, "approve")

    # Reads

    async def get_pools(self, limit: int = 20) -> List[DeFiPool]:
        """The first ``limit`` pools registered with the factory."""
        _, factory = self._dex("get_pools")
        try:
            count = await factory.functions.allPairsLength().call()
            pairs = await asyncio.gather(*(
                factory.functions.allPairs(index).call() for index in range(min(count, max(limit, 0)))
            ))
            return list(await asyncio.gather(*(self._pool_at(pair) for pair in pairs)))
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to get pools", method="allPairs") from e

    async def get_pool(self, token_a: str, token_b: str) -> DeFiPool:
        """
        Get the pool for a token pair.

        Raises:
            PoolNotFoundError: If the factory has no pair for the tokens
        """
        token_a = require_address(token_a, "Invalid token address")
        token_b = require_address(token_b, "Invalid token address")
        _, factory = self._dex("get_pool")
        try:
            return await self._pool_at(await self._pair_address(factory, token_a, token_b))
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to get pool", method="getPair") from e

    async def get_reserves(self, token_a: str, token_b: str) -> Dict[str, str]:
        """Raw reserves in pool order (``token0`` first)."""
        pool = await self.get_pool(token_a, token_b)
        return {'reserve0': pool.reserve0, 'reserve1': pool.reserve1}

    async def get_price(self, token_a: str, token_b: str) -> str:
        """Spot price of one ``token_a`` expressed in ``token_b``."""
        pool = await self.get_pool(token_a, token_b)
        try:
            decimals_a, decimals_b = await asyncio.gather(
                self._erc20(require_address(token_a)).functions.decimals().call(),
                self._erc20(require_address(token_b)).functions.decimals().call(),
            )
        except Exception as e:
            raise self._fail(e, "Failed to get price", method="decimals") from e

        reserve_a, reserve_b = self._oriented(pool, token_a)
        if reserve_a == 0:
            return '0'
        price = (Decimal(reserve_b) / Decimal(10) ** decimals_b) / (Decimal(reserve_a) / Decimal(10) ** decimals_a)
        return format(price.normalize(), 'f')

    async def get_liquidity(self, token_a: str, token_b: str) -> str:
        """Total LP token supply of the pair."""
        pool = await self.get_pool(token_a, token_b)
        return pool.total_supply

    async def get_quote(self, token_in: str, token_out: str, amount_in: str) -> SwapQuote:
        """
        Quote a swap of ``amount_in`` (human units) through the router.

        Returns:
            SwapQuote: Output amount in human units and the price impact in
            percent relative to the pool's spot price
        """
        amount_in = require_amount(amount_in)
        token_in = require_address(token_in, "Invalid token address")
        token_out = require_address(token_out, "Invalid token address")
        router, _ = self._dex("get_quote")

        pool = await self.get_pool(token_in, token_out)
        try:
            raw_in = await self._to_base(token_in, amount_in)
            amounts = await router.functions.getAmountsOut(raw_in, [token_in, token_out]).call()
            decimals_out = await self._erc20(token_out).functions.decimals().call()
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to get quote", method="getAmountsOut") from e

        raw_out = amounts[-1]
        reserve_in, reserve_out = self._oriented(pool, token_in)
        impact = 0.0
        if reserve_in:
            spot_out = Decimal(raw_in) * reserve_out / reserve_in
            if spot_out:
                impact = float((spot_out - raw_out) / spot_out * 100)
        return SwapQuote(amount_out=format_units(raw_out, decimals_out), price_impact=round(max(impact, 0.0), 4))

    # Mutations

    async def swap(self, token_in: str, token_out: str, amount_in: str, amount_out_min: str) -> TransactionRecord:
        """
        Swap an exact input amount for at least ``amount_out_min`` output.

        Both amounts are human-readable decimals in their token's units. The
        router is approved first when the current allowance is too small.
        """
        amount_in = require_amount(amount_in)
        amount_out_min = require_amount(amount_out_min)
        token_in = require_address(token_in, "Invalid token address")
        token_out = require_address(token_out, "Invalid token address")
        router, _ = self._dex("swap")
        account = self._require_signer("swap")

        try:
            raw_in, raw_min = await asyncio.gather(
                self._to_base(token_in, amount_in),
                self._to_base(token_out, amount_out_min),
            )
            await self._ensure_allowance(token_in, account.address, router.address, raw_in)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to swap", method="swapExactTokensForTokens") from e

        async def build(signer: LocalAccount) -> Dict[str, Any]:
            function = router.functions.swapExactTokensForTokens(
                raw_in, raw_min, [token_in, token_out], signer.address, self._deadline()
            )
            return await self._build_call(function, signer)

        return await self._submit_transaction(build, "swapExactTokensForTokens")

    async def add_liquidity(self, token_a: str, token_b: str, amount_a: str, amount_b: str) -> TransactionRecord:
        """Deposit both tokens; minimum amounts allow ``slippage_bps`` of drift."""
        amount_a = require_amount(amount_a)
        amount_b = require_amount(amount_b)
        token_a = require_address(token_a, "Invalid token address")
        token_b = require_address(token_b, "Invalid token address")
        router, _ = self._dex("add_liquidity")
        account = self._require_signer("add_liquidity")

        try:
            raw_a, raw_b = await asyncio.gather(
                self._to_base(token_a, amount_a),
                self._to_base(token_b, amount_b),
            )
            await self._ensure_allowance(token_a, account.address, router.address, raw_a)
            await self._ensure_allowance(token_b, account.address, router.address, raw_b)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to add liquidity", method="addLiquidity") from e

        async def build(signer: LocalAccount) -> Dict[str, Any]:
            function = router.functions.addLiquidity(
                token_a, token_b, raw_a, raw_b,
                self._min_amount(raw_a), self._min_amount(raw_b),
                signer.address, self._deadline()
            )
            return await self._build_call(function, signer)

        return await self._submit_transaction(build, "addLiquidity")

    async def remove_liquidity(self, token_a: str, token_b: str, lp_token_amount: str) -> TransactionRecord:
        """Burn LP tokens (18 decimals) for the underlying pair."""
        liquidity = require_units(lp_token_amount, LP_DECIMALS)
        token_a = require_address(token_a, "Invalid token address")
        token_b = require_address(token_b, "Invalid token address")
        router, _ = self._dex("remove_liquidity")
        account = self._require_signer("remove_liquidity")

        pool = await self.get_pool(token_a, token_b)
        total_supply = int(pool.total_supply)
        if total_supply == 0:
            raise PoolNotFoundError(pool.address)
        reserve_a, reserve_b = self._oriented(pool, token_a)
        min_a = self._min_amount(liquidity * reserve_a // total_supply)
        min_b = self._min_amount(liquidity * reserve_b // total_supply)

        try:
            await self._ensure_allowance(pool.address, account.address, router.address, liquidity)
        except PolygonError:
            raise
        except Exception as e:
            raise self._fail(e, "Failed to remove liquidity", method="removeLiquidity") from e

        async def build(signer: LocalAccount) -> Dict[str, Any]:
            function = router.functions.removeLiquidity(
                token_a, token_b, liquidity, min_a, min_b, signer.address, self._deadline()
            )
            return await self._build_call(function, signer)

        return await self._submit_transaction(build, "removeLiquidity")
