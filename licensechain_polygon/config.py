"""
Configuration settings for the LicenseChain Polygon SDK.
"""
import os
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional

from dotenv import load_dotenv

from .retry import RetryPolicy

# Load environment variables from .env file
load_dotenv()

# Configure logger
logger = logging.getLogger("licensechain_polygon.config")


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


# Network configurations - use environment variables if available
NETWORKS = {
    'polygon': {
        'name': 'Polygon Mainnet',
        'rpc': os.getenv('POLYGON_MAINNET_RPC', 'https://polygon-rpc.com'),
        'chain_id': int(os.getenv('POLYGON_MAINNET_CHAIN_ID', '137')),
        'explorer_url': os.getenv('POLYGON_MAINNET_EXPLORER_URL', 'https://polygonscan.com'),
        'native_symbol': 'POL',
        # QuickSwap V2
        'dex_router': os.getenv('POLYGON_MAINNET_DEX_ROUTER', '0xa5E0829CaCEd8fFDD4De3c43696c57F7D7A678ff'),
        'dex_factory': os.getenv('POLYGON_MAINNET_DEX_FACTORY', '0x5757371414417b8C6CAad45bAeF941aBc7d3Ab32'),
    },
    'amoy': {
        'name': 'Polygon Amoy Testnet',
        'rpc': os.getenv('POLYGON_AMOY_RPC', 'https://rpc-amoy.polygon.technology'),
        'chain_id': int(os.getenv('POLYGON_AMOY_CHAIN_ID', '80002')),
        'explorer_url': os.getenv('POLYGON_AMOY_EXPLORER_URL', 'https://amoy.polygonscan.com'),
        'native_symbol': 'POL',
        'dex_router': os.getenv('POLYGON_AMOY_DEX_ROUTER'),
        'dex_factory': os.getenv('POLYGON_AMOY_DEX_FACTORY'),
    },
    'mumbai': {
        'name': 'Polygon Mumbai Testnet',
        'rpc': os.getenv('POLYGON_MUMBAI_RPC', 'https://rpc-mumbai.maticvigil.com'),
        'chain_id': int(os.getenv('POLYGON_MUMBAI_CHAIN_ID', '80001')),
        'explorer_url': os.getenv('POLYGON_MUMBAI_EXPLORER_URL', 'https://mumbai.polygonscan.com'),
        'native_symbol': 'MATIC',
        'dex_router': os.getenv('POLYGON_MUMBAI_DEX_ROUTER'),
        'dex_factory': os.getenv('POLYGON_MUMBAI_DEX_FACTORY'),
    }
}

DEFAULT_NETWORK = os.getenv('POLYGON_NETWORK', 'polygon')

# Transaction settings
DEFAULT_GAS_LIMIT = int(os.getenv('DEFAULT_GAS_LIMIT', '0')) or None
GAS_LIMIT_BUFFER = float(os.getenv('GAS_LIMIT_BUFFER', '1.2'))
MAX_TRANSACTION_TIMEOUT = int(os.getenv('MAX_TRANSACTION_TIMEOUT', '180'))  # seconds
REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '30'))  # seconds

# Retry settings
MAX_RETRIES = int(os.getenv('MAX_RETRIES', '3'))
RETRY_BASE_DELAY_MS = int(os.getenv('RETRY_BASE_DELAY_MS', '1000'))
RETRY_ATTEMPT_TIMEOUT = _optional_float('RETRY_ATTEMPT_TIMEOUT')  # seconds

# DEX settings
DEX_FEE_BPS = int(os.getenv('DEX_FEE_BPS', '30'))
DEX_SLIPPAGE_BPS = int(os.getenv('DEX_SLIPPAGE_BPS', '50'))
DEX_DEADLINE_SECONDS = int(os.getenv('DEX_DEADLINE_SECONDS', '1200'))

# Off-chain metadata
IPFS_GATEWAY = os.getenv('IPFS_GATEWAY', 'https://ipfs.io/ipfs/')

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'

# Common ERC20 ABI
ERC20_ABI = [
    {"constant": True, "inputs": [], "name": "name",
     "outputs": [{"name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [], "name": "symbol",
     "outputs": [{"name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [], "name": "decimals",
     "outputs": [{"name": "", "type": "uint8"}], "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [], "name": "totalSupply",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"constant": True, "inputs": [{"name": "_owner", "type": "address"}], "name": "balanceOf",
     "outputs": [{"name": "balance", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"constant": True,
     "inputs": [{"name": "_owner", "type": "address"}, {"name": "_spender", "type": "address"}],
     "name": "allowance",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"constant": False,
     "inputs": [{"name": "_to", "type": "address"}, {"name": "_value", "type": "uint256"}],
     "name": "transfer",
     "outputs": [{"name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"},
    {"constant": False,
     "inputs": [{"name": "_spender", "type": "address"}, {"name": "_value", "type": "uint256"}],
     "name": "approve",
     "outputs": [{"name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"},
    {"constant": False,
     "inputs": [{"name": "_from", "type": "address"}, {"name": "_to", "type": "address"},
                {"name": "_value", "type": "uint256"}],
     "name": "transferFrom",
     "outputs": [{"name": "", "type": "bool"}], "stateMutability": "nonpayable", "type": "function"},
    {"anonymous": False,
     "inputs": [{"indexed": True, "name": "from", "type": "address"},
                {"indexed": True, "name": "to", "type": "address"},
                {"indexed": False, "name": "value", "type": "uint256"}],
     "name": "Transfer", "type": "event"},
]

# ERC721 + Enumerable + Metadata + ERC2981 royalties
ERC721_ABI = [
    {"inputs": [{"name": "owner", "type": "address"}], "name": "balanceOf",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "tokenId", "type": "uint256"}], "name": "ownerOf",
     "outputs": [{"name": "", "type": "address"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "tokenId", "type": "uint256"}], "name": "tokenURI",
     "outputs": [{"name": "", "type": "string"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "tokenId", "type": "uint256"}], "name": "getApproved",
     "outputs": [{"name": "", "type": "address"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "owner", "type": "address"}, {"name": "operator", "type": "address"}],
     "name": "isApprovedForAll",
     "outputs": [{"name": "", "type": "bool"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "totalSupply",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "owner", "type": "address"}, {"name": "index", "type": "uint256"}],
     "name": "tokenOfOwnerByIndex",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "tokenId", "type": "uint256"}, {"name": "salePrice", "type": "uint256"}],
     "name": "royaltyInfo",
     "outputs": [{"name": "receiver", "type": "address"}, {"name": "royaltyAmount", "type": "uint256"}],
     "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "to", "type": "address"}, {"name": "tokenId", "type": "uint256"}],
     "name": "approve", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "operator", "type": "address"}, {"name": "approved", "type": "bool"}],
     "name": "setApprovalForAll", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "from", "type": "address"}, {"name": "to", "type": "address"},
                {"name": "tokenId", "type": "uint256"}],
     "name": "safeTransferFrom", "outputs": [], "stateMutability": "nonpayable", "type": "function"},
]

UNISWAP_V2_FACTORY_ABI = [
    {"inputs": [{"name": "tokenA", "type": "address"}, {"name": "tokenB", "type": "address"}],
     "name": "getPair",
     "outputs": [{"name": "pair", "type": "address"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "", "type": "uint256"}], "name": "allPairs",
     "outputs": [{"name": "pair", "type": "address"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "allPairsLength",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
]

UNISWAP_V2_PAIR_ABI = [
    {"inputs": [], "name": "token0",
     "outputs": [{"name": "", "type": "address"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "token1",
     "outputs": [{"name": "", "type": "address"}], "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "getReserves",
     "outputs": [{"name": "reserve0", "type": "uint112"}, {"name": "reserve1", "type": "uint112"},
                 {"name": "blockTimestampLast", "type": "uint32"}],
     "stateMutability": "view", "type": "function"},
    {"inputs": [], "name": "totalSupply",
     "outputs": [{"name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
]

UNISWAP_V2_ROUTER_ABI = [
    {"inputs": [{"name": "amountIn", "type": "uint256"}, {"name": "path", "type": "address[]"}],
     "name": "getAmountsOut",
     "outputs": [{"name": "amounts", "type": "uint256[]"}], "stateMutability": "view", "type": "function"},
    {"inputs": [{"name": "amountIn", "type": "uint256"}, {"name": "amountOutMin", "type": "uint256"},
                {"name": "path", "type": "address[]"}, {"name": "to", "type": "address"},
                {"name": "deadline", "type": "uint256"}],
     "name": "swapExactTokensForTokens",
     "outputs": [{"name": "amounts", "type": "uint256[]"}], "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "tokenA", "type": "address"}, {"name": "tokenB", "type": "address"},
                {"name": "amountADesired", "type": "uint256"}, {"name": "amountBDesired", "type": "uint256"},
                {"name": "amountAMin", "type": "uint256"}, {"name": "amountBMin", "type": "uint256"},
                {"name": "to", "type": "address"}, {"name": "deadline", "type": "uint256"}],
     "name": "addLiquidity",
     "outputs": [{"name": "amountA", "type": "uint256"}, {"name": "amountB", "type": "uint256"},
                 {"name": "liquidity", "type": "uint256"}],
     "stateMutability": "nonpayable", "type": "function"},
    {"inputs": [{"name": "tokenA", "type": "address"}, {"name": "tokenB", "type": "address"},
                {"name": "liquidity", "type": "uint256"}, {"name": "amountAMin", "type": "uint256"},
                {"name": "amountBMin", "type": "uint256"}, {"name": "to", "type": "address"},
                {"name": "deadline", "type": "uint256"}],
     "name": "removeLiquidity",
     "outputs": [{"name": "amountA", "type": "uint256"}, {"name": "amountB", "type": "uint256"}],
     "stateMutability": "nonpayable", "type": "function"},
]


def get_network_config(network: str) -> Dict[str, Any]:
    """
    Get configuration for a specific network.

    Args:
        network (str): Network name ('polygon', 'amoy' or 'mumbai')

    Returns:
        dict: Network configuration
    """
    return NETWORKS.get(network, NETWORKS['polygon'])


def get_network_by_chain_id(chain_id: int) -> Optional[Dict[str, Any]]:
    """Look up a network configuration by chain id."""
    for name, network in NETWORKS.items():
        if network['chain_id'] == chain_id:
            return dict(network, key=name)
    return None


@dataclass(frozen=True)
class PolygonConfig:
    """
    Immutable connection and transaction settings shared by every manager.

    ``gas_price`` is expressed in gwei. Reconfiguration never mutates an
    instance; use :meth:`updated` to obtain a new snapshot.
    """
    rpc_url: str
    private_key: Optional[str] = field(default=None, repr=False)
    network_id: int = 137
    gas_price: Optional[str] = None
    gas_limit: Optional[int] = DEFAULT_GAS_LIMIT
    max_retries: int = MAX_RETRIES
    retry_delay_ms: int = RETRY_BASE_DELAY_MS
    retry_timeout: Optional[float] = RETRY_ATTEMPT_TIMEOUT
    transaction_timeout: int = MAX_TRANSACTION_TIMEOUT
    request_timeout: int = REQUEST_TIMEOUT
    dex_router_address: Optional[str] = None
    dex_factory_address: Optional[str] = None
    dex_fee_bps: int = DEX_FEE_BPS
    slippage_bps: int = DEX_SLIPPAGE_BPS

    def __post_init__(self):
        if not self.rpc_url:
            raise ValueError("rpc_url is required")
        # Validates the retry settings eagerly
        self.retry_policy
        if self.gas_price is not None:
            # utils imports this module
            from .utils import require_gas_price
            require_gas_price(self.gas_price)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            base_delay_ms=self.retry_delay_ms,
            attempt_timeout=self.retry_timeout
        )

    @property
    def network_name(self) -> str:
        network = get_network_by_chain_id(self.network_id)
        return network['name'] if network else f"chain-{self.network_id}"

    def updated(self, **changes) -> "PolygonConfig":
        """Return a new snapshot with ``changes`` applied."""
        return replace(self, **changes)

    @classmethod
    def for_network(cls, network: str = DEFAULT_NETWORK, **overrides) -> "PolygonConfig":
        """
        Build a configuration from one of the known networks.

        Args:
            network (str): Key in :data:`NETWORKS`
            **overrides: Any field of :class:`PolygonConfig`

        Returns:
            PolygonConfig: The configuration
        """
        network_config = get_network_config(network)
        values = {
            'rpc_url': network_config['rpc'],
            'network_id': network_config['chain_id'],
            'dex_router_address': network_config.get('dex_router'),
            'dex_factory_address': network_config.get('dex_factory'),
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(cls, **overrides) -> "PolygonConfig":
        """Build a configuration from environment variables."""
        values = {}
        if os.getenv('POLYGON_RPC_URL'):
            values['rpc_url'] = os.getenv('POLYGON_RPC_URL')
        if os.getenv('POLYGON_PRIVATE_KEY'):
            values['private_key'] = os.getenv('POLYGON_PRIVATE_KEY')
        if os.getenv('POLYGON_GAS_PRICE'):
            values['gas_price'] = os.getenv('POLYGON_GAS_PRICE')
        if os.getenv('POLYGON_GAS_LIMIT'):
            values['gas_limit'] = int(os.getenv('POLYGON_GAS_LIMIT'))
        values.update(overrides)
        if DEFAULT_NETWORK not in NETWORKS:
            logger.warning(f"Unknown network {DEFAULT_NETWORK!r}, falling back to Polygon Mainnet")
        return cls.for_network(DEFAULT_NETWORK, **values)
