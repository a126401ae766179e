"""
LicenseChain Polygon - an async Python SDK for Polygon wallets, tokens, contracts, NFTs and DeFi pools.
"""
# Configuration
from .config import (
    NETWORKS, DEFAULT_NETWORK, ERC20_ABI, ERC721_ABI, ZERO_ADDRESS,
    PolygonConfig, get_network_config, get_network_by_chain_id
)

# Client and managers
from .client import LicenseChainPolygon
from .contracts import ContractManager
from .tokens import TokenManager
from .wallets import WalletManager
from .nft import NFTManager
from .licenses import LicenseManager
from .defi import DeFiManager

# Data model
from .models import (
    TransactionStatus, TransactionRecord, WalletInfo, WalletSummary, FeeData, TokenInfo,
    TokenTransfer, DeployedContract, ContractEvent, NFT, NFTRoyalty, License, DeFiPool, SwapQuote
)

# Retry
from .retry import RetryPolicy, retry, sleep

# Utilities
from .utils import (
    configure_logging, validate_address, validate_private_key, validate_tx_hash, validate_amount,
    format_address, parse_units, format_units, to_wei, from_wei, parse_ether, format_ether,
    parse_gwei, format_gwei, mask_private_key, mask_mnemonic
)

# Exceptions
from .exceptions import (
    ErrorCode, PolygonError, InvalidAddressError, InvalidAmountError, InsufficientBalanceError,
    SignerRequiredError, InvalidPrivateKeyError, TransactionFailedError, NotFoundError,
    LicenseNotFoundError, NFTNotFoundError, PoolNotFoundError, TransactionNotFoundError,
    NetworkError, ExplorerAPIError, ContractError, FeatureNotImplementedError, translate_error
)

__version__ = "1.0.0"

__all__ = [
    # Configuration
    'NETWORKS',
    'DEFAULT_NETWORK',
    'ERC20_ABI',
    'ERC721_ABI',
    'ZERO_ADDRESS',
    'PolygonConfig',
    'get_network_config',
    'get_network_by_chain_id',

    # Client and managers
    'LicenseChainPolygon',
    'ContractManager',
    'TokenManager',
    'WalletManager',
    'NFTManager',
    'LicenseManager',
    'DeFiManager',

    # Data model
    'TransactionStatus',
    'TransactionRecord',
    'WalletInfo',
    'WalletSummary',
    'FeeData',
    'TokenInfo',
    'TokenTransfer',
    'DeployedContract',
    'ContractEvent',
    'NFT',
    'NFTRoyalty',
    'License',
    'DeFiPool',
    'SwapQuote',

    # Retry
    'RetryPolicy',
    'retry',
    'sleep',

    # Utilities
    'configure_logging',
    'validate_address',
    'validate_private_key',
    'validate_tx_hash',
    'validate_amount',
    'format_address',
    'parse_units',
    'format_units',
    'to_wei',
    'from_wei',
    'parse_ether',
    'format_ether',
    'parse_gwei',
    'format_gwei',
    'mask_private_key',
    'mask_mnemonic',

    # Exceptions
    'ErrorCode',
    'PolygonError',
    'InvalidAddressError',
    'InvalidAmountError',
    'InsufficientBalanceError',
    'SignerRequiredError',
    'InvalidPrivateKeyError',
    'TransactionFailedError',
    'NotFoundError',
    'LicenseNotFoundError',
    'NFTNotFoundError',
    'PoolNotFoundError',
    'TransactionNotFoundError',
    'NetworkError',
    'ExplorerAPIError',
    'ContractError',
    'FeatureNotImplementedError',
    'translate_error',
]
