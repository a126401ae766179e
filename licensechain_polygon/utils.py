"""
Utility functions for the LicenseChain Polygon SDK.

Validation, unit conversion and presentation helpers. Everything here is
pure and synchronous.
"""
import hashlib
import hmac
import logging
import re
import secrets
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import urlparse

import rlp
from ens import ENS
from eth_account import Account
from eth_keys import keys
from rich.logging import RichHandler
from web3 import Web3

from .config import NETWORKS
from .exceptions import InvalidAddressError, InvalidAmountError

logger = logging.getLogger("licensechain_polygon.utils")

ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')
TX_HASH_PATTERN = re.compile(r'^0x[a-fA-F0-9]{64}$')
HEX_PATTERN = re.compile(r'^0x[a-fA-F0-9]*$')
DECIMAL_PATTERN = re.compile(r'^(\d*)(?:\.(\d*))?$')
LICENSE_KEY_CHARS = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Union[int, str] = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the SDK's loggers.

    Console output goes through rich; an optional file handler uses a plain
    timestamped format.

    Args:
        level: Logging level name or number
        log_file (str, optional): Path of a log file to append to

    Returns:
        logging.Logger: The package root logger
    """
    root = logging.getLogger("licensechain_polygon")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    root.addHandler(RichHandler(rich_tracebacks=True, show_path=False))
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)
    return root


# Validation

def validate_address(address: Any) -> bool:
    """
    Validate if an address is a valid Polygon (EVM) address.

    Args:
        address (str): The address to validate

    Returns:
        bool: True if valid, False otherwise
    """
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        return False
    body = address[2:]
    # Mixed case means EIP-55, so the checksum must match
    if body == body.lower() or body == body.upper():
        return True
    return Web3.is_checksum_address(address)


def validate_private_key(private_key: Any) -> bool:
    """Return True if ``private_key`` can construct a signing account."""
    try:
        Account.from_key(private_key)
        return True
    except Exception:
        return False


def validate_tx_hash(tx_hash: Any) -> bool:
    """Return True for ``0x`` followed by 64 hex digits."""
    return isinstance(tx_hash, str) and bool(TX_HASH_PATTERN.match(tx_hash))


def validate_block_number(block_number: Union[int, str]) -> bool:
    try:
        return int(block_number) >= 0 and not isinstance(block_number, bool)
    except (TypeError, ValueError):
        return False


def validate_amount(amount: Any) -> bool:
    """
    Validate if an amount is a strictly positive decimal string.

    Args:
        amount: The amount to validate

    Returns:
        bool: True if valid, False otherwise
    """
    if amount is None or isinstance(amount, bool):
        return False
    text = str(amount).strip()
    match = DECIMAL_PATTERN.match(text)
    if not text or not match or not (match.group(1) or match.group(2)):
        return False
    return any(c in '123456789' for c in text)


def require_amount(amount: Any) -> str:
    """
    Return ``amount`` as a stripped string or raise :class:`InvalidAmountError`.
    """
    if not validate_amount(amount):
        raise InvalidAmountError(amount)
    return str(amount).strip()


def require_units(amount: Any, decimals: int = 18) -> int:
    """
    Convert a positive decimal amount into base units.

    Raises:
        InvalidAmountError: If the amount is not positive or carries more
            fractional digits than ``decimals``
    """
    text = require_amount(amount)
    try:
        return int(parse_units(text, decimals))
    except ValueError as e:
        raise InvalidAmountError(amount) from e


def require_gas_price(gas_price: Any) -> str:
    """Return a positive gwei gas price that converts to whole wei."""
    require_units(gas_price, 9)
    return str(gas_price).strip()


def require_address(address: Any, message: str = "Invalid address") -> str:
    """
    Return the checksum form of ``address`` or raise :class:`InvalidAddressError`.
    """
    if not validate_address(address):
        raise InvalidAddressError(address, message)
    return Web3.to_checksum_address(address)


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
        return bool(parsed.scheme and (parsed.netloc or parsed.path))
    except (TypeError, ValueError, AttributeError):
        return False


def validate_email(email: str) -> bool:
    return bool(re.match(r'^[^\s@]+@[^\s@]+\.[^\s@]+$', email or ''))


def validate_license_key(license_key: str) -> bool:
    """License keys are 32 upper-case alphanumerics."""
    return isinstance(license_key, str) and len(license_key) == 32 and bool(re.match(r'^[A-Z0-9]+$', license_key))


def generate_license_key() -> str:
    return ''.join(secrets.choice(LICENSE_KEY_CHARS) for _ in range(32))


def sanitize_input(text: str) -> str:
    """Strip angle brackets, ``javascript:`` and inline event handlers."""
    text = re.sub(r'[<>]', '', text)
    text = re.sub(r'javascript:', '', text, flags=re.IGNORECASE)
    return re.sub(r'on\w+=', '', text, flags=re.IGNORECASE)


# Formatting

def format_address(address: str) -> str:
    """Return the checksum address or raise :class:`InvalidAddressError`."""
    return require_address(address)


def format_tx_hash(tx_hash: str) -> str:
    return tx_hash.lower()


def parse_units(value: Union[str, int], decimals: int = 18) -> str:
    """
    Convert a human decimal amount into base units.

    The conversion is exact: ``parse_units("1.5", 18)`` is
    ``"1500000000000000000"``. Fractional digits beyond ``decimals`` are only
    accepted when they are zeros.

    Args:
        value: Non-negative decimal string (or int)
        decimals (int): Fixed-point scale

    Returns:
        str: Base-unit integer as a string

    Raises:
        ValueError: If the value is malformed, negative or too precise
    """
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")
    text = str(value).strip()
    match = DECIMAL_PATTERN.match(text)
    if not text or not match or not (match.group(1) or match.group(2)):
        raise ValueError(f"Invalid decimal value: {value!r}")

    whole, fraction = match.group(1) or '0', match.group(2) or ''
    if len(fraction) > decimals:
        extra = fraction[decimals:]
        if extra.strip('0'):
            raise ValueError(f"Fractional component of {value!r} exceeds {decimals} decimals")
        fraction = fraction[:decimals]

    base = int(whole) * 10 ** decimals + int(fraction.ljust(decimals, '0') or '0')
    return str(base)


def format_units(value: Union[str, int], decimals: int = 18) -> str:
    """
    Convert a base-unit integer into its minimal decimal representation.

    ``format_units("1000000000000000000", 18)`` is ``"1.0"``. With
    ``decimals == 0`` the integer is returned unchanged.

    Raises:
        ValueError: If the value is not a non-negative integer
    """
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")
    text = str(value).strip()
    if not text.isdigit():
        raise ValueError(f"Invalid base-unit value: {value!r}")

    amount = int(text)
    if decimals == 0:
        return str(amount)
    whole, fraction = divmod(amount, 10 ** decimals)
    fraction_text = str(fraction).rjust(decimals, '0').rstrip('0') or '0'
    return f"{whole}.{fraction_text}"


def to_wei(value: Union[str, int]) -> str:
    return parse_units(value, 18)


def from_wei(value: Union[str, int]) -> str:
    return format_units(value, 18)


parse_ether = to_wei
format_ether = from_wei


def parse_gwei(value: Union[str, int]) -> str:
    return parse_units(value, 9)


def format_gwei(value: Union[str, int]) -> str:
    return format_units(value, 9)


def format_token_amount(amount: Union[str, int], decimals: int, symbol: str = '') -> str:
    formatted = format_units(amount, decimals)
    return f"{formatted} {symbol}" if symbol else formatted


def parse_token_amount(amount: Union[str, int], decimals: int) -> str:
    return parse_units(amount, decimals)


def calculate_gas_price(gas_price: Union[str, int], gas_limit: Union[str, int]) -> str:
    """Maximum fee for a transaction: ``gas_price * gas_limit``."""
    return str(int(gas_price) * int(gas_limit))


def calculate_gas_cost(gas_used: Union[str, int], gas_price: Union[str, int]) -> str:
    return str(int(gas_used) * int(gas_price))


def keccak256(text: str) -> str:
    return Web3.to_hex(Web3.keccak(text=text))


def sha256(text: str) -> str:
    return '0x' + hashlib.sha256(text.encode('utf-8')).hexdigest()


# Hex and address derivation

def is_hex_string(value: Any, length: Optional[int] = None) -> bool:
    """True for ``0x``-prefixed hex, of exactly ``length`` bytes when given."""
    if not isinstance(value, str) or not HEX_PATTERN.match(value):
        return False
    return length is None or len(value) == 2 + 2 * length


def hexlify(value: Union[bytes, int, str]) -> str:
    """
    Even-length ``0x`` hex for bytes, a non-negative int or a hex string.

    Raises:
        ValueError: For negative integers or non-hex strings
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot hexlify {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Cannot hexlify negative value {value}")
        body = format(value, 'x')
    elif isinstance(value, str):
        if not is_hex_string(value):
            raise ValueError(f"Invalid hex string: {value!r}")
        body = value[2:].lower()
    else:
        body = bytes(value).hex()
    if len(body) % 2:
        body = '0' + body
    return '0x' + body


def hex_zero_pad(value: Union[bytes, int, str], length: int) -> str:
    """Left-pad ``value`` with zero bytes to ``length`` bytes."""
    body = hexlify(value)[2:]
    if len(body) > length * 2:
        raise ValueError(f"Value is longer than {length} bytes")
    return '0x' + body.rjust(length * 2, '0')


def _hex_bytes(value: str, length: int, name: str) -> bytes:
    if not is_hex_string(value, length):
        raise ValueError(f"{name} must be {length} bytes of hex")
    return Web3.to_bytes(hexstr=value)


def get_contract_address(sender: str, nonce: int) -> str:
    """Address of the contract ``sender`` creates with ``nonce`` (CREATE)."""
    deployer = Web3.to_bytes(hexstr=require_address(sender))
    return Web3.to_checksum_address(Web3.keccak(rlp.encode([deployer, int(nonce)]))[12:])


def get_create2_address(sender: str, salt: str, init_code_hash: str) -> str:
    """
    Address of a CREATE2 deployment.

    Args:
        sender (str): Deploying contract
        salt (str): 32-byte salt as hex
        init_code_hash (str): keccak256 of the creation code as hex

    Returns:
        str: Checksummed contract address
    """
    payload = (
        b'\xff'
        + Web3.to_bytes(hexstr=require_address(sender))
        + _hex_bytes(salt, 32, "salt")
        + _hex_bytes(init_code_hash, 32, "init_code_hash")
    )
    return Web3.to_checksum_address(Web3.keccak(payload)[12:])


def compute_address(key: str) -> str:
    """
    Address for a private key or a public key.

    Public keys may be compressed (33 bytes), uncompressed with the ``04``
    prefix (65 bytes) or raw (64 bytes).
    """
    if not is_hex_string(key):
        raise ValueError("Key must be hex")
    raw = Web3.to_bytes(hexstr=key)
    if len(raw) == 32:
        return Account.from_key(raw).address
    if len(raw) == 33:
        public_key = keys.PublicKey.from_compressed_bytes(raw)
    elif len(raw) == 65 and raw[0] == 4:
        public_key = keys.PublicKey(raw[1:])
    elif len(raw) == 64:
        public_key = keys.PublicKey(raw)
    else:
        raise ValueError(f"Unsupported key length: {len(raw)} bytes")
    return public_key.to_checksum_address()


def recover_address(digest: str, signature: str) -> str:
    """Signer of a 32-byte ``digest`` given a 65-byte ``r || s || v`` signature."""
    sig = bytearray(_hex_bytes(signature, 65, "signature"))
    if sig[64] >= 27:
        sig[64] -= 27
    public_key = keys.Signature(bytes(sig)).recover_public_key_from_msg_hash(_hex_bytes(digest, 32, "digest"))
    return public_key.to_checksum_address()


def namehash(name: str) -> str:
    """ENS namehash of ``name``."""
    return Web3.to_hex(ENS.namehash(name))


def truncate_address(address: str, start_length: int = 6, end_length: int = 4) -> str:
    if len(address) <= start_length + end_length:
        return address
    return f"{address[:start_length]}...{address[-end_length:]}"


def truncate_hash(tx_hash: str, start_length: int = 10, end_length: int = 6) -> str:
    if len(tx_hash) <= start_length + end_length:
        return tx_hash
    return f"{tx_hash[:start_length]}...{tx_hash[-end_length:]}"


def format_bytes(size: Union[int, float]) -> str:
    """Human-readable byte size, e.g. ``format_bytes(1536) == "1.5 KB"``."""
    units = ['B', 'KB', 'MB', 'GB', 'TB', 'PB']
    size = max(float(size), 0.0)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {units[unit_index]}"


def format_duration(seconds: Union[int, float]) -> str:
    """Compact duration, e.g. ``"2m 5s"`` or ``"1d 3h"``."""
    seconds = max(int(seconds), 0)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    if seconds < 86400:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
    return f"{seconds // 86400}d {(seconds % 86400) // 3600}h"


def mask_private_key(private_key: str) -> str:
    """
    Mask a private key for display or logging.

    Args:
        private_key (str): The private key to mask

    Returns:
        str: The masked private key
    """
    if not private_key:
        return ""
    key = private_key[2:] if private_key.startswith('0x') else private_key
    if len(key) > 8:
        return f"0x{key[:4]}...{key[-4:]}"
    return "0x****"


def mask_mnemonic(mnemonic: str) -> str:
    """Show only the first and last word of a mnemonic phrase."""
    if not mnemonic:
        return ""
    words = mnemonic.split()
    if len(words) <= 2:
        return "****"
    return f"{words[0]} ... {words[-1]}"


def get_block_explorer_url(tx_hash: str, network: str = 'polygon') -> str:
    base_url = NETWORKS.get(network.lower(), NETWORKS['polygon'])['explorer_url']
    return f"{base_url}/tx/{tx_hash}"


def get_address_explorer_url(address: str, network: str = 'polygon') -> str:
    base_url = NETWORKS.get(network.lower(), NETWORKS['polygon'])['explorer_url']
    return f"{base_url}/address/{address}"


def create_webhook_signature(payload: str, secret: str) -> str:
    """HMAC-SHA256 signature of ``payload`` keyed by ``secret``."""
    return '0x' + hmac.new(secret.encode('utf-8'), payload.encode('utf-8'), hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: str, signature: str, secret: str) -> bool:
    return hmac.compare_digest(create_webhook_signature(payload, secret), signature or '')


def chunk_list(items: Sequence[Any], chunk_size: int) -> List[List[Any]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return [list(items[i:i + chunk_size]) for i in range(0, len(items), chunk_size)]


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``source`` into a copy of ``target``."""
    result = dict(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result
