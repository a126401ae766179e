"""
Data records returned by the SDK managers.
"""
import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from web3 import Web3

from .exceptions import ContractError

JSONValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]
Metadata = Dict[str, JSONValue]


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


def status_from_receipt(receipt: Optional[Mapping[str, Any]]) -> TransactionStatus:
    """
    Derive the transaction status from a chain receipt.

    No receipt means the transaction is still pending; a numeric status of 1
    is success and anything else is a failure.
    """
    if receipt is None:
        return TransactionStatus.PENDING
    return TransactionStatus.SUCCESS if receipt.get('status') == 1 else TransactionStatus.FAILED


def _to_str(value: Any, default: str = '0') -> str:
    return str(value) if value is not None else default


def _to_hex(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value)


def to_plain(value: Any) -> Any:
    """Convert web3 AttributeDicts and HexBytes into JSON-friendly values."""
    return json.loads(Web3.to_json(value))


def normalize_metadata(metadata: Optional[Mapping[str, Any]]) -> Metadata:
    """
    Check that ``metadata`` is a string-keyed, JSON-serializable mapping.

    Returns:
        dict: An insertion-ordered plain copy

    Raises:
        ContractError: If a key is not a string or a value cannot be serialized
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise ContractError("metadata", f"expected a mapping, got {type(metadata).__name__}")
    for key in metadata:
        if not isinstance(key, str):
            raise ContractError("metadata", f"keys must be strings, got {key!r}")
    try:
        return json.loads(json.dumps(dict(metadata)))
    except (TypeError, ValueError) as e:
        raise ContractError("metadata", f"values must be JSON serializable: {e}") from e


@dataclass
class TransactionRecord:
    """Uniform view of a transaction and its receipt."""
    hash: str
    from_address: str
    to: str
    value: str
    gas_used: str
    gas_price: str
    status: TransactionStatus
    block_number: Optional[int] = None
    logs: List[Dict[str, Any]] = field(default_factory=list)
    gas_limit: str = '0'
    block_hash: str = ''
    transaction_index: Optional[int] = None
    effective_gas_price: str = '0'

    @classmethod
    def from_chain(
            cls,
            tx: Optional[Mapping[str, Any]],
            receipt: Optional[Mapping[str, Any]],
            default_to: str = ''
        ) -> "TransactionRecord":
        """
        Build a record from a transaction, its receipt, or both.

        Args:
            tx: Transaction as returned by ``eth_getTransactionByHash``
            receipt: Receipt, or None while the transaction is pending
            default_to (str): Used when neither source names a recipient

        Returns:
            TransactionRecord: The normalized record
        """
        tx = tx or {}
        source = receipt or {}
        tx_hash = tx.get('hash') or source.get('transactionHash')
        return cls(
            hash=_to_hex(tx_hash),
            from_address=tx.get('from') or source.get('from') or '',
            to=tx.get('to') or source.get('to') or source.get('contractAddress') or default_to,
            value=_to_str(tx.get('value')),
            gas_used=_to_str(source.get('gasUsed')),
            gas_price=_to_str(tx.get('gasPrice') or source.get('effectiveGasPrice')),
            status=status_from_receipt(receipt),
            block_number=source.get('blockNumber', tx.get('blockNumber')),
            logs=to_plain(list(source.get('logs', []))) if receipt else [],
            gas_limit=_to_str(tx.get('gas')),
            block_hash=_to_hex(source.get('blockHash') or tx.get('blockHash')),
            transaction_index=source.get('transactionIndex', tx.get('transactionIndex')),
            effective_gas_price=_to_str(source.get('effectiveGasPrice')),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['from'] = data.pop('from_address')
        data['status'] = self.status.value
        return data


@dataclass
class WalletInfo:
    address: str
    private_key: str = field(repr=False)
    mnemonic: str = field(default='', repr=False)
    public_key: str = ''
    index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class WalletSummary:
    address: str
    balance: str
    transaction_count: int
    is_contract: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FeeData:
    gas_price: str
    max_fee_per_gas: Optional[str] = None
    max_priority_fee_per_gas: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TokenInfo:
    address: str
    name: str
    symbol: str
    decimals: int
    total_supply: str
    type: str = 'ERC20'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TokenTransfer:
    from_address: str
    to: str
    value: str
    transaction_hash: str
    block_number: int
    log_index: int

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> "TokenTransfer":
        args = event['args']
        return cls(
            from_address=args['from'],
            to=args['to'],
            value=str(args['value']),
            transaction_hash=_to_hex(event.get('transactionHash')),
            block_number=event.get('blockNumber'),
            log_index=event.get('logIndex'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['from'] = data.pop('from_address')
        return data


@dataclass
class DeployedContract:
    address: str
    abi: List[Dict[str, Any]] = field(repr=False)
    bytecode: str = field(repr=False)
    deployed_at: str
    transaction_hash: str
    gas_used: str
    gas_price: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ContractEvent:
    address: str
    block_number: int
    block_hash: str
    transaction_hash: str
    transaction_index: int
    log_index: int
    removed: bool
    args: Dict[str, Any]
    topics: List[str] = field(default_factory=list)
    data: str = ''

    @classmethod
    def from_log(cls, event: Mapping[str, Any]) -> "ContractEvent":
        return cls(
            address=event.get('address', ''),
            block_number=event.get('blockNumber'),
            block_hash=_to_hex(event.get('blockHash')),
            transaction_hash=_to_hex(event.get('transactionHash')),
            transaction_index=event.get('transactionIndex'),
            log_index=event.get('logIndex'),
            removed=bool(event.get('removed', False)),
            args=to_plain(dict(event.get('args', {}))),
            topics=[_to_hex(topic) for topic in event.get('topics', [])],
            data=_to_hex(event.get('data')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NFTRoyalty:
    recipient: str
    percentage: float


@dataclass
class NFT:
    token_id: str
    contract_address: str
    owner: str
    token_uri: str = ''
    metadata: Metadata = field(default_factory=dict)
    royalty: Optional[NFTRoyalty] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class License:
    id: str
    owner: str
    product_id: str
    license_type: str
    status: str
    created_at: int
    expires_at: Optional[int] = None
    metadata: Metadata = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DeFiPool:
    address: str
    token0: str
    token1: str
    reserve0: str
    reserve1: str
    total_supply: str
    fee: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SwapQuote:
    amount_out: str
    price_impact: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
