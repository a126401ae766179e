"""
Custom exceptions for the LicenseChain Polygon SDK.

Every public manager operation fails with one of the classes below. Each
carries a stable ``code`` from :class:`ErrorCode` and an optional ``data``
payload for programmatic handling.
"""
from enum import Enum
from typing import Any, Dict, Optional

from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound


class ErrorCode(str, Enum):
    """Closed set of error codes surfaced by the SDK."""
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    SIGNER_REQUIRED = "SIGNER_REQUIRED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    CONTRACT_ERROR = "CONTRACT_ERROR"
    NOT_IMPLEMENTED = "NOT_IMPLEMENTED"


class PolygonError(Exception):
    """
    Base exception for all SDK errors.

    Args:
        message (str): Human-readable description
        code (ErrorCode): Stable error code
        data (dict, optional): Structured payload
    """

    def __init__(self, message: str, code: ErrorCode, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = ErrorCode(code)
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for logging or API responses."""
        return {
            "code": self.code.value,
            "message": self.message,
            "data": self.data,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value!r}, message={self.message!r})"


class InvalidAddressError(PolygonError):
    """Raised when an address fails syntactic validation."""

    def __init__(self, address: Any, message: str = "Invalid address"):
        super().__init__(f"{message}: {address}", ErrorCode.INVALID_ADDRESS, {"address": address})


class InvalidAmountError(PolygonError):
    """Raised when an amount is zero, negative or unparsable."""

    def __init__(self, amount: Any):
        super().__init__(f"Invalid amount: {amount}", ErrorCode.INVALID_AMOUNT, {"amount": amount})


class InsufficientBalanceError(PolygonError):
    """Raised when the required amount exceeds the available balance."""

    def __init__(self, required: str, available: str):
        super().__init__(
            f"Insufficient balance. Required: {required}, Available: {available}",
            ErrorCode.INSUFFICIENT_BALANCE,
            {"required": str(required), "available": str(available)}
        )


class SignerRequiredError(PolygonError):
    """Raised when a state-changing call is made without a signing identity."""

    def __init__(self, action: str, message: Optional[str] = None):
        super().__init__(
            message or f"Signer required for {action}",
            ErrorCode.SIGNER_REQUIRED,
            {"action": action}
        )


class InvalidPrivateKeyError(SignerRequiredError):
    """Raised when a key or mnemonic cannot produce a signing identity."""

    def __init__(self, action: str = "signer setup"):
        super().__init__(action, message=f"Invalid private key or mnemonic for {action}")


class TransactionFailedError(PolygonError):
    """Raised when a transaction reverts on-chain or is lost."""

    def __init__(self, tx_hash: str, reason: str):
        super().__init__(
            f"Transaction failed: {reason}",
            ErrorCode.TRANSACTION_FAILED,
            {"hash": tx_hash, "reason": reason}
        )


class NotFoundError(PolygonError):
    """Raised when a lookup by identifier returns nothing."""
    kind = "Resource"

    def __init__(self, identifier: Any):
        super().__init__(f"{self.kind} not found: {identifier}", ErrorCode.NOT_FOUND, {"id": str(identifier)})


class LicenseNotFoundError(NotFoundError):
    kind = "License"


class NFTNotFoundError(NotFoundError):
    kind = "NFT"


class PoolNotFoundError(NotFoundError):
    kind = "Pool"


class TransactionNotFoundError(NotFoundError):
    kind = "Transaction"


class NetworkError(PolygonError):
    """Raised when the underlying transport or RPC call fails."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(
            f"Network error: {message}",
            ErrorCode.NETWORK_ERROR,
            {"original_error": str(original_error) if original_error is not None else None}
        )
        self.original_error = original_error


class ExplorerAPIError(NetworkError):
    """Raised for block explorer API errors."""
    pass


class ContractError(PolygonError):
    """Raised when a contract call reverts with a reason."""

    def __init__(self, method: str, reason: str):
        super().__init__(
            f"Contract error in {method}: {reason}",
            ErrorCode.CONTRACT_ERROR,
            {"method": method, "reason": reason}
        )


class FeatureNotImplementedError(PolygonError):
    """Raised by operations that have no backing contract interface."""

    def __init__(self, feature: str):
        super().__init__(
            f"Not implemented: {feature} requires a Polygon-specific contract",
            ErrorCode.NOT_IMPLEMENTED,
            {"feature": feature}
        )


def _revert_reason(error: ContractLogicError) -> str:
    reason = error.message if getattr(error, "message", None) else str(error)
    prefix = "execution reverted: "
    if reason.startswith(prefix):
        reason = reason[len(prefix):]
    return reason or "execution reverted"


def translate_error(
        error: BaseException,
        message: str,
        method: Optional[str] = None,
        tx_hash: Optional[str] = None
    ) -> PolygonError:
    """
    Map an arbitrary exception onto the SDK taxonomy.

    Errors that already belong to the taxonomy are returned unchanged so that
    callers never double-wrap.

    Args:
        error (BaseException): The caught exception
        message (str): Context for a network error
        method (str, optional): Contract method name, used for reverts
        tx_hash (str, optional): Transaction hash, used for lost transactions

    Returns:
        PolygonError: The error to raise
    """
    if isinstance(error, PolygonError):
        return error
    if isinstance(error, ContractLogicError):
        return ContractError(method or "call", _revert_reason(error))
    if isinstance(error, TimeExhausted):
        return TransactionFailedError(tx_hash or "", str(error) or "transaction was not mined before the timeout")
    if isinstance(error, TransactionNotFound):
        return TransactionNotFoundError(tx_hash or str(error))
    return NetworkError(f"{message}: {error}", error)
