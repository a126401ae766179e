"""
Tests for the error taxonomy and error translation.
"""
import pytest
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from licensechain_polygon.exceptions import (
    ContractError, ErrorCode, ExplorerAPIError, FeatureNotImplementedError, InsufficientBalanceError,
    InvalidAddressError, InvalidAmountError, InvalidPrivateKeyError, LicenseNotFoundError, NetworkError,
    NFTNotFoundError, PolygonError, SignerRequiredError, TransactionFailedError, TransactionNotFoundError,
    translate_error
)


class TestErrorPayloads:

    def test_invalid_address(self):
        error = InvalidAddressError("0x123")
        assert error.code == ErrorCode.INVALID_ADDRESS
        assert error.data == {"address": "0x123"}
        assert "0x123" in error.message

    def test_invalid_amount(self):
        error = InvalidAmountError("0")
        assert error.code == ErrorCode.INVALID_AMOUNT
        assert error.data == {"amount": "0"}

    def test_insufficient_balance(self):
        error = InsufficientBalanceError("2.0", "1.5")
        assert error.code == ErrorCode.INSUFFICIENT_BALANCE
        assert error.data == {"required": "2.0", "available": "1.5"}

    def test_signer_required(self):
        error = SignerRequiredError("transfer_token")
        assert error.code == ErrorCode.SIGNER_REQUIRED
        assert error.data == {"action": "transfer_token"}

    def test_invalid_private_key_is_signer_error(self):
        error = InvalidPrivateKeyError("set_signer")
        assert isinstance(error, SignerRequiredError)
        assert error.code == ErrorCode.SIGNER_REQUIRED

    def test_transaction_failed(self):
        error = TransactionFailedError("0xabc", "reverted")
        assert error.code == ErrorCode.TRANSACTION_FAILED
        assert error.data == {"hash": "0xabc", "reason": "reverted"}

    @pytest.mark.parametrize("cls, kind", [
        (LicenseNotFoundError, "License"),
        (NFTNotFoundError, "NFT"),
        (TransactionNotFoundError, "Transaction"),
    ])
    def test_not_found(self, cls, kind):
        error = cls("42")
        assert error.code == ErrorCode.NOT_FOUND
        assert error.data == {"id": "42"}
        assert error.message == f"{kind} not found: 42"

    def test_network_error_keeps_original(self):
        cause = ConnectionError("refused")
        error = NetworkError("Failed to get balance", cause)
        assert error.code == ErrorCode.NETWORK_ERROR
        assert error.original_error is cause
        assert error.data == {"original_error": "refused"}

    def test_explorer_error_is_network_error(self):
        assert ExplorerAPIError("rate limited").code == ErrorCode.NETWORK_ERROR

    def test_contract_error(self):
        error = ContractError("transfer", "insufficient allowance")
        assert error.code == ErrorCode.CONTRACT_ERROR
        assert error.data == {"method": "transfer", "reason": "insufficient allowance"}

    def test_not_implemented(self):
        error = FeatureNotImplementedError("mint")
        assert error.code == ErrorCode.NOT_IMPLEMENTED
        assert error.data == {"feature": "mint"}

    def test_to_dict(self):
        assert InvalidAmountError("-1").to_dict() == {
            "code": "INVALID_AMOUNT",
            "message": "Invalid amount: -1",
            "data": {"amount": "-1"},
        }


class TestTranslateError:

    def test_taxonomy_errors_pass_through(self):
        error = InvalidAmountError("0")
        assert translate_error(error, "ignored") is error

    def test_revert_becomes_contract_error(self):
        error = translate_error(ContractLogicError("execution reverted: not owner"), "ignored", method="burn")
        assert isinstance(error, ContractError)
        assert error.data == {"method": "burn", "reason": "not owner"}

    def test_timeout_becomes_transaction_failed(self):
        error = translate_error(TimeExhausted("timed out"), "ignored", tx_hash="0xabc")
        assert isinstance(error, TransactionFailedError)
        assert error.data["hash"] == "0xabc"

    def test_unknown_transaction_becomes_not_found(self):
        error = translate_error(TransactionNotFound("missing"), "ignored", tx_hash="0xabc")
        assert isinstance(error, TransactionNotFoundError)
        assert error.data == {"id": "0xabc"}

    def test_anything_else_is_network_error(self):
        cause = OSError("connection reset")
        error = translate_error(cause, "Failed to get block")
        assert isinstance(error, NetworkError)
        assert error.original_error is cause
        assert "Failed to get block" in error.message

    def test_all_errors_share_base(self):
        for error in (InvalidAddressError("x"), NetworkError("x"), FeatureNotImplementedError("x")):
            assert isinstance(error, PolygonError)
