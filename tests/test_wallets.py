"""
Tests for wallet creation, signing and native transfers.
"""
from unittest.mock import AsyncMock

import pytest
from web3 import Web3

from licensechain_polygon.exceptions import (
    ContractError, InsufficientBalanceError, InvalidAddressError, InvalidAmountError, InvalidPrivateKeyError,
    NetworkError, SignerRequiredError
)
from licensechain_polygon.models import TransactionStatus
from licensechain_polygon.wallets import WalletManager

from conftest import ETHER, GWEI, OTHER_PRIVATE_KEY, RECIPIENT, TEST_PRIVATE_KEY, TX_HASH

TEST_MNEMONIC = "test test test test test test test test test test test junk"
TEST_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


@pytest.fixture
def manager(config, fake_w3):
    return WalletManager(config, fake_w3)


class TestKeyMaterial:

    def test_create_wallet(self, manager):
        wallet = manager.create_wallet()

        assert Web3.is_checksum_address(wallet.address)
        assert len(wallet.mnemonic.split()) == 12
        assert wallet.index == 0
        assert len(wallet.public_key) == 130
        assert manager.create_wallet_from_mnemonic(wallet.mnemonic).address == wallet.address

    def test_wallets_are_random(self, manager):
        assert manager.create_wallet().address != manager.create_wallet().address

    def test_mnemonic_derivation_path(self, manager):
        assert manager.create_wallet_from_mnemonic(TEST_MNEMONIC).address == \
            "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        second = manager.create_wallet_from_mnemonic(TEST_MNEMONIC, index=1)
        assert second.address == "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
        assert second.index == 1

    @pytest.mark.parametrize("mnemonic, index", [
        ("not a real mnemonic phrase", 0),
        (TEST_MNEMONIC, -1),
    ])
    def test_invalid_mnemonic(self, manager, mnemonic, index):
        with pytest.raises(InvalidPrivateKeyError):
            manager.create_wallet_from_mnemonic(mnemonic, index)

    def test_from_private_key(self, manager):
        wallet = manager.create_wallet_from_private_key(TEST_PRIVATE_KEY)
        assert wallet.address == TEST_ADDRESS
        assert wallet.private_key == TEST_PRIVATE_KEY
        assert wallet.mnemonic == ""

    def test_private_key_not_in_repr(self, manager):
        assert TEST_PRIVATE_KEY[2:] not in repr(manager.create_wallet_from_private_key(TEST_PRIVATE_KEY))

    def test_current_wallet(self, manager, readonly_config, fake_w3):
        assert manager.get_current_wallet().address == TEST_ADDRESS
        assert WalletManager(readonly_config, fake_w3).get_current_wallet() is None

    def test_set_wallet(self, manager):
        address = manager.set_wallet(OTHER_PRIVATE_KEY)
        assert manager.get_current_wallet().address == address
        with pytest.raises(InvalidPrivateKeyError):
            manager.set_wallet("0xdeadbeef")


class TestChainReads:

    @pytest.mark.asyncio
    async def test_balance(self, manager, fake_w3):
        assert await manager.get_wallet_balance(RECIPIENT) == str(5 * ETHER)
        fake_w3.eth.get_balance.assert_awaited_once_with(Web3.to_checksum_address(RECIPIENT))

    @pytest.mark.asyncio
    async def test_balance_invalid_address(self, manager, fake_w3):
        with pytest.raises(InvalidAddressError):
            await manager.get_wallet_balance("0x1234")
        fake_w3.eth.get_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wallet_info(self, manager):
        summary = await manager.get_wallet_info(RECIPIENT)
        assert summary.balance == str(5 * ETHER)
        assert summary.transaction_count == 7
        assert summary.is_contract is False

    @pytest.mark.asyncio
    async def test_wallet_info_network_failure(self, manager, fake_w3):
        fake_w3.eth.get_code = AsyncMock(side_effect=ConnectionError("reset"))
        with pytest.raises(NetworkError):
            await manager.get_wallet_info(RECIPIENT)

    @pytest.mark.asyncio
    async def test_estimate_gas(self, manager, fake_w3):
        assert await manager.estimate_gas(RECIPIENT, value="0.1", data="0xabcd") == "21000"
        tx = fake_w3.eth.estimate_gas.await_args.args[0]
        assert tx == {'to': Web3.to_checksum_address(RECIPIENT), 'value': 10 ** 17, 'data': "0xabcd"}

    @pytest.mark.asyncio
    async def test_estimate_gas_rejects_value_below_one_wei(self, manager, fake_w3):
        with pytest.raises(InvalidAmountError):
            await manager.estimate_gas(RECIPIENT, value="0.0000000000000000001")
        fake_w3.eth.estimate_gas.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gas_price(self, manager):
        assert await manager.get_gas_price() == str(30 * GWEI)


class TestSendTransaction:

    @pytest.mark.asyncio
    async def test_send(self, manager, fake_w3):
        record = await manager.send_transaction(RECIPIENT, "1.5")

        tx = fake_w3.eth.estimate_gas.await_args.args[0]
        assert tx['value'] == 15 * 10 ** 17
        assert tx['to'] == Web3.to_checksum_address(RECIPIENT)
        assert record.hash == TX_HASH
        assert record.status == TransactionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, manager, fake_w3):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            await manager.send_transaction(RECIPIENT, "6")

        assert exc_info.value.data == {"required": "6.0", "available": "5.0"}
        fake_w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_gas_price(self, manager):
        with pytest.raises(InvalidAmountError):
            await manager.send_transaction(RECIPIENT, "1", gas_price="fast")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value, gas_price", [
        ("0.0000000000000000001", None),
        ("1", "0.0000000001"),
        ("1", "0"),
    ])
    async def test_over_precise_values_rejected_before_io(self, manager, fake_w3, value, gas_price):
        with pytest.raises(InvalidAmountError):
            await manager.send_transaction(RECIPIENT, value, gas_price=gas_price)

        fake_w3.eth.get_balance.assert_not_awaited()
        fake_w3.eth.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_validation_before_signer(self, readonly_config, fake_w3):
        manager = WalletManager(readonly_config, fake_w3)

        with pytest.raises(InvalidAmountError):
            await manager.send_transaction(RECIPIENT, "0")
        with pytest.raises(SignerRequiredError):
            await manager.send_transaction(RECIPIENT, "1")

        fake_w3.eth.get_balance.assert_not_awaited()


class TestSigning:

    @pytest.mark.asyncio
    async def test_sign_and_verify(self, manager):
        signature = await manager.sign_message("license:42")

        assert signature.startswith("0x") and len(signature) == 132
        assert await manager.verify_message("license:42", signature) == TEST_ADDRESS
        assert await manager.verify_message("license:43", signature) != TEST_ADDRESS

    @pytest.mark.asyncio
    async def test_verify_malformed_signature(self, manager):
        with pytest.raises(ContractError):
            await manager.verify_message("hello", "0x1234")

    @pytest.mark.asyncio
    async def test_sign_requires_signer(self, readonly_config, fake_w3):
        manager = WalletManager(readonly_config, fake_w3)
        with pytest.raises(SignerRequiredError):
            await manager.sign_message("hello")

    @pytest.mark.asyncio
    async def test_sign_transaction(self, manager):
        raw = await manager.sign_transaction({
            'to': Web3.to_checksum_address(RECIPIENT),
            'value': 1,
            'gas': 21000,
            'gasPrice': 30 * GWEI,
            'nonce': 0,
            'chainId': 137,
        })
        assert raw.startswith("0x")

    @pytest.mark.asyncio
    async def test_sign_incomplete_transaction(self, manager):
        with pytest.raises(ContractError):
            await manager.sign_transaction({'to': Web3.to_checksum_address(RECIPIENT), 'value': 1})
