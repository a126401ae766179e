"""
Wallet management for the LicenseChain Polygon SDK.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from web3 import Web3

from .base import BaseManager, GasPriceMixin, load_account
from .exceptions import ContractError, InsufficientBalanceError, InvalidPrivateKeyError
from .models import TransactionRecord, WalletInfo, WalletSummary
from .utils import format_ether, require_address, require_amount, require_gas_price, require_units

logger = logging.getLogger("licensechain_polygon.wallets")

DERIVATION_PATH = "m/44'/60'/0'/0/{index}"

Account.enable_unaudited_hdwallet_features()


def _wallet_info(account, mnemonic: str = '', index: int = 0) -> WalletInfo:
    public_key = keys.PrivateKey(bytes(account.key)).public_key.to_hex()
    return WalletInfo(
        address=account.address,
        private_key=Web3.to_hex(account.key),
        mnemonic=mnemonic,
        public_key=public_key,
        index=index,
    )


class WalletManager(GasPriceMixin, BaseManager):
    """Create wallets, hold the active signer and move native MATIC."""

    # Key material (no network access)

    def create_wallet(self) -> WalletInfo:
        """
        Create a new random wallet with a 12-word mnemonic.

        Returns:
            WalletInfo: The wallet, derived at index 0
        """
        account, mnemonic = Account.create_with_mnemonic(account_path=DERIVATION_PATH.format(index=0))
        logger.info(f"Created wallet {account.address}")
        return _wallet_info(account, mnemonic, 0)

    def create_wallet_from_mnemonic(self, mnemonic: str, index: int = 0) -> WalletInfo:
        """
        Derive the wallet at ``m/44'/60'/0'/0/{index}`` from a mnemonic.

        Raises:
            InvalidPrivateKeyError: If the mnemonic or index is invalid
        """
        if not isinstance(index, int) or index < 0:
            raise InvalidPrivateKeyError("create_wallet_from_mnemonic")
        try:
            account = Account.from_mnemonic(mnemonic, account_path=DERIVATION_PATH.format(index=index))
        except Exception as e:
            raise InvalidPrivateKeyError("create_wallet_from_mnemonic") from e
        return _wallet_info(account, mnemonic, index)

    def create_wallet_from_private_key(self, private_key: str) -> WalletInfo:
        account = load_account(private_key, "create_wallet_from_private_key")
        return _wallet_info(account)

    def get_current_wallet(self) -> Optional[WalletInfo]:
        """The active signer, or None when no wallet is set."""
        if self._account is None:
            return None
        return _wallet_info(self._account)

    def set_wallet(self, private_key: str) -> str:
        """Replace the active signer. Returns its address."""
        return self.set_signer(private_key)

    # Chain reads

    async def get_wallet_balance(self, address: str) -> str:
        """
        Get the native balance of an address.

        Args:
            address (str): The address to query

        Returns:
            str: Balance in wei
        """
        checksum = require_address(address)
        try:
            return str(await self.w3.eth.get_balance(checksum))
        except Exception as e:
            raise self._fail(e, "Failed to get wallet balance") from e

    async def get_wallet_transaction_count(self, address: str) -> int:
        checksum = require_address(address)
        try:
            return await self.w3.eth.get_transaction_count(checksum)
        except Exception as e:
            raise self._fail(e, "Failed to get transaction count") from e

    async def get_wallet_info(self, address: str) -> WalletSummary:
        """Balance, nonce and contract flag of ``address``, fetched concurrently."""
        checksum = require_address(address)
        try:
            balance, count, code = await asyncio.gather(
                self.w3.eth.get_balance(checksum),
                self.w3.eth.get_transaction_count(checksum),
                self.w3.eth.get_code(checksum),
            )
        except Exception as e:
            raise self._fail(e, "Failed to get wallet info") from e
        return WalletSummary(
            address=checksum,
            balance=str(balance),
            transaction_count=count,
            is_contract=len(code) > 0,
        )

    async def estimate_gas(self, to: str, value: Optional[str] = None, data: Optional[str] = None) -> str:
        tx: Dict[str, Any] = {'to': require_address(to)}
        if value is not None:
            tx['value'] = require_units(value)
        if data:
            tx['data'] = data
        try:
            return str(await self.w3.eth.estimate_gas(tx))
        except Exception as e:
            raise self._fail(e, "Failed to estimate gas", method="estimate_gas") from e

    # Signing and sending

    async def send_transaction(
            self,
            to: str,
            value: str,
            gas_limit: Optional[int] = None,
            gas_price: Optional[str] = None
        ) -> TransactionRecord:
        """
        Send MATIC from the active wallet.

        Args:
            to (str): Recipient address
            value (str): Amount in MATIC as a decimal string
            gas_limit (int, optional): Explicit gas limit
            gas_price (str, optional): Gas price in gwei

        Returns:
            TransactionRecord: The confirmed transaction

        Raises:
            InsufficientBalanceError: If the balance cannot cover the value
        """
        recipient = require_address(to, "Invalid recipient address")
        wei = require_units(value)
        value = require_amount(value)
        if gas_price is not None:
            gas_price = require_gas_price(gas_price)
        account = self._require_signer("send_transaction")

        try:
            balance = await self.w3.eth.get_balance(account.address)
        except Exception as e:
            raise self._fail(e, "Failed to send transaction") from e
        if balance < wei:
            raise InsufficientBalanceError(format_ether(wei), format_ether(balance))

        async def build(signer) -> Dict[str, Any]:
            return {'to': recipient, 'value': wei}

        logger.info(f"Sending {value} MATIC from {account.address} to {recipient}")
        return await self._submit_transaction(build, "send_transaction", gas_limit, gas_price)

    async def sign_message(self, message: str) -> str:
        """EIP-191 personal-sign ``message`` with the active wallet."""
        account = self._require_signer("sign_message")
        signed = account.sign_message(encode_defunct(text=message))
        return Web3.to_hex(signed.signature)

    async def sign_transaction(self, transaction: Dict[str, Any]) -> str:
        """
        Sign a fully specified transaction without sending it.

        Returns:
            str: Raw signed transaction as hex

        Raises:
            ContractError: If the transaction fields are incomplete or malformed
        """
        account = self._require_signer("sign_transaction")
        try:
            signed = account.sign_transaction(dict(transaction))
        except Exception as e:
            raise ContractError("sign_transaction", str(e)) from e
        return Web3.to_hex(signed.raw_transaction)

    async def verify_message(self, message: str, signature: str) -> str:
        """
        Recover the address that signed ``message``.

        Raises:
            ContractError: If the signature is malformed
        """
        try:
            return Account.recover_message(encode_defunct(text=message), signature=signature)
        except Exception as e:
            raise ContractError("verify_message", str(e)) from e
