"""
ERC-721 NFT management for the LicenseChain Polygon SDK.

Reads and transfers use the standard ERC-721 (Metadata, Enumerable) and
ERC-2981 royalty interfaces. Minting and URI updates are contract specific
and are not available.
"""
import asyncio
import base64
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
from eth_account.signers.local import LocalAccount
from web3.exceptions import ContractLogicError

from .base import BaseManager
from .config import ERC721_ABI, IPFS_GATEWAY
from .exceptions import FeatureNotImplementedError, NFTNotFoundError, PolygonError
from .models import NFT, Metadata, NFTRoyalty, TransactionRecord, normalize_metadata
from .utils import require_address

logger = logging.getLogger("licensechain_polygon.nft")

METADATA_TIMEOUT = 10  # seconds
ROYALTY_SALE_PRICE = 10000


def _token_id(token_id: Any) -> int:
    text = str(token_id).strip()
    try:
        value = int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError as e:
        raise NFTNotFoundError(token_id) from e
    if value < 0:
        raise NFTNotFoundError(token_id)
    return value


def resolve_token_uri(uri: str) -> str:
    """Map ``ipfs://`` URIs onto the configured HTTP gateway."""
    if uri.startswith('ipfs://'):
        path = uri[len('ipfs://'):]
        if path.startswith('ipfs/'):
            path = path[len('ipfs/'):]
        return IPFS_GATEWAY.rstrip('/') + '/' + path
    return uri


def fetch_token_metadata(uri: str) -> Metadata:
    """
    Load the JSON metadata document behind a token URI.

    Supports ``data:application/json`` URIs (plain or base64), ``ipfs://``
    and HTTP(S). Blocking; async callers use ``asyncio.to_thread``.

    Returns:
        dict: The metadata, or an empty dict when it cannot be loaded
    """
    if not uri:
        return {}
    try:
        if uri.startswith('data:'):
            header, _, payload = uri.partition(',')
            if header.endswith(';base64'):
                payload = base64.b64decode(payload).decode('utf-8')
            document = json.loads(payload)
        else:
            url = resolve_token_uri(uri)
            if not url.startswith(('http://', 'https://')):
                return {}
            response = requests.get(url, timeout=METADATA_TIMEOUT)
            response.raise_for_status()
            document = response.json()
        return normalize_metadata(document) if isinstance(document, Mapping) else {}
    except (requests.exceptions.RequestException, ValueError, PolygonError) as e:
        logger.warning(f"Could not load metadata from {uri}: {str(e)}")
        return {}


class NFTManager(BaseManager):
    """Query and move ERC-721 tokens."""

    def _collection(self, contract_address: str):
        checksum = require_address(contract_address, "Invalid contract address")
        return self.w3.eth.contract(address=checksum, abi=ERC721_ABI)

    async def mint(self, contract_address: str, to: str, metadata: Optional[Mapping[str, Any]] = None):
        """Not available: ERC-721 defines no mint function."""
        require_address(contract_address, "Invalid contract address")
        require_address(to, "Invalid recipient address")
        normalize_metadata(metadata)
        raise FeatureNotImplementedError("mint")

    async def set_token_uri(self, contract_address: str, token_id: str, uri: str):
        """Not available: ERC-721 defines no URI setter."""
        require_address(contract_address, "Invalid contract address")
        _token_id(token_id)
        raise FeatureNotImplementedError("set_token_uri")

    async def _royalty(self, contract, token_id: int) -> Optional[NFTRoyalty]:
        try:
            recipient, amount = await contract.functions.royaltyInfo(token_id, ROYALTY_SALE_PRICE).call()
        except Exception as e:
            logger.debug(f"royaltyInfo unavailable on {contract.address}: {str(e)}")
            return None
        return NFTRoyalty(recipient=recipient, percentage=amount * 100 / ROYALTY_SALE_PRICE)

    async def get_nft(self, token_id: str, contract_address: str) -> NFT:
        """
        Get an NFT with its owner, URI, metadata and royalty.

        Args:
            token_id (str): Token id, decimal or ``0x`` hex
            contract_address (str): ERC-721 contract

        Returns:
            NFT: The token. ``royalty`` is None when ERC-2981 is not supported.

        Raises:
            NFTNotFoundError: If the token does not exist
        """
        contract = self._collection(contract_address)
        tid = _token_id(token_id)
        try:
            owner = await contract.functions.ownerOf(tid).call()
        except ContractLogicError as e:
            raise NFTNotFoundError(token_id) from e
        except Exception as e:
            raise self._fail(e, "Failed to get NFT", method="ownerOf") from e

        try:
            token_uri = await contract.functions.tokenURI(tid).call()
        except ContractLogicError:
            token_uri = ''
        except Exception as e:
            raise self._fail(e, "Failed to get NFT", method="tokenURI") from e

        metadata, royalty = await asyncio.gather(
            asyncio.to_thread(fetch_token_metadata, token_uri),
            self._royalty(contract, tid),
        )
        return NFT(
            token_id=str(tid),
            contract_address=contract.address,
            owner=owner,
            token_uri=token_uri,
            metadata=metadata,
            royalty=royalty,
        )

    async def get_owner(self, contract_address: str, token_id: str) -> str:
        contract = self._collection(contract_address)
        tid = _token_id(token_id)
        try:
            return await contract.functions.ownerOf(tid).call()
        except ContractLogicError as e:
            raise NFTNotFoundError(token_id) from e
        except Exception as e:
            raise self._fail(e, "Failed to get owner", method="ownerOf") from e

    async def get_approved(self, contract_address: str, token_id: str) -> str:
        contract = self._collection(contract_address)
        tid = _token_id(token_id)
        try:
            return await contract.functions.getApproved(tid).call()
        except Exception as e:
            raise self._fail(e, "Failed to get approved address", method="getApproved") from e

    async def is_approved_for_all(self, contract_address: str, owner: str, operator: str) -> bool:
        contract = self._collection(contract_address)
        owner = require_address(owner, "Invalid owner address")
        operator = require_address(operator, "Invalid operator address")
        try:
            return await contract.functions.isApprovedForAll(owner, operator).call()
        except Exception as e:
            raise self._fail(e, "Failed to check approval for all", method="isApprovedForAll") from e

    async def get_token_uri(self, contract_address: str, token_id: str) -> str:
        contract = self._collection(contract_address)
        tid = _token_id(token_id)
        try:
            return await contract.functions.tokenURI(tid).call()
        except Exception as e:
            raise self._fail(e, "Failed to get token URI", method="tokenURI") from e

    async def get_total_supply(self, contract_address: str) -> int:
        """Requires the ERC-721 Enumerable extension."""
        contract = self._collection(contract_address)
        try:
            return int(await contract.functions.totalSupply().call())
        except Exception as e:
            raise self._fail(e, "Failed to get total supply", method="totalSupply") from e

    async def get_nfts_by_owner(self, contract_address: str, owner_address: str) -> List[NFT]:
        """
        All tokens held by ``owner_address`` in one collection.

        Requires the ERC-721 Enumerable extension.
        """
        contract = self._collection(contract_address)
        owner = require_address(owner_address, "Invalid owner address")
        try:
            count = await contract.functions.balanceOf(owner).call()
            token_ids = await asyncio.gather(*(
                contract.functions.tokenOfOwnerByIndex(owner, index).call() for index in range(count)
            ))
        except Exception as e:
            raise self._fail(e, "Failed to get NFTs by owner", method="tokenOfOwnerByIndex") from e
        return list(await asyncio.gather(*(self.get_nft(str(tid), contract.address) for tid in token_ids)))

    async def transfer(self, contract_address: str, token_id: str, from_address: str, to_address: str) -> TransactionRecord:
        """
        Move a token with ``safeTransferFrom``.

        Returns:
            TransactionRecord: The confirmed transfer
        """
        contract = self._collection(contract_address)
        tid = _token_id(token_id)
        source = require_address(from_address, "Invalid source address")
        recipient = require_address(to_address, "Invalid recipient address")
        self._require_signer("transfer")

        async def build(account: LocalAccount) -> Dict[str, Any]:
            return await self._build_call(contract.functions.safeTransferFrom(source, recipient, tid), account)

        return await self._submit_transaction(build, "safeTransferFrom")

    async def approve(self, contract_address: str, token_id: str, to: str) -> TransactionRecord:
        contract = self._collection(contract_address)
        tid = _token_id(token_id)
        spender = require_address(to, "Invalid approved address")
        self._require_signer("approve")

        async def build(account: LocalAccount) -> Dict[str, Any]:
            return await self._build_call(contract.functions.approve(spender, tid), account)

        return await self._submit_transaction(build, "approve")

    async def set_approval_for_all(self, contract_address: str, operator: str, approved: bool) -> TransactionRecord:
        contract = self._collection(contract_address)
        operator = require_address(operator, "Invalid operator address")
        self._require_signer("set_approval_for_all")

        async def build(account: LocalAccount) -> Dict[str, Any]:
            return await self._build_call(contract.functions.setApprovalForAll(operator, bool(approved)), account)

        return await self._submit_transaction(build, "setApprovalForAll")
