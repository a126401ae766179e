"""
License operations for the LicenseChain Polygon SDK.

There is no published license registry contract interface, so every
operation validates its arguments and then raises
:class:`FeatureNotImplementedError`. Invalid arguments are reported first,
with their own error codes.
"""
import logging
from typing import Any, List, Mapping, Optional

from .base import BaseManager
from .exceptions import FeatureNotImplementedError, InvalidAmountError, LicenseNotFoundError
from .models import License, TransactionRecord, normalize_metadata
from .utils import require_address

logger = logging.getLogger("licensechain_polygon.licenses")


def _license_id(license_id: Any) -> str:
    if not isinstance(license_id, str) or not license_id.strip():
        raise LicenseNotFoundError(license_id)
    return license_id.strip()


class LicenseManager(BaseManager):
    """Placeholder for an on-chain license registry."""

    def _unavailable(self, feature: str) -> FeatureNotImplementedError:
        logger.debug(f"{feature} requested but no license contract is available")
        return FeatureNotImplementedError(feature)

    async def create_license(
            self,
            product_id: str,
            license_type: str,
            metadata: Optional[Mapping[str, Any]] = None
        ) -> TransactionRecord:
        normalize_metadata(metadata)
        raise self._unavailable("create_license")

    async def get_license(self, license_id: str) -> License:
        _license_id(license_id)
        raise self._unavailable("get_license")

    async def update_license(self, license_id: str, updates: Mapping[str, Any]) -> TransactionRecord:
        _license_id(license_id)
        normalize_metadata(updates)
        raise self._unavailable("update_license")

    async def revoke_license(self, license_id: str) -> TransactionRecord:
        _license_id(license_id)
        raise self._unavailable("revoke_license")

    async def get_licenses_by_owner(self, owner_address: str) -> List[License]:
        require_address(owner_address, "Invalid owner address")
        raise self._unavailable("get_licenses_by_owner")

    async def get_license_count(self) -> int:
        raise self._unavailable("get_license_count")

    async def is_license_valid(self, license_id: str) -> bool:
        _license_id(license_id)
        raise self._unavailable("is_license_valid")

    async def extend_license(self, license_id: str, additional_time: int) -> TransactionRecord:
        """
        Extend a license.

        Raises:
            InvalidAmountError: If ``additional_time`` is not a positive number of seconds
            FeatureNotImplementedError: Always, for valid arguments
        """
        _license_id(license_id)
        if isinstance(additional_time, bool) or not isinstance(additional_time, (int, float)) or additional_time <= 0:
            raise InvalidAmountError(additional_time)
        raise self._unavailable("extend_license")
