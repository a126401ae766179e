"""
Polygonscan API integration for the LicenseChain Polygon SDK.

Uses the multichain Etherscan v2 endpoint, so one API key covers Polygon
mainnet and its testnets; the network is selected with ``chainid``.
These functions are blocking. Async callers run them through
``asyncio.to_thread``.
"""
import os
import json
import logging
import threading
import time
import requests
from typing import Dict, List, Any
from dotenv import load_dotenv

from .exceptions import ExplorerAPIError

logger = logging.getLogger("licensechain_polygon.polygonscan")

load_dotenv()

POLYGONSCAN_API_KEY = os.getenv('POLYGONSCAN_API_KEY')
if not POLYGONSCAN_API_KEY:
    logger.warning("POLYGONSCAN_API_KEY not found in environment variables. Explorer lookups will be throttled.")

POLYGONSCAN_API_URL = os.getenv('POLYGONSCAN_API_URL', 'https://api.etherscan.io/v2/api')
POLYGONSCAN_TIMEOUT = int(os.getenv('POLYGONSCAN_TIMEOUT', '10'))  # seconds

# Rate limiting settings
API_RATE_LIMIT = int(os.getenv('POLYGONSCAN_API_RATE_LIMIT', '5'))  # requests per second
LAST_API_CALL_TIME = 0.0
# Explorer calls run on worker threads via asyncio.to_thread
_RATE_LIMIT_LOCK = threading.Lock()

EMPTY_RESULT_MESSAGES = ('No transactions found', 'No records found')


def _handle_rate_limit():
    """Sleep just long enough to stay under the explorer's request rate."""
    global LAST_API_CALL_TIME

    with _RATE_LIMIT_LOCK:
        elapsed = time.time() - LAST_API_CALL_TIME
        min_interval = 1.0 / API_RATE_LIMIT
        if elapsed < min_interval:
            sleep_time = min_interval - elapsed
            logger.debug(f"Rate limiting: sleeping for {sleep_time:.2f} seconds")
            time.sleep(sleep_time)

        LAST_API_CALL_TIME = time.time()


def _call_polygonscan_api(params: Dict[str, Any], chain_id: int = 137) -> Dict[str, Any]:
    """
    Make a call to the explorer API with rate limiting and error handling.

    Args:
        params (dict): Query parameters (module, action, ...)
        chain_id (int): Chain to query

    Returns:
        dict: Decoded API response with ``status == '1'``

    Raises:
        ExplorerAPIError: If the request fails or the API reports an error
    """
    _handle_rate_limit()

    query = dict(params, chainid=chain_id)
    if POLYGONSCAN_API_KEY:
        query['apikey'] = POLYGONSCAN_API_KEY

    try:
        response = requests.get(POLYGONSCAN_API_URL, params=query, timeout=POLYGONSCAN_TIMEOUT)
        response.raise_for_status()
        response_json = response.json()
    except requests.exceptions.RequestException as e:
        logger.error(f"Request error calling Polygonscan API: {str(e)}")
        raise ExplorerAPIError(f"Request error: {str(e)}", e) from e
    except ValueError as e:
        logger.error(f"Invalid JSON response from Polygonscan API: {str(e)}")
        raise ExplorerAPIError(f"Invalid API response: {str(e)}", e) from e

    if response_json.get('status') == '1':
        return response_json
    if response_json.get('message') in EMPTY_RESULT_MESSAGES:
        return {'status': '1', 'result': []}

    error_message = response_json.get('result') or response_json.get('message') or 'Unknown API error'
    logger.error(f"Polygonscan API error: {error_message}")
    raise ExplorerAPIError(f"Polygonscan API error: {error_message}")


def get_transaction_history(
        address: str,
        chain_id: int = 137,
        page: int = 1,
        offset: int = 10,
        sort: str = 'desc'
    ) -> List[Dict[str, Any]]:
    """
    Fetch the normal transactions of an address.

    Args:
        address (str): The wallet address to get transactions for
        chain_id (int): Chain to query
        page (int): Page number for pagination
        offset (int): Number of transactions per page
        sort (str): 'asc' or 'desc' by block

    Returns:
        list: Explorer transaction entries, empty when there are none

    Raises:
        ExplorerAPIError: If the API call fails
    """
    logger.info(f"Fetching transaction history for {address} on chain {chain_id}")

    params = {
        'module': 'account',
        'action': 'txlist',
        'address': address,
        'startblock': 0,
        'endblock': 99999999,
        'page': page,
        'offset': offset,
        'sort': sort
    }
    response = _call_polygonscan_api(params, chain_id)
    return response.get('result', [])


def get_contract_abi(contract_address: str, chain_id: int = 137) -> List[Dict[str, Any]]:
    """
    Fetch the verified ABI of a contract.

    Args:
        contract_address (str): The contract address
        chain_id (int): Chain to query

    Returns:
        list: The contract ABI

    Raises:
        ExplorerAPIError: If the contract is unverified or the call fails
    """
    logger.info(f"Fetching ABI for contract {contract_address} on chain {chain_id}")

    params = {
        'module': 'contract',
        'action': 'getabi',
        'address': contract_address
    }
    response = _call_polygonscan_api(params, chain_id)

    abi_json = response.get('result', '[]')
    if not isinstance(abi_json, str):
        return abi_json
    try:
        return json.loads(abi_json)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid ABI JSON: {str(e)}")
        raise ExplorerAPIError(f"Invalid ABI format: {str(e)}", e) from e

