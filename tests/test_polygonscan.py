"""
Tests for the Polygonscan explorer client.
"""
import json
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from licensechain_polygon import polygonscan
from licensechain_polygon.config import ERC20_ABI
from licensechain_polygon.exceptions import ErrorCode, ExplorerAPIError

from conftest import RECIPIENT, TX_HASH


def api_response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


@pytest.fixture
def api(monkeypatch):
    get = MagicMock()
    monkeypatch.setattr(polygonscan.requests, "get", get)
    monkeypatch.setattr(polygonscan, "_handle_rate_limit", MagicMock())
    monkeypatch.setattr(polygonscan, "POLYGONSCAN_API_KEY", "test-key")
    return get


class TestTransactionHistory:

    def test_returns_result_list(self, api):
        entries = [{'hash': TX_HASH, 'from': RECIPIENT}]
        api.return_value = api_response({'status': '1', 'message': 'OK', 'result': entries})

        assert polygonscan.get_transaction_history(RECIPIENT, 80002, page=2, offset=25, sort='asc') == entries

        _, kwargs = api.call_args
        assert kwargs['params']['chainid'] == 80002
        assert kwargs['params']['apikey'] == "test-key"
        assert kwargs['params']['action'] == 'txlist'
        assert (kwargs['params']['page'], kwargs['params']['offset'], kwargs['params']['sort']) == (2, 25, 'asc')
        assert kwargs['timeout'] == polygonscan.POLYGONSCAN_TIMEOUT

    def test_no_transactions_is_empty(self, api):
        api.return_value = api_response({'status': '0', 'message': 'No transactions found', 'result': []})
        assert polygonscan.get_transaction_history(RECIPIENT) == []

    def test_api_error(self, api):
        api.return_value = api_response({'status': '0', 'message': 'NOTOK', 'result': 'Invalid API Key'})

        with pytest.raises(ExplorerAPIError) as exc_info:
            polygonscan.get_transaction_history(RECIPIENT)

        assert exc_info.value.code == ErrorCode.NETWORK_ERROR
        assert "Invalid API Key" in exc_info.value.message

    def test_transport_error(self, api):
        api.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(ExplorerAPIError):
            polygonscan.get_transaction_history(RECIPIENT)

    def test_invalid_json(self, api):
        response = MagicMock()
        response.json.side_effect = ValueError("not json")
        api.return_value = response
        with pytest.raises(ExplorerAPIError):
            polygonscan.get_transaction_history(RECIPIENT)

    def test_without_api_key(self, api, monkeypatch):
        monkeypatch.setattr(polygonscan, "POLYGONSCAN_API_KEY", None)
        api.return_value = api_response({'status': '1', 'result': []})

        polygonscan.get_transaction_history(RECIPIENT)

        assert 'apikey' not in api.call_args.kwargs['params']


class TestContractAbi:

    def test_decodes_abi_string(self, api):
        api.return_value = api_response({'status': '1', 'message': 'OK', 'result': json.dumps(ERC20_ABI)})
        assert polygonscan.get_contract_abi(RECIPIENT) == ERC20_ABI
        assert api.call_args.kwargs['params']['action'] == 'getabi'

    def test_unverified_contract(self, api):
        api.return_value = api_response({
            'status': '0', 'message': 'NOTOK', 'result': 'Contract source code not verified'
        })
        with pytest.raises(ExplorerAPIError):
            polygonscan.get_contract_abi(RECIPIENT)

    def test_malformed_abi(self, api):
        api.return_value = api_response({'status': '1', 'message': 'OK', 'result': '{not json'})
        with pytest.raises(ExplorerAPIError):
            polygonscan.get_contract_abi(RECIPIENT)


class TestRateLimit:

    def test_sleeps_between_rapid_calls(self, monkeypatch):
        sleep = MagicMock()
        monkeypatch.setattr(polygonscan.time, "sleep", sleep)
        monkeypatch.setattr(polygonscan.time, "time", MagicMock(return_value=100.0))
        monkeypatch.setattr(polygonscan, "LAST_API_CALL_TIME", 100.0)

        polygonscan._handle_rate_limit()

        sleep.assert_called_once()
        assert sleep.call_args.args[0] == pytest.approx(1.0 / polygonscan.API_RATE_LIMIT)

    def test_no_sleep_after_idle(self, monkeypatch):
        sleep = MagicMock()
        monkeypatch.setattr(polygonscan.time, "sleep", sleep)
        monkeypatch.setattr(polygonscan, "LAST_API_CALL_TIME", 0.0)

        polygonscan._handle_rate_limit()

        sleep.assert_not_called()

    def test_concurrent_callers_are_spaced(self, monkeypatch):
        monkeypatch.setattr(polygonscan, "API_RATE_LIMIT", 20)
        monkeypatch.setattr(polygonscan, "LAST_API_CALL_TIME", 0.0)
        barrier = threading.Barrier(4)
        stamps = []

        def worker():
            barrier.wait()
            polygonscan._handle_rate_limit()
            stamps.append(time.monotonic())

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stamps.sort()
        gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
        # 50ms minimum interval, with slack for thread scheduling
        assert min(gaps) > 0.025
