from __future__ import annotations

from dataclasses import replace

import pytest
from eth_account import Account

from scroll_node.client import ScrollClient, create_scroll_client, map_broadcast_remote_error
from scroll_node.config import ApiCredentials, NetworkCredentials
from scroll_node.error_map import HttpApiError, MissingCredentialsError, RpcCallError, TransactionTimeoutError
from scroll_node.networks import NETWORKS

from ._scroll_rpc_helpers import (
    ALICE,
    DEV_PRIVATE_KEY,
    TX_HASH,
    RpcError,
    _block,
    _client,
    _http_calls,
    _rpc_calls,
    _serve,
    _stop,
    _word,
)


def test_call_returns_result_and_counts_ids():
    server, url = _serve(routes={"eth_blockNumber": "0x2a", "eth_chainId": "0x82750"})
    try:
        client = _client(url)
        assert client.get_block_number() == 42
        assert client.get_chain_id() == 534352
        ids = [c["id"] for c in _rpc_calls()]
        assert ids == [1, 2]
    finally:
        _stop(server)


def test_remote_error_raises_with_hint():
    server, url = _serve(routes={"eth_getLogs": RpcError(-32005, "query returned more than 10000 results")})
    try:
        client = _client(url)
        with pytest.raises(RpcCallError) as exc:
            client.get_logs({"fromBlock": "0x0", "toBlock": "latest"})
        err = exc.value
        assert err.error_code == "RPC_REMOTE_ERROR"
        assert "narrow" in (err.hint or "")
        assert err.rpc_request["method"] == "eth_getLogs"
    finally:
        _stop(server)


def test_broadcast_errors_are_classified():
    assert map_broadcast_remote_error({"error": {"message": "nonce too low"}}) == "BROADCAST_NONCE_TOO_LOW"
    assert map_broadcast_remote_error({"error": {"message": "already known"}}) == "BROADCAST_ALREADY_KNOWN"
    assert map_broadcast_remote_error({"error": {"message": "boom"}}) == "RPC_REMOTE_ERROR"


def test_request_wraps_errors_in_envelope():
    server, url = _serve(routes={"eth_getBalance": RpcError(-32602, "invalid argument")})
    try:
        exit_code, payload = _client(url).request("eth_getBalance", ["0x0", "latest"])
        assert exit_code == 1
        assert payload["ok"] is False
        assert payload["error_code"] == "RPC_REMOTE_ERROR"
        assert "-32602" in payload["hint"]
    finally:
        _stop(server)


def test_endpoint_fallback_on_transport_failure():
    server, url = _serve(routes={"eth_blockNumber": "0x10"})
    try:
        config = replace(NETWORKS["mainnet"], rpc_url=f"http://127.0.0.1:1,{url}")
        client = ScrollClient(config, timeout_seconds=2)
        assert client.get_block_number() == 16
    finally:
        _stop(server)


def test_get_block_dispatches_by_identifier():
    server, url = _serve(routes={"eth_getBlockByNumber": _block(5), "eth_getBlockByHash": _block(6)})
    try:
        client = _client(url)
        assert client.get_block(5)["number"] == "0x5"
        assert client.get_block("0x" + "ab" * 32)["number"] == "0x6"
        client.get_block("finalized", full=True)
        params = [c["params"] for c in _rpc_calls("eth_getBlockByNumber")]
        assert params == [["0x5", False], ["finalized", True]]
    finally:
        _stop(server)


def test_fee_data_falls_back_when_priority_method_missing():
    server, url = _serve(
        routes={
            "eth_gasPrice": hex(3_000_000),
            "eth_getBlockByNumber": _block(1, baseFeePerGas=hex(1_000_000)),
            "eth_maxPriorityFeePerGas": RpcError(-32601, "method not found"),
        }
    )
    try:
        fees = _client(url).get_fee_data()
        assert fees["max_priority_fee_per_gas"] == 2_000_000
        assert fees["max_fee_per_gas"] == 4_000_000
    finally:
        _stop(server)


def test_read_contract_encodes_and_decodes():
    server, url = _serve(routes={"eth_call": _word(1234)})
    try:
        value = _client(url).read_contract(ALICE, "balanceOf(address)", [ALICE], ["uint256"])
        assert value == "1234"
        call = _rpc_calls("eth_call")[0]
        assert call["params"][0]["data"].startswith("0x70a08231")
        assert call["params"][1] == "latest"
    finally:
        _stop(server)


def test_signing_requires_private_key():
    client = ScrollClient(NETWORKS["mainnet"])
    assert client.has_signer is False
    with pytest.raises(MissingCredentialsError):
        client.signer_address
    with pytest.raises(ValueError, match="Invalid private key"):
        ScrollClient(NETWORKS["mainnet"], NetworkCredentials(private_key="0x1234"))


def test_send_transaction_populates_signs_and_waits():
    receipt = {"transactionHash": TX_HASH, "blockNumber": "0x64", "status": "0x1", "gasUsed": "0x5208"}
    server, url = _serve(
        routes={
            "eth_getTransactionCount": "0x7",
            "eth_estimateGas": "0x5208",
            "eth_gasPrice": "0x3b9aca00",
            "eth_getBlockByNumber": _block(100),
            "eth_maxPriorityFeePerGas": "0x0",
            "eth_sendRawTransaction": TX_HASH,
            "eth_getTransactionReceipt": receipt,
        }
    )
    try:
        client = _client(url, private_key=DEV_PRIVATE_KEY)
        expected_from = Account.from_key(DEV_PRIVATE_KEY).address
        assert client.signer_address == expected_from
        out = client.send_transaction({"to": ALICE, "value": 10})
        assert out["hash"] == TX_HASH
        assert out["from"] == expected_from
        assert out["nonce"] == 7
        assert out["gas_limit"] == str(21_000 * 120 // 100)
        assert out["status"] == "success"
        assert out["block_number"] == 100
        raw = _rpc_calls("eth_sendRawTransaction")[0]["params"][0]
        assert raw.startswith("0x02")
        assert _rpc_calls("eth_getTransactionCount")[0]["params"] == [expected_from, "pending"]
    finally:
        _stop(server)


def test_wait_for_transaction_times_out():
    server, url = _serve(routes={"eth_getTransactionReceipt": None})
    try:
        with pytest.raises(TransactionTimeoutError):
            _client(url).wait_for_transaction(TX_HASH, timeout_seconds=0)
    finally:
        _stop(server)


def test_explorer_get_without_key_returns_none():
    assert _client("http://127.0.0.1:1").explorer_get({"module": "account"}) is None


def test_explorer_get_maps_empty_and_error_responses():
    responses = {
        "/api": lambda q: (
            {"status": "0", "message": "No transactions found", "result": []}
            if q.get("action") == "txlist"
            else {"status": "0", "message": "NOTOK", "result": "Invalid API Key"}
        )
    }
    server, url = _serve(http_routes=responses)
    try:
        api = ApiCredentials(scrollscan_api_key="key", scrollscan_endpoint=f"{url}/api")
        client = _client(url, api=api)
        assert client.explorer_get({"module": "account", "action": "txlist"}) == []
        with pytest.raises(HttpApiError, match="Invalid API Key"):
            client.explorer_get({"module": "account", "action": "balance"})
        assert _http_calls("/api")[0]["query"]["apikey"] == "key"
    finally:
        _stop(server)


def test_http_get_json_raises_on_http_error():
    server, url = _serve(http_routes={"/missing": (404, {"error": "nope"})})
    try:
        with pytest.raises(HttpApiError) as exc:
            _client(url).http_get_json(f"{url}/missing")
        assert exc.value.response["status"] == 404
    finally:
        _stop(server)


def test_l1_client_requires_endpoint():
    custom = create_scroll_client(NetworkCredentials(network="custom", rpc_url="http://127.0.0.1:1"))
    with pytest.raises(MissingCredentialsError):
        custom.l1_client()
    l1 = _client("http://127.0.0.1:1", l1_url="http://127.0.0.1:2").l1_client()
    assert l1.layer == "l1"
    assert l1.rpc_urls == ["http://127.0.0.1:2"]
    assert l1.network.chain_id == 1
