from __future__ import annotations

import pytest
from eth_abi import encode

from scroll_node import (
    resource_account_abstraction,
    resource_analytics,
    resource_canvas,
    resource_contract,
    resource_event,
    resource_session_keys,
    resource_token,
    resource_transaction,
    resource_utility,
)
from scroll_node.abi_codec import event_topic0
from scroll_node.address_utils import compute_create2_address, compute_create_address
from scroll_node.client import create_scroll_client
from scroll_node.config import ApiCredentials, NetworkCredentials
from scroll_node.error_map import NotFoundError, TransactionTimeoutError, UnknownOperationError
from scroll_node.session_store import SessionStore

from ._scroll_rpc_helpers import (
    ALICE,
    BOB,
    DEV_PRIVATE_KEY,
    TX_HASH,
    RpcError,
    _block,
    _client,
    _http_calls,
    _pad_address,
    _rpc_calls,
    _serve,
    _stop,
    _word,
)

TOKEN = "0x06eFdBFf2a14a7c8E15944D1F4A48F9F95F663A4"


def _erc20_call(params):
    selector = params[0]["data"][:10]
    if selector == "0x06fdde03":
        return "0x" + encode(["string"], ["USD Coin"]).hex()
    if selector == "0x95d89b41":
        return "0x" + encode(["string"], ["USDC"]).hex()
    if selector == "0x313ce567":
        return _word(6)
    if selector == "0x18160ddd":
        return _word(1_234_500_000)
    return RpcError(3, "execution reverted")


def test_unknown_operation_raises():
    with pytest.raises(UnknownOperationError):
        resource_utility.execute(_client("http://127.0.0.1:1"), "nope", {})


def test_token_metadata_reads_and_matches_known_list():
    server, url = _serve(routes={"eth_call": _erc20_call})
    try:
        out = resource_token.execute(_client(url), "getTokenMetadata", {"token_address": TOKEN.lower()})
        assert out["name"] == "USD Coin"
        assert out["decimals"] == 6
        assert out["total_supply_formatted"] == "1234.5"
        assert out["is_known_token"] is True
        assert out["l1_address"] == "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
    finally:
        _stop(server)


def test_token_metadata_falls_back_for_non_conforming_token():
    def call(params):
        if params[0]["data"][:10] == "0x18160ddd":
            return _word(5)
        return RpcError(3, "execution reverted")

    server, url = _serve(routes={"eth_call": call})
    try:
        out = resource_token.execute(_client(url), "getTokenInfo", {"token_address": ALICE})
        assert (out["name"], out["symbol"], out["decimals"]) == ("Unknown", "UNKNOWN", 18)
    finally:
        _stop(server)


def test_get_transaction_not_found():
    server, url = _serve(routes={"eth_getTransactionByHash": None})
    try:
        with pytest.raises(NotFoundError):
            resource_transaction.execute(_client(url), "getTransaction", {"tx_hash": TX_HASH})
    finally:
        _stop(server)


def test_tps_over_block_window():
    def block(params):
        number = int(params[0], 16)
        return _block(number, timestamp=1_000 + number * 3, txs=["0x" + "00" * 32] * 3)

    server, url = _serve(routes={"eth_blockNumber": hex(20), "eth_getBlockByNumber": block})
    try:
        out = resource_analytics.execute(_client(url), "getTPS", {"block_count": 5})
        assert out["total_transactions"] == 15
        assert out["time_span_seconds"] == 15
        assert out["tps"] == "1.00"
        assert (out["from_block"], out["to_block"]) == (16, 20)
    finally:
        _stop(server)


def test_gas_stats_summary():
    def block(params):
        number = int(params[0], 16)
        return _block(number, baseFeePerGas=hex(number * 1_000_000))

    server, url = _serve(routes={"eth_blockNumber": hex(3), "eth_getBlockByNumber": block})
    try:
        out = resource_analytics.execute(_client(url), "getGasStats", {"block_count": 3})
        assert out["block_count"] == 3
        assert out["min_base_fee"] == "1000000"
        assert out["max_base_fee"] == "3000000"
        assert out["avg_base_fee"] == "2000000"
        assert out["avg_utilization_percent"] == 50
    finally:
        _stop(server)


def test_utility_convert_and_validate():
    server, url = _serve(routes={"eth_getCode": "0x6080"})
    try:
        client = _client(url)
        converted = resource_utility.execute(client, "convertUnits", {"value": "2.5", "from_unit": "gwei", "to_unit": "wei"})
        assert converted["converted"] == "2500000000"
        valid = resource_utility.execute(client, "validateAddress", {"address": TOKEN.lower()})
        assert valid["is_valid"] is True
        assert valid["checksum_address"] == TOKEN
        assert valid["is_contract"] is True
        invalid = resource_utility.execute(client, "validateAddress", {"address": "0xnope"})
        assert invalid["is_valid"] is False
        assert len(_rpc_calls("eth_getCode")) == 1
    finally:
        _stop(server)


def test_utility_encode_and_decode_abi():
    client = _client("http://127.0.0.1:1")
    encoded = resource_utility.execute(
        client,
        "encodeABI",
        {"function_signature": "transfer(address,uint256)", "function_args": [ALICE, "5"]},
    )
    assert encoded["selector"] == "0xa9059cbb"
    decoded = resource_utility.execute(
        client,
        "decodeABI",
        {"function_signature": "transfer(address,uint256)", "encoded_data": encoded["encoded_data"]},
    )
    assert decoded["kind"] == "calldata"
    assert decoded["args"][1]["value"] == "5"
    result = resource_utility.execute(
        client,
        "decodeABI",
        {"abi": ["function balanceOf(address) view returns (uint256)"], "function_name": "balanceOf", "encoded_data": _word(8)},
    )
    assert result == {"function_name": "balanceOf", "kind": "result", "decoded": "8"}


def test_rpc_health_reports_failure_instead_of_raising():
    server, url = _serve(routes={"eth_blockNumber": RpcError(-32000, "backend down")})
    try:
        out = resource_utility.execute(_client(url), "getRPCHealth", {})
        assert out["healthy"] is False
        assert "backend down" in out["error"]
    finally:
        _stop(server)


def test_sdk_version_lists_features():
    out = resource_utility.execute(_client("http://127.0.0.1:1"), "getScrollSDKVersion", {})
    assert out["version"]
    assert "polling triggers" in out["features"]


def test_canvas_profile_falls_back_to_registry():
    server, url = _serve(routes={"eth_call": _word(0)})
    try:
        api = ApiCredentials(canvas_api_endpoint=f"{url}/canvas/")
        out = resource_canvas.execute(_client(url, api=api), "getProfile", {"address": ALICE})
        assert out == {"address": ALICE, "has_profile": False, "source": "contract"}
        assert _http_calls("/canvas/profile/" + ALICE)
    finally:
        _stop(server)


def test_canvas_profile_from_api():
    server, url = _serve(http_routes={f"/canvas/profile/{ALICE}": {"data": {"username": "alice"}}})
    try:
        api = ApiCredentials(canvas_api_endpoint=f"{url}/canvas")
        out = resource_canvas.execute(_client(url, api=api), "getProfile", {"address": ALICE})
        assert out["source"] == "api"
        assert out["profile"] == {"username": "alice"}
    finally:
        _stop(server)


def test_canvas_not_deployed_on_sepolia():
    with pytest.raises(ValueError, match="not deployed"):
        resource_canvas.execute(_client("http://127.0.0.1:1", network="sepolia"), "getBadges", {"address": ALICE})


def test_session_execution_is_recorded_when_receipt_never_arrives(tmp_path):
    store = SessionStore(tmp_path / "sessions.json")
    server, url = _serve(
        routes={
            "eth_getTransactionCount": "0x0",
            "eth_estimateGas": "0x5208",
            "eth_gasPrice": "0x3b9aca00",
            "eth_getBlockByNumber": _block(100),
            "eth_maxPriorityFeePerGas": "0x0",
            "eth_sendRawTransaction": TX_HASH,
            "eth_getTransactionReceipt": None,
        }
    )
    try:
        client = _client(url)
        created = resource_session_keys.execute(client, "createSessionKey", {"allowed_contracts": [BOB]}, store=store)
        params = {"session_key_address": created["address"], "target_contract": BOB, "call_data": "0x", "timeout": 0}
        with pytest.raises(TransactionTimeoutError):
            resource_session_keys.execute(client, "executeWithSession", params, store=store)
        history = resource_session_keys.execute(
            client, "getSessionTransactions", {"session_key_address": created["address"]}, store=store
        )
        assert history["count"] == 1
        assert history["transactions"][0]["hash"] == TX_HASH
        assert len(_rpc_calls("eth_sendRawTransaction")) == 1
    finally:
        _stop(server)


def test_tps_window_stops_at_genesis():
    def block(params):
        number = int(params[0], 16)
        return _block(number, timestamp=1_000 + number * 2, txs=["0x" + "00" * 32] * 2)

    server, url = _serve(routes={"eth_blockNumber": hex(3), "eth_getBlockByNumber": block})
    try:
        out = resource_analytics.execute(_client(url), "getTPS", {"block_count": 10})
        assert (out["from_block"], out["to_block"], out["block_count"]) == (1, 3, 3)
        assert out["total_transactions"] == 6
        assert out["time_span_seconds"] == 6
        requested = sorted(int(c["params"][0], 16) for c in _rpc_calls("eth_getBlockByNumber"))
        assert min(requested) == 0
    finally:
        _stop(server)


def test_deploy_without_wait_predicts_contract_address():
    server, url = _serve(
        routes={
            "eth_getTransactionCount": "0x7",
            "eth_estimateGas": "0x5208",
            "eth_gasPrice": "0x3b9aca00",
            "eth_getBlockByNumber": _block(100),
            "eth_maxPriorityFeePerGas": "0x0",
            "eth_sendRawTransaction": TX_HASH,
        }
    )
    try:
        client = _client(url, private_key=DEV_PRIVATE_KEY)
        out = resource_contract.execute(client, "deployContract", {"bytecode": "0x6080", "wait": False})
        assert out["status"] == "pending"
        assert out["contract_address"] == compute_create_address(client.signer_address, 7)
        assert _rpc_calls("eth_getTransactionReceipt") == []
    finally:
        _stop(server)


def test_canvas_rejects_custom_network():
    client = create_scroll_client(NetworkCredentials(network="custom", rpc_url="http://127.0.0.1:1"))
    with pytest.raises(ValueError, match="no contracts on network custom"):
        resource_canvas.execute(client, "getCanvasStats", {})


def test_decode_event_by_name_from_abi():
    abi = [
        "event Approval(address indexed owner, address indexed spender, uint256 value)",
        "event Transfer(address indexed from, address indexed to, uint256 value)",
    ]
    topics = [event_topic0("Transfer(address,address,uint256)"), _pad_address(ALICE), _pad_address(BOB)]
    out = resource_event.execute(
        _client("http://127.0.0.1:1"),
        "decodeEvent",
        {"abi": abi, "event_name": "Transfer", "log_topics": topics, "log_data": _word(3)},
    )
    assert out["event"] == "Transfer"
    assert out["args"][2]["value"] == "3"
    with pytest.raises(ValueError, match="event not found"):
        resource_event.execute(
            _client("http://127.0.0.1:1"),
            "decodeEvent",
            {"abi": abi, "event_name": "Burn", "log_topics": topics, "log_data": _word(3)},
        )


def test_smart_account_address_falls_back_to_create2():
    init_code_hash = "0x" + "ab" * 32
    server, url = _serve(routes={"eth_call": RpcError(3, "execution reverted")})
    try:
        out = resource_account_abstraction.execute(
            _client(url),
            "deploySmartAccount",
            {"account_factory": BOB, "owner_address": ALICE, "salt": 5, "account_init_code_hash": init_code_hash},
        )
        assert out["predicted_address"] == compute_create2_address(BOB, "0x" + format(5, "064x"), init_code_hash)
        assert out["init_code"].lower().startswith(BOB)
    finally:
        _stop(server)
