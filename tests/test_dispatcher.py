from __future__ import annotations

import json

from eth_abi import encode

from scroll_node.dispatcher import RESOURCE_MODULES, list_operations, run_node_request
from scroll_node.session_store import SessionStore

from ._scroll_rpc_helpers import (
    ALICE,
    BOB,
    RpcError,
    _block,
    _http_calls,
    _node_env,
    _rpc_calls,
    _serve,
    _stop,
    _word,
)

CONFIRMED = {"allow_broadcast": True, "confirmation_token": "confirm-1234"}


def _req(resource, operation, params=None, **extra):
    req = {"resource": resource, "operation": operation, "params": params or {}, "timeout_seconds": 2}
    req.update(extra)
    return req


def test_every_resource_is_registered():
    assert len(RESOURCE_MODULES) == 19
    ops = list_operations()
    assert ops["account"]["getBalance"]["tier"] == "read"
    assert ops["transaction"]["sendTransaction"]["tier"] == "broadcast"
    assert ops["sessionKeys"]["createSessionKey"]["tier"] == "local-sensitive"
    for module in RESOURCE_MODULES.values():
        assert set(module.OPERATION_TIERS) <= set(module.OPERATIONS)


def test_invalid_request_rejected_before_network():
    exit_code, payload = run_node_request({"resource": "account"}, env={})
    assert exit_code == 2
    assert payload["error_code"] == "INVALID_REQUEST"


def test_unknown_resource_and_operation():
    exit_code, payload = run_node_request(_req("wallet", "getBalance"), env={})
    assert exit_code == 2
    assert payload["error_code"] == "UNKNOWN_RESOURCE"
    assert "account" in payload["hint"]
    exit_code, payload = run_node_request(_req("account", "getEverything"), env={})
    assert exit_code == 2
    assert payload["error_code"] == "UNKNOWN_OPERATION"
    assert payload["method"] == "account.getEverything"


def test_get_balance_success_envelope():
    server, url = _serve(routes={"eth_getBalance": hex(1_500_000_000_000_000_000)})
    try:
        exit_code, payload = run_node_request(_req("account", "getBalance", {"address": ALICE}), env=_node_env(url))
        assert exit_code == 0, payload
        assert payload["ok"] is True
        assert payload["method"] == "account.getBalance"
        assert payload["result"]["balance"] == "1.5"
        assert payload["result"]["balance_wei"] == "1500000000000000000"
        assert payload["policy"]["tier"] == "read"
        assert _rpc_calls("eth_getBalance")[0]["params"] == [ALICE, "latest"]
    finally:
        _stop(server)


def test_invalid_param_maps_to_invalid_request():
    exit_code, payload = run_node_request(_req("account", "getBalance", {"address": "0x12"}), env=_node_env("http://127.0.0.1:1"))
    assert exit_code == 2
    assert payload["error_code"] == "INVALID_REQUEST"


def test_missing_block_is_not_found():
    server, url = _serve(routes={"eth_getBlockByNumber": None})
    try:
        exit_code, payload = run_node_request(_req("block", "getBlock", {"block_number": 99}), env=_node_env(url))
        assert exit_code == 1
        assert payload["error_code"] == "NOT_FOUND"
        assert payload["policy"]["allowed"] is True
    finally:
        _stop(server)


def test_remote_error_keeps_rpc_context():
    server, url = _serve(routes={"eth_getBalance": RpcError(-32000, "header not found")})
    try:
        exit_code, payload = run_node_request(_req("account", "getBalance", {"address": ALICE}), env=_node_env(url))
        assert exit_code == 1
        assert payload["error_code"] == "RPC_REMOTE_ERROR"
        assert payload["rpc_request"]["method"] == "eth_getBalance"
        assert payload["rpc_response"]["error"]["message"] == "header not found"
    finally:
        _stop(server)


def test_broadcast_denied_without_context():
    exit_code, payload = run_node_request(
        _req("transaction", "sendTransaction", {"to": BOB, "value": "0.1"}),
        env=_node_env("http://127.0.0.1:1"),
    )
    assert exit_code == 4
    assert payload["status"] == "denied"
    assert payload["error_code"] == "POLICY_DENIED"


def test_broadcast_denied_without_signer():
    exit_code, payload = run_node_request(
        _req("transaction", "sendTransaction", {"to": BOB, "value": "0.1"}, context=CONFIRMED),
        env=_node_env("http://127.0.0.1:1"),
    )
    assert exit_code == 4
    assert payload["policy"]["reason"] == "operation requires a configured private key"


def test_items_with_continue_on_fail():
    server, url = _serve(routes={"eth_getBalance": hex(10**18)})
    try:
        req = _req("account", "getBalance", items=[{"address": ALICE}, {"address": "bogus"}, {"address": BOB}], continue_on_fail=True)
        exit_code, payload = run_node_request(req, env=_node_env(url))
        assert exit_code == 0, payload
        results = payload["result"]
        assert [r.get("balance") for r in results] == ["1", None, "1"]
        assert "error" in results[1]
    finally:
        _stop(server)


def test_items_stop_on_first_failure_by_default():
    server, url = _serve(routes={"eth_getBalance": hex(1)})
    try:
        req = _req("account", "getBalance", items=[{"address": "bogus"}, {"address": ALICE}])
        exit_code, payload = run_node_request(req, env=_node_env(url))
        assert exit_code == 2
        assert payload["error_code"] == "INVALID_REQUEST"
        assert _rpc_calls("eth_getBalance") == []
    finally:
        _stop(server)


def test_request_credentials_are_redacted_in_envelope():
    server, url = _serve(routes={"eth_blockNumber": "0x10"})
    try:
        req = _req("utility", "getBlockNumber", credentials={"rpc_url": url, "scrollscan_api_key": "secret-key"})
        exit_code, payload = run_node_request(req, env={})
        assert exit_code == 0, payload
        assert payload["request"]["credentials"]["scrollscan_api_key"] == "***"
        assert "secret-key" not in json.dumps(payload)
    finally:
        _stop(server)


def test_multicall_batch_read_decodes_each_call():
    return_data = "0x" + encode(
        ["(bool,bytes)[]"],
        [[(True, bytes.fromhex(_word(7)[2:])), (False, b"")]],
    ).hex()
    server, url = _serve(routes={"eth_call": return_data})
    try:
        calls = [
            {"id": "alice", "target": ALICE, "signature": "balanceOf(address)", "args": [ALICE], "returns": ["uint256"]},
            {"target": BOB, "data": "0x18160ddd"},
        ]
        exit_code, payload = run_node_request(_req("multicall", "batchReadCalls", {"calls": calls}), env=_node_env(url))
        assert exit_code == 0, payload
        result = payload["result"]
        assert result["success_count"] == 1 and result["failed_count"] == 1
        assert result["results"][0]["id"] == "alice"
        assert result["results"][0]["decoded"] == ["7"]
        assert result["results"][1]["success"] is False
        call = _rpc_calls("eth_call")[0]["params"][0]
        assert call["to"] == "0xcA11bde05977b3631167028862bE2a173976CA11"
        assert call["data"].startswith("0x82ad56cb")
    finally:
        _stop(server)


def test_multicall_write_mode_needs_broadcast_policy():
    calls = [{"target": ALICE, "data": "0x"}]
    exit_code, payload = run_node_request(
        _req("multicall", "executeMulticall", {"calls": calls, "mode": "write"}),
        env=_node_env("http://127.0.0.1:1"),
    )
    assert exit_code == 4
    assert payload["policy"]["tier"] == "broadcast"


def test_multicall_reports_bad_call_index():
    exit_code, payload = run_node_request(
        _req("multicall", "createMulticall", {"calls": [{"target": ALICE, "data": "0x"}, {"target": "nope", "data": "0x"}]}),
        env=_node_env("http://127.0.0.1:1"),
    )
    assert exit_code == 2
    assert "calls[1].target" in payload["error_message"]


def test_session_key_lifecycle(tmp_path):
    store_path = tmp_path / "sessions.json"
    server, url = _serve(routes={"eth_getTransactionCount": "0x0", "eth_getBalance": "0x0"})
    try:
        env = _node_env(url)
        denied_code, _ = run_node_request(_req("sessionKeys", "createSessionKey", {}), env=env, session_store=str(store_path))
        assert denied_code == 4

        ctx = {"allow_local_sensitive": True}
        exit_code, payload = run_node_request(
            _req(
                "sessionKeys",
                "createSessionKey",
                {"valid_for_seconds": 3600, "allowed_contracts": [BOB], "allowed_selectors": ["0xa9059cbb"], "max_value": "0.5"},
                context=ctx,
            ),
            env=env,
            session_store=str(store_path),
        )
        assert exit_code == 0, payload
        created = payload["result"]
        address = created["address"]
        assert created["session_key_private_key"].startswith("0x")
        assert created["is_active"] is True
        assert created["permissions"]["max_value_wei"] == str(5 * 10**17)

        exit_code, payload = run_node_request(
            _req("sessionKeys", "getSessionKey", {"session_key_address": address}), env=env, session_store=str(store_path)
        )
        assert exit_code == 0, payload
        assert "private_key" not in payload["result"]
        assert payload["result"]["nonce"] == 0

        exit_code, payload = run_node_request(
            _req("sessionKeys", "revokeSessionKey", {"session_key_address": address}, context=ctx),
            env=env,
            session_store=str(store_path),
        )
        assert exit_code == 0, payload
        assert payload["result"]["is_active"] is False
        assert SessionStore(store_path).require(address)["revoked"] is True

        exit_code, payload = run_node_request(
            _req(
                "sessionKeys",
                "executeWithSession",
                {"session_key_address": address, "target_contract": BOB, "call_data": "0xa9059cbb"},
                context=CONFIRMED,
            ),
            env=env,
            session_store=str(store_path),
        )
        assert exit_code == 4
        assert payload["error_code"] == "POLICY_DENIED"
        assert "revoked" in payload["error_message"]
    finally:
        _stop(server)


def test_subgraph_query_and_graphql_errors():
    def graphql(body):
        if "broken" in body["query"]:
            return {"errors": [{"message": "Type `broken` not found"}]}
        return {"data": {"tokens": [{"id": "1"}, {"id": "2"}]}}

    server, url = _serve(http_routes={"/subgraph": graphql})
    try:
        env = _node_env(url, SCROLL_SUBGRAPH_URL=f"{url}/subgraph")
        exit_code, payload = run_node_request(
            _req("subgraph", "getIndexedData", {"entity_type": "tokens", "first": 2, "order_by": "id"}), env=env
        )
        assert exit_code == 0, payload
        assert payload["result"]["count"] == 2
        sent = _http_calls("/subgraph")[0]["body"]["query"]
        assert sent == "{ tokens(first: 2, skip: 0, orderBy: id, orderDirection: desc) { id } }"

        exit_code, payload = run_node_request(_req("subgraph", "querySubgraph", {"query": "{ broken { id } }"}), env=env)
        assert exit_code == 1
        assert payload["error_code"] == "HTTP_API_ERROR"
        assert "broken" in payload["error_message"]
    finally:
        _stop(server)


def test_subgraph_requires_url():
    exit_code, payload = run_node_request(
        _req("subgraph", "getSubgraphStatus"), env=_node_env("http://127.0.0.1:1")
    )
    assert exit_code == 2
    assert payload["error_code"] == "MISSING_CREDENTIALS"


def test_gas_price_read():
    server, url = _serve(
        routes={
            "eth_gasPrice": hex(2_000_000),
            "eth_getBlockByNumber": _block(10, baseFeePerGas=hex(1_000_000)),
            "eth_maxPriorityFeePerGas": hex(1_000_000),
        }
    )
    try:
        exit_code, payload = run_node_request(_req("gas", "getGasPrice"), env=_node_env(url))
        assert exit_code == 0, payload
        assert payload["result"]["gas_price"] == "2000000"
    finally:
        _stop(server)


def test_latest_block_and_every_resource_lists_tiers():
    for name in ("block", "gas", "event", "batch", "rollup", "defi"):
        module = RESOURCE_MODULES[name]
        assert isinstance(module.OPERATION_TIERS, dict)
        assert isinstance(module.SIGNER_OPERATIONS, set)
    server, url = _serve(routes={"eth_getBlockByNumber": _block(77, txs=["0x" + "aa" * 32])})
    try:
        exit_code, payload = run_node_request(_req("block", "getLatestBlock"), env=_node_env(url))
        assert exit_code == 0, payload
        assert payload["method"] == "block.getLatestBlock"
        assert payload["policy"]["tier"] == "read"
        assert payload["result"]["number"] == 77
        assert payload["result"]["transaction_count"] == 1
        assert _rpc_calls("eth_getBlockByNumber")[0]["params"] == ["latest", False]
    finally:
        _stop(server)
