from __future__ import annotations

import json

from scroll_node.cli import select_jsonpath

from ._scroll_rpc_helpers import ALICE, _node_env, _run_cli, _serve, _stop


def test_operations_lists_resources_and_events():
    proc = _run_cli(["operations", "--compact"])
    assert proc.returncode == 0, proc.stdout + proc.stderr
    payload = json.loads(proc.stdout)
    assert payload["ok"] is True
    assert "getBalance" in payload["result"]["resources"]["account"]
    assert "canvasBadgeMinted" in payload["result"]["trigger_events"]


def test_networks_select_chain_id():
    proc = _run_cli(["networks", "--select", "$.result.sepolia.chain_id"])
    assert proc.returncode == 0, proc.stdout + proc.stderr
    assert proc.stdout.strip() == "534351"


def test_bad_select_path_is_invalid():
    proc = _run_cli(["networks", "--select", "$.result.nope"])
    assert proc.returncode == 2
    payload = json.loads(proc.stdout)
    assert payload["error_code"] == "INVALID_REQUEST"
    assert "key 'nope' not found" in payload["error_message"]


def test_abi_selector_and_error_codes():
    proc = _run_cli(
        ["abi", "--request-json", json.dumps({"operation": "function_selector", "signature": "balanceOf(address)"}), "--result-only"]
    )
    assert proc.returncode == 0, proc.stdout + proc.stderr
    assert json.loads(proc.stdout) == {"selector": "0x70a08231"}

    proc = _run_cli(["abi", "--request-json", json.dumps({"operation": "decode_output", "types": ["uint256"], "data": "0x01"})])
    assert proc.returncode == 2
    assert json.loads(proc.stdout)["error_code"] == "ABI_DECODE_FAILED"

    proc = _run_cli(["abi"])
    assert proc.returncode == 2


def test_execute_get_balance_from_flags():
    server, url = _serve(routes={"eth_getBalance": hex(2 * 10**18)})
    try:
        proc = _run_cli(
            [
                "execute",
                "--resource",
                "account",
                "--operation",
                "getBalance",
                "--params-json",
                json.dumps({"address": ALICE}),
                "--timeout-seconds",
                "2",
                "--select",
                "$.result.balance",
            ],
            _node_env(url),
        )
        assert proc.returncode == 0, proc.stdout + proc.stderr
        assert proc.stdout.strip() == "2"
    finally:
        _stop(server)


def test_execute_request_file_and_config(tmp_path):
    server, url = _serve(routes={"eth_blockNumber": "0x64"})
    try:
        config = tmp_path / "scroll-node.yaml"
        config.write_text(f"network:\n  network: mainnet\n  rpc_url: {url}\n", encoding="utf-8")
        request = tmp_path / "req.json"
        request.write_text(json.dumps({"resource": "utility", "operation": "getBlockNumber", "timeout_seconds": 2}), encoding="utf-8")
        proc = _run_cli(["--config", str(config), "execute", "--request-file", str(request), "--result-only"])
        assert proc.returncode == 0, proc.stdout + proc.stderr
        assert json.loads(proc.stdout) == {"block_number": 100, "network": "mainnet"}
    finally:
        _stop(server)


def test_execute_policy_denied_exit_code():
    req = {"resource": "transaction", "operation": "sendETH", "params": {"to": ALICE, "amount": "1"}, "timeout_seconds": 2}
    proc = _run_cli(["execute", "--request-json", json.dumps(req)], _node_env("http://127.0.0.1:1"))
    assert proc.returncode == 4
    payload = json.loads(proc.stdout)
    assert payload["status"] == "denied"


def test_execute_malformed_json_is_invalid():
    proc = _run_cli(["execute", "--request-json", "{not json"])
    assert proc.returncode == 2
    assert json.loads(proc.stdout)["error_code"] == "INVALID_REQUEST"


def test_poll_persists_cursor_in_state_file(tmp_path):
    server, url = _serve(routes={"eth_getTransactionCount": "0x4", "eth_getBalance": "0x0"})
    state_file = tmp_path / "trigger-state.json"
    try:
        args = [
            "poll",
            "--event",
            "addressActivity",
            "--params-json",
            json.dumps({"watch_address": ALICE}),
            "--state-file",
            str(state_file),
            "--state-key",
            "alice",
            "--compact",
        ]
        proc = _run_cli(args, _node_env(url))
        assert proc.returncode == 0, proc.stdout + proc.stderr
        assert json.loads(proc.stdout)["result"]["count"] == 0
        assert json.loads(state_file.read_text(encoding="utf-8")) == {"alice": {"last_nonce": 4}}
    finally:
        _stop(server)


def test_poll_watch_stops_after_max_polls(tmp_path):
    server, url = _serve(routes={"eth_getTransactionCount": "0x1"})
    try:
        proc = _run_cli(
            [
                "poll",
                "--event",
                "addressActivity",
                "--params-json",
                json.dumps({"watch_address": ALICE}),
                "--state-file",
                str(tmp_path / "s.json"),
                "--watch",
                "--interval",
                "0",
                "--max-polls",
                "2",
                "--compact",
            ],
            _node_env(url),
        )
        assert proc.returncode == 0, proc.stdout + proc.stderr
        assert len(proc.stdout.strip().splitlines()) == 2
    finally:
        _stop(server)


def test_version_flag():
    proc = _run_cli(["--version"])
    assert proc.returncode == 0
    assert proc.stdout.startswith("scroll-node ")


def test_select_jsonpath_helper():
    assert select_jsonpath({"a": [{"b": 1}]}, "$.a[0].b") == (True, 1, "")
    assert select_jsonpath({"a": []}, "$.a[0]")[0] is False
    assert select_jsonpath({}, "a")[2] == "path must start with '$'"
