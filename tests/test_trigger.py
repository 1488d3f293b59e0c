from __future__ import annotations

import pytest

from scroll_node.abi_codec import event_topic0
from scroll_node.error_map import RpcCallError, UnknownEventError
from scroll_node.trigger import EVENTS, TRANSFER_TOPIC, ZERO_TOPIC, poll, run_trigger_poll
from scroll_node.trigger_state import JsonStateStore

from ._scroll_rpc_helpers import (
    ALICE,
    BOB,
    TX_HASH,
    RpcError,
    _block,
    _client,
    _node_env,
    _pad_address,
    _rpc_calls,
    _serve,
    _stop,
    _word,
)

TOKEN = "0x3333333333333333333333333333333333333333"


class _Head:
    """Mutable block number route."""

    def __init__(self, number: int) -> None:
        self.number = number

    def __call__(self, _params):
        return hex(self.number)


def _transfer_log(*, block: int, topics: list[str], data: str = "0x", address: str = TOKEN) -> dict:
    return {
        "address": address,
        "topics": topics,
        "data": data,
        "blockNumber": hex(block),
        "transactionHash": TX_HASH,
        "logIndex": "0x0",
    }


def test_event_catalogue():
    assert len(EVENTS) == 11
    with pytest.raises(UnknownEventError):
        poll(_client("http://127.0.0.1:1"), "mempool", {}, {})


def test_new_block_respects_interval():
    blocks = {"number": 100}
    server, url = _serve(routes={"eth_getBlockByNumber": lambda params: _block(blocks["number"])})
    try:
        client = _client(url)
        state: dict = {}
        assert poll(client, "newBlock", {"block_interval": 2}, state) == []
        assert state == {"last_block": 100}
        blocks["number"] = 101
        assert poll(client, "newBlock", {"block_interval": 2}, state) == []
        blocks["number"] = 102
        items = poll(client, "newBlock", {"block_interval": 2}, state)
        assert [i["block_number"] for i in items] == [102]
        assert state["last_block"] == 102
    finally:
        _stop(server)


def test_block_finalized_uses_finalized_tag():
    server, url = _serve(routes={"eth_getBlockByNumber": _block(50)})
    try:
        client = _client(url)
        state = {"last_block": 40}
        items = poll(client, "blockFinalized", {}, state)
        assert items[0]["status"] == "finalized"
        assert _rpc_calls("eth_getBlockByNumber")[0]["params"][0] == "finalized"
    finally:
        _stop(server)


def test_transaction_confirmed_fires_once():
    head = _Head(10)
    receipt = {"transactionHash": TX_HASH, "blockNumber": "0xa", "status": "0x1", "gasUsed": "0x5208"}
    server, url = _serve(routes={"eth_getTransactionReceipt": receipt, "eth_blockNumber": head})
    try:
        client = _client(url)
        params = {"transaction_hash": TX_HASH, "confirmations": 3}
        state: dict = {}
        assert poll(client, "transactionConfirmed", params, state) == []
        head.number = 12
        items = poll(client, "transactionConfirmed", params, state)
        assert items[0]["confirmations"] == 3
        assert items[0]["status"] == "success"
        assert state == {"triggered": True}
        assert poll(client, "transactionConfirmed", params, state) == []
    finally:
        _stop(server)


def test_token_transfer_scans_from_cursor_and_filters_recipient():
    head = _Head(200)
    logs = [
        _transfer_log(block=201, topics=[TRANSFER_TOPIC, _pad_address(ALICE), _pad_address(BOB)], data=_word(500)),
        # ERC-721 transfer carries the token id as a fourth topic.
        _transfer_log(block=202, topics=[TRANSFER_TOPIC, _pad_address(ALICE), _pad_address(BOB), _word(1)]),
    ]
    server, url = _serve(routes={"eth_blockNumber": head, "eth_getLogs": logs})
    try:
        client = _client(url)
        params = {"token_address": TOKEN, "filter_by": "to", "to_address": BOB}
        state: dict = {}
        assert poll(client, "tokenTransfer", params, state) == []
        assert _rpc_calls("eth_getLogs") == []
        head.number = 205
        items = poll(client, "tokenTransfer", params, state)
        assert len(items) == 1
        assert items[0]["value"] == "500"
        assert items[0]["to"].lower() == BOB
        log_filter = _rpc_calls("eth_getLogs")[0]["params"][0]
        assert log_filter["fromBlock"] == hex(201)
        assert log_filter["toBlock"] == hex(205)
        assert log_filter["topics"] == [TRANSFER_TOPIC, None, _pad_address(BOB)]
        assert state["last_block"] == 205
    finally:
        _stop(server)


def test_nft_transfer_keeps_only_four_topic_logs():
    logs = [
        _transfer_log(block=11, topics=[TRANSFER_TOPIC, _pad_address(ALICE), _pad_address(BOB)], data=_word(1)),
        _transfer_log(block=11, topics=[TRANSFER_TOPIC, _pad_address(ALICE), _pad_address(BOB), _word(42)]),
    ]
    server, url = _serve(routes={"eth_blockNumber": "0xb", "eth_getLogs": logs})
    try:
        items = poll(_client(url), "nftTransfer", {"nft_address": TOKEN}, {"last_block": 10})
        assert [i["token_id"] for i in items] == ["42"]
    finally:
        _stop(server)


def test_failed_poll_keeps_cursor():
    server, url = _serve(routes={"eth_blockNumber": "0x20", "eth_getLogs": RpcError(-32005, "limit exceeded")})
    try:
        state = {"last_block": 16}
        with pytest.raises(RpcCallError):
            poll(_client(url), "tokenTransfer", {}, state)
        assert state == {"last_block": 16}
    finally:
        _stop(server)


def test_contract_event_decodes_declarations():
    declaration = "event Transfer(address indexed from, address indexed to, uint256 value)"
    logs = [_transfer_log(block=6, topics=[TRANSFER_TOPIC, _pad_address(ALICE), _pad_address(BOB)], data=_word(9))]
    server, url = _serve(routes={"eth_blockNumber": "0x6", "eth_getLogs": logs})
    try:
        items = poll(
            _client(url),
            "contractEvent",
            {"contract_address": TOKEN, "event_signature": declaration},
            {"last_block": 5},
        )
        decoded = items[0]["decoded"]
        assert decoded["event"] == "Transfer"
        assert decoded["args"][2]["value"] == "9"
    finally:
        _stop(server)


def test_address_activity_reports_nonce_increase():
    nonce = _Head(3)
    server, url = _serve(routes={"eth_getTransactionCount": nonce, "eth_getBalance": hex(10**18)})
    try:
        client = _client(url)
        state: dict = {}
        assert poll(client, "addressActivity", {"watch_address": ALICE}, state) == []
        nonce.number = 5
        items = poll(client, "addressActivity", {"watch_address": ALICE}, state)
        assert items[0]["new_transactions"] == 2
        assert items[0]["balance"] == "1"
    finally:
        _stop(server)


def test_large_transaction_scans_at_most_five_blocks():
    def block_by_number(params):
        number = int(params[0], 16)
        txs = [
            {"hash": TX_HASH, "from": ALICE, "to": BOB, "value": hex(2 * 10**18)},
            {"hash": "0x" + "01" * 32, "from": ALICE, "to": BOB, "value": hex(10**17)},
        ]
        return _block(number, txs=txs if number == 103 else [])

    server, url = _serve(routes={"eth_blockNumber": "0x7d0", "eth_getBlockByNumber": block_by_number})
    try:
        state = {"last_block": 100}
        items = poll(_client(url), "largeTransaction", {"min_value": "1"}, state)
        assert [i["block_number"] for i in items] == [103]
        assert items[0]["value"] == "2"
        assert state["last_block"] == 105
        assert len(_rpc_calls("eth_getBlockByNumber")) == 5
    finally:
        _stop(server)


def test_bridge_deposit_filters_gateway_and_topics():
    deposit_topic = event_topic0("DepositETH(address,address,uint256,bytes)")
    finalize_topic = event_topic0("FinalizeDepositETH(address,address,uint256,bytes)")
    logs = [
        {
            "address": "0x6EA73e05AdC79974B931123675ea8F78FfdacDF0",
            "topics": [finalize_topic, _pad_address(ALICE), _pad_address(BOB)],
            "data": "0x",
            "blockNumber": "0x9",
            "transactionHash": TX_HASH,
            "logIndex": "0x1",
        }
    ]
    server, url = _serve(routes={"eth_blockNumber": "0x9", "eth_getLogs": logs})
    try:
        items = poll(_client(url), "bridgeDeposit", {}, {"last_block": 8})
        assert items[0]["event"] == "FinalizeDepositETH"
        assert items[0]["from"].lower() == ALICE
        log_filter = _rpc_calls("eth_getLogs")[0]["params"][0]
        assert log_filter["address"] == "0x6EA73e05AdC79974B931123675ea8F78FfdacDF0"
        assert log_filter["topics"] == [[deposit_topic, finalize_topic]]
    finally:
        _stop(server)


def test_canvas_badge_minted_uses_configured_badge_contract():
    logs = [_transfer_log(block=3, topics=[TRANSFER_TOPIC, ZERO_TOPIC, _pad_address(BOB), _word(7)])]
    server, url = _serve(routes={"eth_blockNumber": "0x3", "eth_getLogs": logs})
    try:
        items = poll(_client(url), "canvasBadgeMinted", {"badge_recipient": BOB}, {"last_block": 2})
        assert items[0]["recipient"].lower() == BOB
        assert items[0]["token_id"] == "7"
        log_filter = _rpc_calls("eth_getLogs")[0]["params"][0]
        assert log_filter["address"] == "0xa74dFebc9903886EaA1F2C16F49DB63b7700Dbc4"
        assert log_filter["topics"] == [TRANSFER_TOPIC, ZERO_TOPIC, _pad_address(BOB)]
    finally:
        _stop(server)


def test_run_trigger_poll_persists_state(tmp_path):
    head = _Head(40)
    server, url = _serve(routes={"eth_blockNumber": head, "eth_getLogs": []})
    try:
        store = JsonStateStore(tmp_path / "state.json")
        req = {"event": "tokenTransfer", "params": {}, "state_key": "usdc-watch", "timeout_seconds": 2}
        exit_code, payload = run_trigger_poll(req, state_store=store, env=_node_env(url))
        assert exit_code == 0, payload
        assert payload["method"] == "trigger.tokenTransfer"
        assert payload["result"]["count"] == 0
        assert store.get("usdc-watch") == {"last_block": 40}

        head.number = 45
        exit_code, payload = run_trigger_poll(req, state_store=store, env=_node_env(url))
        assert exit_code == 0, payload
        assert store.get("usdc-watch") == {"last_block": 45}
    finally:
        _stop(server)


def test_run_trigger_poll_with_inline_state_and_errors():
    exit_code, payload = run_trigger_poll({"event": "nope"}, env={})
    assert exit_code == 2
    assert payload["error_code"] == "UNKNOWN_EVENT"

    exit_code, payload = run_trigger_poll(
        {"event": "addressActivity", "params": {}, "state": {}}, env=_node_env("http://127.0.0.1:1")
    )
    assert exit_code == 2
    assert payload["error_code"] == "INVALID_REQUEST"

    server, url = _serve(routes={"eth_getTransactionCount": "0x1"})
    try:
        exit_code, payload = run_trigger_poll(
            {"event": "addressActivity", "params": {"watch_address": ALICE}, "state": {"last_nonce": 1}},
            env=_node_env(url),
        )
        assert exit_code == 0, payload
        assert payload["result"]["state"] == {"last_nonce": 1}
    finally:
        _stop(server)


def test_state_store_rejects_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError, match="JSON object"):
        JsonStateStore(path).get("x")
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="not valid JSON"):
        JsonStateStore(path).load()
