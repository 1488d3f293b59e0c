from __future__ import annotations

from scroll_node import resource_batch, resource_gas, resource_rollup
from scroll_node.abi_codec import event_topic0, function_selector
from scroll_node.proof_utils import parse_rollup_event

from ._scroll_rpc_helpers import TX_HASH, RpcError, _client, _rpc_calls, _serve, _stop, _word

STATE_ROOT = "0x" + "aa" * 32
COMMITMENT = "0x" + "cc" * 32


def _scroll_chain(last_finalized: int, committed_up_to: int):
    """eth_call route that answers like the L1 ScrollChain contract."""

    def call(params):
        data = params[0]["data"]
        selector = data[:10]
        index = int(data[10:], 16) if len(data) > 10 else None
        if selector == function_selector("lastFinalizedBatchIndex()"):
            return _word(last_finalized)
        if selector == function_selector("isBatchFinalized(uint256)"):
            return _word(int(index <= last_finalized))
        if selector == function_selector("committedBatches(uint256)"):
            return COMMITMENT if index <= committed_up_to else _word(0)
        if selector in (
            function_selector("finalizedStateRoots(uint256)"),
            function_selector("withdrawRoots(uint256)"),
        ):
            return STATE_ROOT
        return RpcError(3, "execution reverted")

    return call


def _oracle(params):
    selector = params[0]["data"][:10]
    values = {
        function_selector("l1BaseFee()"): 10_000_000_000,
        function_selector("overhead()"): 2_500,
        function_selector("scalar()"): 1_150_000_000,
        function_selector("getL1Fee(bytes)"): 57_500_000_000_000,
    }
    if selector in values:
        return _word(values[selector])
    return RpcError(3, "execution reverted")


def test_parse_rollup_event_commit_and_finalize():
    commit = {
        "topics": [event_topic0("CommitBatch(uint256,bytes32)"), _word(42), COMMITMENT],
        "data": "0x",
        "transactionHash": TX_HASH,
    }
    assert parse_rollup_event(commit, "commit") == {
        "index": 42,
        "hash": COMMITMENT,
        "status": "committed",
        "l1_tx_hash": TX_HASH,
    }
    finalize = dict(commit, data=STATE_ROOT + "bb" * 32)
    out = parse_rollup_event(finalize, "finalize")
    assert out["status"] == "finalized"
    assert out["state_root"] == STATE_ROOT
    assert out["withdraw_root"] == "0x" + "bb" * 32
    assert parse_rollup_event(dict(commit, data="0x12"), "finalize") is None
    assert parse_rollup_event({"topics": [COMMITMENT]}, "commit") is None


def test_batch_status_reads_scroll_chain_on_l1():
    server, url = _serve(routes={"eth_call": _scroll_chain(last_finalized=100, committed_up_to=103)})
    try:
        client = _client(url)
        finalized = resource_batch.execute(client, "getBatchStatus", {"batch_index": 99})
        assert finalized["status"] == "finalized"
        assert finalized["state_root"] == STATE_ROOT
        assert finalized["estimated_blocks"] == "9900 - 9999"
        committed = resource_batch.execute(client, "getBatchStatus", {"batch_index": 102})
        assert committed["status"] == "committed"
        assert committed["batch_hash"] == COMMITMENT
        pending = resource_batch.execute(client, "getBatchStatus", {"batch_index": 150})
        assert pending == {
            "batch_index": 150,
            "batch_hash": None,
            "status": "pending",
            "estimated_blocks": "15000 - 15099",
        }
        assert _rpc_calls("eth_call")[0]["params"][0]["to"] == "0xa13BAF47339d63B743e7Da8741db5456DAc1E556"
    finally:
        _stop(server)


def test_pending_batches_stop_at_first_empty_commitment():
    server, url = _serve(routes={"eth_call": _scroll_chain(last_finalized=100, committed_up_to=103)})
    try:
        out = resource_batch.execute(_client(url), "getPendingBatches", {"max_batches": 10})
        assert out["pending_count"] == 3
        assert out["last_committed_batch_index"] == 103
        assert [b["batch_index"] for b in out["batches"]] == [101, 102, 103]
    finally:
        _stop(server)


def test_latest_batch_degrades_without_l1():
    server, url = _serve(routes={"eth_blockNumber": hex(25_000), "eth_call": RpcError(-32000, "l1 down")})
    try:
        out = resource_batch.execute(_client(url), "getLatestBatch", {})
        assert out["estimated_batch_index"] == 250
        assert out["last_finalized_batch_index"] is None
        assert "L1 RPC" in out["message"]
    finally:
        _stop(server)


def test_finalization_time_for_finalized_batch():
    server, url = _serve(
        routes={"eth_blockNumber": hex(20_000), "eth_call": _scroll_chain(last_finalized=150, committed_up_to=150)}
    )
    try:
        out = resource_batch.execute(_client(url), "getFinalizationTime", {"batch_index": 120})
        assert out["status"] == "finalized"
        assert out["estimated_minutes"] == 0
        waiting = resource_batch.execute(_client(url), "getFinalizationTime", {"batch_index": 190})
        assert waiting["status"] == "pending"
        assert waiting["current_batch_index"] == 200
        assert waiting["estimated_minutes"] == 0
    finally:
        _stop(server)


def test_rollup_l1_info_reads_oracle():
    server, url = _serve(routes={"eth_call": _oracle})
    try:
        out = resource_rollup.execute(_client(url), "getL1Info", {})
        assert out["l1_chain_id"] == 1
        assert out["l1_base_fee_gwei"] == "10"
        assert out["overhead"] == "2500"
        assert out["oracle_address"] == "0x5300000000000000000000000000000000000002"
    finally:
        _stop(server)


def test_total_fee_adds_l1_data_fee():
    server, url = _serve(routes={"eth_call": _oracle, "eth_estimateGas": hex(21_000), "eth_gasPrice": hex(1_000_000)})
    try:
        out = resource_gas.execute(_client(url), "getTotalFeeEstimate", {"data": "0x1234"})
        assert out["gas_estimate"] == "21000"
        assert out["total_fee"] == str(21_000 * 1_000_000 + 57_500_000_000_000)
    finally:
        _stop(server)


def test_total_fee_counts_missing_l1_fee_as_zero():
    server, url = _serve(
        routes={"eth_call": RpcError(3, "execution reverted"), "eth_estimateGas": hex(21_000), "eth_gasPrice": hex(10)}
    )
    try:
        out = resource_gas.execute(_client(url), "getTotalFeeEstimate", {})
        assert out["total_fee"] == "210000"
        assert "reverted" in out["l1_fee_error"]
    finally:
        _stop(server)


def test_zk_proof_fee_share():
    server, url = _serve(routes={"eth_call": _oracle, "eth_gasPrice": hex(1)})
    try:
        out = resource_gas.execute(_client(url), "calculateZKProofFee", {"data": "0x00"})
        expected = 2_500 * 10_000_000_000 * 1_150_000_000 // 10**9
        assert out["proof_and_commit_fee"] == str(expected)
        assert out["proof_share_percent"] == 50.0
    finally:
        _stop(server)
