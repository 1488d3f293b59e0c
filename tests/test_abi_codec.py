from __future__ import annotations

import pytest

from scroll_node.abi_codec import (
    decode_calldata,
    decode_function_result,
    decode_log,
    decode_output,
    encode_args,
    encode_call,
    event_topic0,
    find_function,
    function_selector,
    parse_abi,
    parse_fragment,
    run_abi_operation,
)
from scroll_node.contracts import ERC20_ABI
from scroll_node.error_map import AbiCodecError

from ._scroll_rpc_helpers import ALICE, BOB, _pad_address, _word

TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def test_selectors_and_topics_match_known_values():
    assert function_selector("balanceOf(address)") == "0x70a08231"
    assert function_selector("function transfer(address to, uint256 amount) returns (bool)") == "0xa9059cbb"
    assert event_topic0("Transfer(address,address,uint256)") == TRANSFER_TOPIC
    assert event_topic0("event Transfer(address indexed from, address indexed to, uint256 value)") == TRANSFER_TOPIC


def test_parse_fragment_reads_names_outputs_and_mutability():
    fragment = parse_fragment("function balanceOf(address owner) view returns (uint256 balance)")
    assert fragment.kind == "function"
    assert fragment.signature == "balanceOf(address)"
    assert fragment.inputs[0].name == "owner"
    assert fragment.outputs[0].type == "uint256"
    assert fragment.is_read_only


def test_parse_abi_accepts_json_and_human_readable():
    json_abi = [
        {
            "type": "function",
            "name": "approve",
            "stateMutability": "nonpayable",
            "inputs": [{"name": "spender", "type": "address"}, {"name": "amount", "type": "uint256"}],
            "outputs": [{"name": "", "type": "bool"}],
        },
        {"type": "constructor", "inputs": []},
    ]
    fragments = parse_abi(json_abi)
    assert any(f.signature == "approve(address,uint256)" for f in fragments)
    assert find_function(fragments, "approve").selector == "0x095ea7b3"
    human = parse_abi("function decimals() view returns (uint8); function symbol() view returns (string)")
    assert [f.name for f in human] == ["decimals", "symbol"]
    with pytest.raises(ValueError):
        find_function(human, "name")


def test_encode_call_pads_arguments():
    out = encode_call("transfer(address,uint256)", [ALICE, "0x10"])
    assert out["selector"] == "0xa9059cbb"
    assert out["calldata"] == "0xa9059cbb" + _pad_address(ALICE)[2:] + _word(16)[2:]
    with pytest.raises(ValueError):
        encode_call("transfer(address,uint256)", [ALICE])


def test_encode_args_rejects_bad_values():
    with pytest.raises(ValueError):
        encode_args(["address"], ["0x1234"])
    with pytest.raises(ValueError):
        encode_args(["uint256"], [-1])
    with pytest.raises(AbiCodecError):
        encode_args(["uint8"], [300])


def test_decode_output_and_function_result():
    assert decode_output(["uint256", "bool"], _word(7) + _word(1)[2:]) == {
        "types": ["uint256", "bool"],
        "values": ["7", True],
    }
    fragment = find_function(ERC20_ABI, "balanceOf")
    assert decode_function_result(fragment, _word(5)) == "5"
    pair = parse_fragment("function reserves() view returns (uint112 a, uint112 b)")
    assert decode_function_result(pair, _word(1) + _word(2)[2:]) == {"a": "1", "b": "2"}
    with pytest.raises(AbiCodecError):
        decode_output(["uint256"], "0x01")


def test_decode_log_splits_indexed_and_data_args():
    decoded = decode_log(
        "event Transfer(address indexed from, address indexed to, uint256 value)",
        [TRANSFER_TOPIC, _pad_address(ALICE), _pad_address(BOB)],
        _word(1000),
    )
    assert decoded["event"] == "Transfer"
    args = {a["name"]: a["value"] for a in decoded["args"]}
    assert args["from"].lower() == ALICE
    assert args["to"].lower() == BOB
    assert args["value"] == "1000"
    with pytest.raises(ValueError):
        decode_log("event Approval(address indexed owner, address indexed spender, uint256 value)", [TRANSFER_TOPIC], "0x")


def test_decode_calldata_matches_selector():
    calldata = encode_call("transfer(address,uint256)", [BOB, 5])["calldata"]
    decoded = decode_calldata(ERC20_ABI, calldata)
    assert decoded["function"] == "transfer"
    assert decoded["args"][0]["value"].lower() == BOB
    assert decoded["args"][1]["value"] == "5"
    with pytest.raises(ValueError):
        decode_calldata(ERC20_ABI, "0xdeadbeef")


def test_run_abi_operation_reports_errors_without_raising():
    ok, result, err = run_abi_operation({"operation": "function_selector", "signature": "balanceOf(address)"})
    assert ok and result == {"selector": "0x70a08231"} and err == ""
    ok, _, err = run_abi_operation({"operation": "encode_call", "signature": ""})
    assert not ok and "signature" in err
    ok, _, err = run_abi_operation({"operation": "nope"})
    assert not ok and "must be one of" in err
