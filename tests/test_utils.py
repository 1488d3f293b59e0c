from __future__ import annotations

import pytest
from eth_utils import keccak

from scroll_node.address_utils import (
    addresses_equal,
    compute_create2_address,
    compute_create_address,
    is_valid_address,
    is_valid_private_key,
    require_address,
    shorten_address,
)
from scroll_node.bridge_utils import (
    calculate_bridge_fee,
    estimate_bridge_time,
    get_gateway_type,
    is_withdrawal_claimable,
    parse_bridge_event,
    validate_bridge_amount,
)
from scroll_node.gas_utils import (
    add_gas_buffer,
    calculate_gas_price_for_priority,
    estimate_bridge_gas,
    estimate_total_fee,
    format_gas_price,
)
from scroll_node.proof_utils import (
    classify_batch_status,
    estimate_batch_finalization_time,
    estimate_batch_for_block,
    verify_merkle_proof,
)
from scroll_node.quantity import (
    convert_units,
    format_ether,
    format_units,
    hex_to_int,
    parse_ether,
    parse_nonnegative_quantity,
    parse_units,
)

from ._scroll_rpc_helpers import ALICE, BOB, DEV_PRIVATE_KEY, TX_HASH, _pad_address, _word


def test_quantity_parsing_accepts_hex_and_decimal():
    assert parse_nonnegative_quantity("0x10") == (True, 16, "")
    assert parse_nonnegative_quantity("42") == (True, 42, "")
    ok, _, reason = parse_nonnegative_quantity(True)
    assert ok is False and "boolean" in reason
    ok, _, _ = parse_nonnegative_quantity("-1")
    assert ok is False
    assert hex_to_int(None) is None
    assert hex_to_int("0x0") == 0


def test_units_format_and_parse():
    assert format_ether(10**18) == "1"
    assert format_ether(1_500_000_000_000_000_000) == "1.5"
    assert format_units(1, 6) == "0.000001"
    assert format_units(-25, 1) == "-2.5"
    assert parse_ether("0.1") == 10**17
    assert parse_units("1.25", 6) == 1_250_000
    with pytest.raises(ValueError):
        parse_units("0.0000001", 6)
    with pytest.raises(ValueError):
        parse_units("abc", 18)


def test_parse_units_keeps_every_digit():
    assert parse_units("12345678901.123456789012345678", 18) == 12345678901123456789012345678
    assert parse_units("-0.5", 18) == -(5 * 10**17)
    assert parse_units("1e-3", 6) == 1_000
    assert parse_units("1.10", 1) == 11
    assert convert_units("98765432109876543210.123456789", "ether", "wei") == "98765432109876543210123456789000000000"


def test_convert_units_between_denominations():
    assert convert_units("1", "ether", "wei") == str(10**18)
    assert convert_units("1", "ether", "gwei") == "1000000000"
    assert convert_units("1500000000", "wei", "gwei") == "1.5"
    with pytest.raises(ValueError):
        convert_units("1", "ether", "finney")


def test_address_validation_and_checksum():
    assert is_valid_address(ALICE)
    assert not is_valid_address("0x123")
    # Mixed case with a broken checksum.
    assert not is_valid_address("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD")
    assert is_valid_address("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed")
    assert require_address("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed") == "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
    with pytest.raises(ValueError):
        require_address("", field="recipient")
    assert shorten_address(ALICE) == "0x1111...1111"
    assert addresses_equal(ALICE.upper().replace("0X", "0x"), ALICE)
    assert not addresses_equal(ALICE, None)


def test_contract_address_derivation():
    deployer = "0x6ac7ea33f8831ea9dcc53393aaa88b25a785dbf0"
    assert compute_create_address(deployer, 0).lower() == "0xcd234a471b72ba2f1ccf0a70fcaba648a5eecd8d"
    assert compute_create_address(deployer, 1).lower() == "0x343c43a37d37dff08ae8c4a11544c718abb4fcf8"
    zero_salt = "0x" + "00" * 32
    init_code_hash = "0x" + keccak(b"\x00").hex()
    assert compute_create2_address("0x" + "00" * 20, zero_salt, init_code_hash) == "0x4D1A2e2bB4F88F0250f26Ffff098B0b30B26BF38"
    with pytest.raises(ValueError):
        compute_create2_address(deployer, "0x01", init_code_hash)


def test_private_key_validation():
    assert is_valid_private_key(DEV_PRIVATE_KEY)
    assert is_valid_private_key(DEV_PRIVATE_KEY[2:])
    assert not is_valid_private_key("0x" + "0" * 64)
    assert not is_valid_private_key("0x1234")


def test_gas_helpers():
    assert add_gas_buffer(100_000) == 120_000
    assert add_gas_buffer(100_000, 50) == 150_000
    fees = calculate_gas_price_for_priority(1_000, "high")
    assert fees["max_fee_per_gas"] == 1_500
    assert fees["max_priority_fee_per_gas"] == 100_000_000
    with pytest.raises(ValueError):
        calculate_gas_price_for_priority(1_000, "urgent")
    assert estimate_total_fee(21_000, 10, 5) == {"l2_execution_fee": 210_000, "l1_data_fee": 5, "total_fee": 210_005}
    assert format_gas_price(1_500_000_000) == "1.5 gwei"
    assert estimate_bridge_gas("deposit") == 200_000
    assert estimate_bridge_gas("withdrawal", is_erc20=True) == 350_000


def test_bridge_fee_and_time():
    assert calculate_bridge_fee(100, 10, "deposit") == 1_200
    assert calculate_bridge_fee(100, 10, False) == 1_500
    assert estimate_bridge_time("deposit")["max_minutes"] == 20
    withdrawal = estimate_bridge_time("withdrawal")
    assert (withdrawal["min_minutes"], withdrawal["max_minutes"]) == (60, 240)
    assert get_gateway_type(None) == "ETH"
    assert get_gateway_type(BOB) == "ERC20"
    assert is_withdrawal_claimable(10, 10)
    assert not is_withdrawal_claimable(11, 10)


def test_validate_bridge_amount():
    assert validate_bridge_amount(0)["valid"] is False
    assert "at least 0.0001" in validate_bridge_amount(10)["error"]
    assert validate_bridge_amount(parse_ether("1"), balance=parse_ether("0.5"))["error"] == "Insufficient balance"
    assert validate_bridge_amount(parse_ether("1"), balance=parse_ether("2")) == {"valid": True}


def test_parse_bridge_event_decodes_amount_and_parties():
    # uint256 amount, then the offset and zero length of an empty bytes tail.
    data = "0x" + _word(10**18)[2:] + _word(64)[2:] + _word(0)[2:]
    log = {"topics": ["0x" + "00" * 32, _pad_address(ALICE), _pad_address(BOB)], "data": data, "transactionHash": TX_HASH}
    event = parse_bridge_event(log, "deposit")
    assert event is not None
    assert event["value_eth"] == "1"
    assert event["from"].lower() == ALICE
    assert event["to"].lower() == BOB
    assert event["data"] == "0x"
    assert event["is_deposit"] is True
    assert parse_bridge_event({"topics": []}, "deposit") is None


def test_batch_status_and_finalization_estimate():
    assert classify_batch_status(5, None) == "unknown"
    assert classify_batch_status(5, 7) == "finalized"
    assert classify_batch_status(9, 7, 10) == "committed"
    assert classify_batch_status(12, 7, 10) == "pending"
    assert estimate_batch_finalization_time(10, 12)["estimated_minutes"] == 30
    assert estimate_batch_finalization_time(10, 20)["estimated_minutes"] == 0
    assert estimate_batch_finalization_time(12, 10)["estimated_minutes"] == 90
    assert estimate_batch_for_block(12_345) == 123
    assert estimate_batch_for_block(5, genesis_block=10) == 0


def test_verify_merkle_proof_with_and_without_index():
    leaf = "0x" + "11" * 32
    sibling = "0x" + "22" * 32
    left_root = "0x" + keccak(bytes.fromhex("11" * 32) + bytes.fromhex("22" * 32)).hex()
    right_root = "0x" + keccak(bytes.fromhex("22" * 32) + bytes.fromhex("11" * 32)).hex()
    assert verify_merkle_proof(leaf, [sibling], left_root, 0)
    assert verify_merkle_proof(leaf, [sibling], right_root, 1)
    assert not verify_merkle_proof(leaf, [sibling], right_root, 0)
    # Sorted pairing: 0x11.. < 0x22.., so the leaf goes first.
    assert verify_merkle_proof(leaf, [sibling], left_root)
    with pytest.raises(ValueError):
        verify_merkle_proof("0x12", [sibling], left_root)
