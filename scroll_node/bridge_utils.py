"""Bridge fee, timing and message helpers."""

from __future__ import annotations

from typing import Any

from eth_utils import keccak

from .abi_codec import decode_values, encode_function_call, parse_function_signature
from .address_utils import is_zero_address, topic_to_address
from .quantity import format_ether, parse_ether

DEPOSIT_FEE_FACTOR = 120
WITHDRAWAL_FEE_FACTOR = 150
MIN_BRIDGE_AMOUNT_WEI = parse_ether("0.0001")
RELAY_MESSAGE_SIGNATURE = "relayMessage(address,address,uint256,uint256,bytes)"


def _is_deposit(direction: str | bool) -> bool:
    if isinstance(direction, bool):
        return direction
    return str(direction).strip().lower().startswith("dep")


def calculate_bridge_fee(gas_limit: int, gas_price: int, direction: str | bool) -> int:
    base = gas_limit * gas_price
    factor = DEPOSIT_FEE_FACTOR if _is_deposit(direction) else WITHDRAWAL_FEE_FACTOR
    return base * factor // 100


def estimate_bridge_time(direction: str | bool) -> dict[str, Any]:
    if _is_deposit(direction):
        return {
            "min_minutes": 10,
            "max_minutes": 20,
            "description": "Deposits typically take 10-20 minutes to be relayed on L2",
        }
    return {
        "min_minutes": 60,
        "max_minutes": 240,
        "description": "Withdrawals become claimable on L1 1-4 hours after their batch is finalized",
    }


def validate_bridge_amount(
    amount: int,
    balance: int | None = None,
    min_amount: int = MIN_BRIDGE_AMOUNT_WEI,
) -> dict[str, Any]:
    if amount <= 0:
        return {"valid": False, "error": "Amount must be greater than 0"}
    if amount < min_amount:
        return {"valid": False, "error": f"Amount must be at least {format_ether(min_amount)} ETH"}
    if balance is not None and amount > balance:
        return {"valid": False, "error": "Insufficient balance"}
    return {"valid": True}


def calculate_message_hash(sender: str, target: str, value: int, nonce: int, message: str) -> str:
    """Hash of the relayMessage calldata the messenger uses as the cross-domain message id."""
    fragment = parse_function_signature(RELAY_MESSAGE_SIGNATURE)
    calldata = encode_function_call(fragment, [sender, target, value, nonce, message])
    return "0x" + keccak(hexstr=calldata).hex()


def parse_bridge_event(log: dict[str, Any], direction: str | bool) -> dict[str, Any] | None:
    """Decode a DepositETH/WithdrawETH style log; returns None for foreign shapes."""
    topics = log.get("topics") or []
    if len(topics) < 3:
        return None
    try:
        amount, data = decode_values(["uint256", "bytes"], log.get("data") or "0x")
        sender = topic_to_address(topics[1])
        recipient = topic_to_address(topics[2])
    except ValueError:
        return None
    return {
        "hash": log.get("transactionHash"),
        "from": sender,
        "to": recipient,
        "value": str(amount),
        "value_eth": format_ether(amount),
        "data": "0x" + data.hex(),
        "is_deposit": _is_deposit(direction),
        "status": "pending",
    }


def is_withdrawal_claimable(batch_index: int, last_finalized_batch: int) -> bool:
    return batch_index <= last_finalized_batch


def get_gateway_type(token_address: str | None) -> str:
    if not token_address or is_zero_address(token_address):
        return "ETH"
    return "ERC20"
