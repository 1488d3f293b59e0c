"""Gas prices, L1 data fees and fee estimates."""

from __future__ import annotations

import logging
from typing import Any

from . import params as p
from .client import ScrollClient
from .contracts import L1_GAS_PRICE_ORACLE_ADDRESS
from .error_map import RpcCallError, UnknownOperationError
from .formatters import gas_utilization
from .gas_utils import PRIORITY_MULTIPLIERS, add_gas_buffer, calculate_gas_price_for_priority, estimate_total_fee, fee_summary, format_gas_price
from .networks import DEFAULT_GAS_LIMITS
from .quantity import format_ether, format_gwei, hex_to_int
from .resource_rollup import read_oracle

logger = logging.getLogger(__name__)

RESOURCE = "gas"
OPERATIONS = {
    "getGasPrice": "Gas price and EIP-1559 fee data",
    "getMaxFeePerGas": "maxFeePerGas for a low/medium/high priority",
    "getMaxPriorityFee": "Suggested max priority fee",
    "estimateGas": "Gas estimate with buffer and cost",
    "getL1DataFee": "L1 data fee of calldata from the gas price oracle",
    "getL2ExecutionFee": "gas limit x gas price",
    "getTotalFeeEstimate": "L2 execution fee plus L1 data fee",
    "getGasOracle": "L1 gas price oracle parameters",
    "getGasHistory": "Gas used, limit, utilization and base fee of recent blocks",
    "calculateZKProofFee": "Share of the L1 fee that covers batch commitment and proof",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

MAX_HISTORY_BLOCKS = 100
SCALAR_PRECISION = 10**9


def l1_data_fee(client: ScrollClient, data: str) -> int:
    return int(client.read_contract(L1_GAS_PRICE_ORACLE_ADDRESS, "getL1Fee(bytes) view returns (uint256)", [data]))


def _tx(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx: dict[str, Any] = {"data": p.get_hex(params, "data", "0x")}
    to = p.get_address(params, "to_address", required=False)
    if to:
        tx["to"] = to
    value = p.get_amount(params, "value", required=False)
    if value:
        tx["value"] = value
    sender = p.get_address(params, "from", required=False)
    if sender or client.has_signer:
        tx["from"] = sender or client.signer_address
    return tx


def _get_gas_price(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fees = client.get_fee_data()
    out = fee_summary(fees)
    out["formatted"] = format_gas_price(fees["gas_price"])
    return out


def _get_max_fee_per_gas(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    priority = p.get_choice(params, "priority", tuple(PRIORITY_MULTIPLIERS), "medium")
    fees = client.get_fee_data()
    base_fee = fees["base_fee_per_gas"] if fees["base_fee_per_gas"] is not None else fees["gas_price"]
    suggestion = calculate_gas_price_for_priority(base_fee, priority)
    return {"priority": priority, "base_fee_per_gas": str(base_fee), **fee_summary(suggestion)}


def _get_max_priority_fee(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return fee_summary({"max_priority_fee_per_gas": client.get_max_priority_fee()})


def _estimate_gas(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    gas = client.estimate_gas(_tx(client, params))
    buffered = add_gas_buffer(gas)
    gas_price = client.get_gas_price()
    return {
        "gas_estimate": str(gas),
        "gas_limit_with_buffer": str(buffered),
        "gas_price": str(gas_price),
        "estimated_cost_wei": str(gas * gas_price),
        "estimated_cost_eth": format_ether(gas * gas_price),
    }


def _get_l1_data_fee(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    data = p.get_hex(params, "data", "0x")
    fee = l1_data_fee(client, data)
    return {"l1_data_fee": str(fee), "l1_data_fee_eth": format_ether(fee), "data_size": (len(data) - 2) // 2}


def _get_l2_execution_fee(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    gas_limit = p.get_int(params, "gas_limit", DEFAULT_GAS_LIMITS["transfer"], minimum=1)
    gas_price = client.get_gas_price()
    fee = gas_limit * gas_price
    return {
        "gas_limit": str(gas_limit),
        "gas_price": str(gas_price),
        "l2_execution_fee": str(fee),
        "l2_execution_fee_eth": format_ether(fee),
    }


def _get_total_fee_estimate(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    tx = _tx(client, params)
    gas = p.get_int(params, "gas_limit") or client.estimate_gas(tx)
    gas_price = client.get_gas_price()
    out: dict[str, Any] = {"gas_estimate": str(gas), "gas_price": str(gas_price)}
    try:
        l1_fee = l1_data_fee(client, tx["data"])
    except RpcCallError as err:
        logger.warning("L1 data fee unavailable, counting it as 0: %s", err)
        l1_fee = 0
        out["l1_fee_error"] = err.message
    fees = estimate_total_fee(gas, gas_price, l1_fee)
    out.update({key: str(value) for key, value in fees.items()})
    out["total_fee_eth"] = format_ether(fees["total_fee"])
    return out


def _get_gas_oracle(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    oracle = read_oracle(client)
    return {
        "oracle_address": L1_GAS_PRICE_ORACLE_ADDRESS,
        "l1_base_fee": str(oracle["l1BaseFee"]),
        "l1_base_fee_gwei": format_gwei(oracle["l1BaseFee"]),
        "overhead": str(oracle["overhead"]),
        "scalar": str(oracle["scalar"]),
    }


def _get_gas_history(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    count = p.get_int(params, "block_count", 10, minimum=1)
    if count > MAX_HISTORY_BLOCKS:
        raise ValueError(f"block_count must be <= {MAX_HISTORY_BLOCKS}")
    head = client.get_block_number()
    history = []
    for number in range(head, max(head - count, -1), -1):
        block = client.get_block(number)
        if not block:
            continue
        gas_used = hex_to_int(block.get("gasUsed")) or 0
        gas_limit = hex_to_int(block.get("gasLimit")) or 0
        base_fee = hex_to_int(block.get("baseFeePerGas"))
        history.append(
            {
                "block_number": hex_to_int(block.get("number")),
                "base_fee_per_gas": None if base_fee is None else str(base_fee),
                "gas_used": str(gas_used),
                "gas_limit": str(gas_limit),
                "utilization": gas_utilization(gas_used, gas_limit),
            }
        )
    return {"history": history, "block_count": len(history)}


def _calculate_zk_proof_fee(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    """Fixed per-transaction overhead of the L1 fee: overhead * l1BaseFee * scalar / 1e9."""
    data = p.get_hex(params, "data", "0x")
    oracle = read_oracle(client)
    proof_share = oracle["overhead"] * oracle["l1BaseFee"] * oracle["scalar"] // SCALAR_PRECISION
    total_l1 = l1_data_fee(client, data)
    return {
        "l1_data_fee": str(total_l1),
        "proof_and_commit_fee": str(proof_share),
        "proof_and_commit_fee_eth": format_ether(proof_share),
        "proof_share_percent": round(proof_share * 100 / total_l1, 2) if total_l1 else 0,
        "gas_price": str(client.get_gas_price()),
        "note": "Proof generation costs are amortized across all transactions in a batch",
    }


_HANDLERS = {
    "getGasPrice": _get_gas_price,
    "getMaxFeePerGas": _get_max_fee_per_gas,
    "getMaxPriorityFee": _get_max_priority_fee,
    "estimateGas": _estimate_gas,
    "getL1DataFee": _get_l1_data_fee,
    "getL2ExecutionFee": _get_l2_execution_fee,
    "getTotalFeeEstimate": _get_total_fee_estimate,
    "getGasOracle": _get_gas_oracle,
    "getGasHistory": _get_gas_history,
    "calculateZKProofFee": _calculate_zk_proof_fee,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
