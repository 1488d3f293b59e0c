"""Rollup-level information across L1 and L2."""

from __future__ import annotations

from typing import Any

from .client import ScrollClient
from .contracts import L1_GAS_PRICE_ORACLE_ADDRESS, get_contract_address
from .error_map import UnknownOperationError
from .proof_utils import AVG_BATCH_TIME_SECONDS, estimate_batch_for_block
from .quantity import format_gwei
from .resource_batch import last_finalized_batch

RESOURCE = "rollup"
OPERATIONS = {
    "getRollupInfo": "L2 head, chain id, gas price and last finalized batch",
    "getL1Info": "L1 chain, ScrollChain address and L1 gas price oracle values",
    "getRollupStats": "Block and batch counters",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()


def read_oracle(client: ScrollClient) -> dict[str, int]:
    return {
        name: int(client.read_contract(L1_GAS_PRICE_ORACLE_ADDRESS, f"{name}() view returns (uint256)"))
        for name in ("l1BaseFee", "overhead", "scalar")
    }


def _get_rollup_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    gas_price = client.get_gas_price()
    return {
        "network": client.network.key,
        "chain_id": client.get_chain_id(),
        "latest_block": client.get_block_number(),
        "gas_price": str(gas_price),
        "gas_price_gwei": format_gwei(gas_price),
        "rollup_type": "zkEVM",
        "last_finalized_batch_index": last_finalized_batch(client),
    }


def _get_l1_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    oracle = read_oracle(client)
    return {
        "l1_chain_id": client.network.l1_chain_id,
        "l1_network": "Ethereum Mainnet" if client.network.l1_chain_id == 1 else "Sepolia Testnet",
        "scroll_chain_contract": get_contract_address(client.network.key, "scroll_chain"),
        "oracle_address": L1_GAS_PRICE_ORACLE_ADDRESS,
        "l1_base_fee": str(oracle["l1BaseFee"]),
        "l1_base_fee_gwei": format_gwei(oracle["l1BaseFee"]),
        "overhead": str(oracle["overhead"]),
        "scalar": str(oracle["scalar"]),
    }


def _get_rollup_stats(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    head = client.get_block_number()
    estimated = estimate_batch_for_block(head)
    finalized = last_finalized_batch(client)
    return {
        "network": client.network.key,
        "total_blocks": head,
        "estimated_batches": estimated,
        "last_finalized_batch_index": finalized,
        "avg_batch_time_seconds": AVG_BATCH_TIME_SECONDS,
    }


_HANDLERS = {
    "getRollupInfo": _get_rollup_info,
    "getL1Info": _get_l1_info,
    "getRollupStats": _get_rollup_stats,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
