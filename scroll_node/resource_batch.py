"""Batch status from the L1 ScrollChain contract."""

from __future__ import annotations

import logging
from typing import Any

from . import params as p
from .client import ScrollClient
from .contracts import get_contract_address
from .error_map import MissingCredentialsError, RpcCallError, UnknownOperationError
from .networks import BLOCKS_PER_BATCH
from .proof_utils import (
    AVG_BATCH_TIME_SECONDS,
    classify_batch_status,
    estimate_batch_finalization_time,
    estimate_batch_for_block,
)

logger = logging.getLogger(__name__)

RESOURCE = "batch"
OPERATIONS = {
    "getLatestBatch": "Estimated latest batch plus the last finalized batch on L1",
    "getBatchStatus": "finalized, committed or pending according to ScrollChain",
    "getPendingBatches": "Committed batches waiting for proof verification",
    "getBatchForBlock": "Estimated batch of an L2 block",
    "getFinalizationTime": "Estimated time until a batch is finalized",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

ZERO_HASH = "0x" + "00" * 32
DEFAULT_PENDING_SCAN = 20
MAX_PENDING_SCAN = 100


def read_scroll_chain(client: ScrollClient, signature: str, args: list[Any] | None = None) -> Any:
    scroll_chain = get_contract_address(client.network.key, "scroll_chain")
    return client.l1_client().read_contract(scroll_chain, signature, args or [])


def last_finalized_batch(client: ScrollClient) -> int | None:
    """lastFinalizedBatchIndex on L1, or None when L1 is not reachable."""
    try:
        return int(read_scroll_chain(client, "lastFinalizedBatchIndex() view returns (uint256)"))
    except (RpcCallError, MissingCredentialsError, ValueError) as err:
        logger.info("L1 ScrollChain unavailable: %s", err)
        return None


def _committed_hash(client: ScrollClient, index: int) -> str:
    return read_scroll_chain(client, "committedBatches(uint256) view returns (bytes32)", [index])


def batch_status(client: ScrollClient, index: int) -> dict[str, Any]:
    finalized = bool(read_scroll_chain(client, "isBatchFinalized(uint256) view returns (bool)", [index]))
    commitment = _committed_hash(client, index)
    out: dict[str, Any] = {"batch_index": index, "batch_hash": None if commitment == ZERO_HASH else commitment}
    if finalized:
        out["status"] = "finalized"
        out["state_root"] = read_scroll_chain(client, "finalizedStateRoots(uint256) view returns (bytes32)", [index])
        out["withdraw_root"] = read_scroll_chain(client, "withdrawRoots(uint256) view returns (bytes32)", [index])
    elif commitment != ZERO_HASH:
        out["status"] = "committed"
    else:
        out["status"] = "pending"
    return out


def _get_latest_batch(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    head = client.get_block_number()
    out: dict[str, Any] = {
        "latest_block_number": head,
        "estimated_batch_index": estimate_batch_for_block(head),
        "last_finalized_batch_index": last_finalized_batch(client),
    }
    if out["last_finalized_batch_index"] is None:
        out["message"] = "Batch indices are estimated. Configure an L1 RPC for ScrollChain data."
    return out


def _get_batch_status(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    index = p.get_int(params, "batch_index", required=True)
    out = batch_status(client, index)
    out["estimated_blocks"] = f"{index * BLOCKS_PER_BATCH} - {(index + 1) * BLOCKS_PER_BATCH - 1}"
    return out


def _get_pending_batches(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    limit = p.get_int(params, "max_batches", DEFAULT_PENDING_SCAN, minimum=1)
    if limit > MAX_PENDING_SCAN:
        raise ValueError(f"max_batches must be <= {MAX_PENDING_SCAN}")
    finalized = int(read_scroll_chain(client, "lastFinalizedBatchIndex() view returns (uint256)"))
    pending = []
    for index in range(finalized + 1, finalized + 1 + limit):
        commitment = _committed_hash(client, index)
        if commitment == ZERO_HASH:
            break
        pending.append({"batch_index": index, "batch_hash": commitment, "status": "committed"})
    return {
        "last_finalized_batch_index": finalized,
        "last_committed_batch_index": pending[-1]["batch_index"] if pending else finalized,
        "pending_count": len(pending),
        "batches": pending,
    }


def _get_batch_for_block(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    block_number = p.get_int(params, "block_number", required=True)
    index = estimate_batch_for_block(block_number)
    finalized = last_finalized_batch(client)
    return {
        "block_number": block_number,
        "estimated_batch_index": index,
        "last_finalized_batch_index": finalized,
        "status": classify_batch_status(index, finalized),
    }


def _get_finalization_time(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    index = p.get_int(params, "batch_index", required=True)
    current = estimate_batch_for_block(client.get_block_number())
    finalized = last_finalized_batch(client)
    status = classify_batch_status(index, finalized)
    if status == "finalized":
        return {"batch_index": index, "status": status, "estimated_minutes": 0, "description": "Batch is finalized."}
    estimate = estimate_batch_finalization_time(index, current)
    return {
        "batch_index": index,
        "status": status,
        "current_batch_index": current,
        "avg_batch_time_seconds": AVG_BATCH_TIME_SECONDS,
        **estimate,
    }


_HANDLERS = {
    "getLatestBatch": _get_latest_batch,
    "getBatchStatus": _get_batch_status,
    "getPendingBatches": _get_pending_batches,
    "getBatchForBlock": _get_batch_for_block,
    "getFinalizationTime": _get_finalization_time,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
