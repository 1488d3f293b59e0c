"""Batch status classification, finalization estimates and merkle proof checks."""

from __future__ import annotations

import re
from typing import Any

from eth_utils import keccak

from .abi_codec import decode_values
from .networks import BLOCKS_PER_BATCH

HEX32_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
AVG_BATCH_TIME_MINUTES = 15
AVG_BATCH_TIME_SECONDS = 900


def classify_batch_status(
    batch_index: int,
    last_finalized_index: int | None,
    last_committed_index: int | None = None,
) -> str:
    if last_finalized_index is None:
        return "unknown"
    if batch_index <= last_finalized_index:
        return "finalized"
    if last_committed_index is not None and batch_index <= last_committed_index:
        return "committed"
    return "pending"


def estimate_batch_finalization_time(
    batch_index: int,
    current_batch_index: int,
    avg_batch_time_minutes: int = AVG_BATCH_TIME_MINUTES,
) -> dict[str, Any]:
    batches_behind = current_batch_index - batch_index
    if batches_behind < 0:
        return {
            "estimated_minutes": abs(batches_behind) * avg_batch_time_minutes + 60,
            "description": "Batch not yet committed. Estimated 1-4 hours for finalization.",
        }
    return {
        "estimated_minutes": max(0, 60 - batches_behind * avg_batch_time_minutes),
        "description": "Batch committed. Waiting for ZK proof verification.",
    }


def _hash_bytes(value: str) -> bytes:
    if not isinstance(value, str) or not HEX32_RE.fullmatch(value):
        raise ValueError(f"expected 32-byte hex value, got {value!r}")
    return bytes.fromhex(value[2:])


def verify_merkle_proof(leaf: str, proof: list[str], root: str, index: int | None = None) -> bool:
    """Walk a keccak merkle path.

    With ``index`` the leaf position decides the concatenation order at every
    level; without it each pair is hashed in sorted order.
    """
    computed = _hash_bytes(leaf)
    position = index
    for element in proof:
        sibling = _hash_bytes(element)
        if position is None:
            left, right = sorted((computed, sibling))
        elif position % 2 == 0:
            left, right = computed, sibling
        else:
            left, right = sibling, computed
        computed = keccak(left + right)
        if position is not None:
            position //= 2
    return computed == _hash_bytes(root)


def parse_rollup_event(log: dict[str, Any], event_type: str) -> dict[str, Any] | None:
    topics = log.get("topics") or []
    if len(topics) < 3:
        return None
    try:
        batch_index = int(topics[1], 16)
    except (TypeError, ValueError):
        return None
    out: dict[str, Any] = {
        "index": batch_index,
        "hash": topics[2],
        "status": "committed",
        "l1_tx_hash": log.get("transactionHash"),
    }
    if event_type == "finalize":
        try:
            state_root, withdraw_root = decode_values(["bytes32", "bytes32"], log.get("data") or "0x")
        except ValueError:
            return None
        out["status"] = "finalized"
        out["state_root"] = "0x" + state_root.hex()
        out["withdraw_root"] = "0x" + withdraw_root.hex()
    return out


def estimate_batch_for_block(
    block_number: int,
    genesis_block: int = 0,
    avg_blocks_per_batch: int = BLOCKS_PER_BATCH,
) -> int:
    if block_number < genesis_block:
        return 0
    return (block_number - genesis_block) // avg_blocks_per_batch
