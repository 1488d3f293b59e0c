"""Multicall3 aggregate3 encoding, execution and result decoding."""

from __future__ import annotations

from typing import Any

from . import params as p
from .abi_codec import AbiCodecError, decode_output, decode_values, encode_call, encode_function_call, find_function
from .address_utils import ADDRESS_RE, to_checksum_address
from .client import ScrollClient
from .contracts import MULTICALL3_ABI, MULTICALL3_ADDRESS
from .error_map import UnknownOperationError
from .params import HEX_RE

RESOURCE = "multicall"
OPERATIONS = {
    "createMulticall": "Encode aggregate3 call data for a list of calls",
    "batchReadCalls": "eth_call Multicall3 aggregate3 and decode every result",
    "batchWriteCalls": "Send an aggregate3 transaction from the configured signer",
    "executeMulticall": "batchReadCalls or batchWriteCalls selected by mode",
    "getMulticallResults": "Decode raw aggregate3 return data",
}
OPERATION_TIERS = {"batchWriteCalls": "broadcast"}
SIGNER_OPERATIONS = {"batchWriteCalls"}

DEFAULT_MAX_CALLS = 200
MODES = ("read", "write")
AGGREGATE3 = find_function(MULTICALL3_ABI, "aggregate3")
AGGREGATE3_RESULT_TYPES = ["(bool,bytes)[]"]


def resolve_tier(operation: str, params: dict[str, Any]) -> str:
    """Tier of an operation whose tier depends on its parameters."""
    if operation == "executeMulticall" and _mode(params) == "write":
        return "broadcast"
    return OPERATION_TIERS.get(operation, "read")


def requires_signer(operation: str, params: dict[str, Any]) -> bool:
    return operation in SIGNER_OPERATIONS or (operation == "executeMulticall" and _mode(params) == "write")


def _mode(params: dict[str, Any]) -> str:
    return p.get_choice(params, "mode", MODES, "read")


def normalize_calls(raw_calls: Any, *, max_calls: int = DEFAULT_MAX_CALLS) -> list[dict[str, Any]]:
    """Validate and encode a call list; raises ValueError naming the offending ``calls[idx]``."""
    if not isinstance(raw_calls, list) or not raw_calls:
        raise ValueError("calls must be a non-empty array")
    if len(raw_calls) > max_calls:
        raise ValueError(f"calls exceeds max_calls={max_calls}")

    normalized: list[dict[str, Any]] = []
    for idx, raw_call in enumerate(raw_calls):
        if not isinstance(raw_call, dict):
            raise ValueError(f"calls[{idx}] must be an object")

        call_id = raw_call.get("id", f"call_{idx}")
        if not isinstance(call_id, str) or not call_id.strip():
            raise ValueError(f"calls[{idx}].id must be a non-empty string")

        target = raw_call.get("target", raw_call.get("to"))
        if not isinstance(target, str) or not ADDRESS_RE.fullmatch(target):
            raise ValueError(f"calls[{idx}].target must be a 20-byte hex address")

        data = raw_call.get("data", raw_call.get("callData"))
        signature = raw_call.get("signature")
        args = raw_call.get("args", [])
        if data is None and signature is None:
            raise ValueError(f"calls[{idx}] requires either data or signature")
        if data is not None and signature is not None:
            raise ValueError(f"calls[{idx}] cannot include both data and signature")

        if data is not None:
            if not isinstance(data, str) or not HEX_RE.fullmatch(data) or len(data) % 2 != 0:
                raise ValueError(f"calls[{idx}].data must be even-length 0x-prefixed hex")
            calldata = data
            selector = data[:10] if len(data) >= 10 else None
            canonical = None
        else:
            if not isinstance(signature, str) or not signature.strip():
                raise ValueError(f"calls[{idx}].signature must be non-empty string")
            if not isinstance(args, list):
                raise ValueError(f"calls[{idx}].args must be an array")
            try:
                encoded = encode_call(signature, args)
            except ValueError as err:
                raise ValueError(f"calls[{idx}] signature/args encode failed: {err}") from err
            calldata = encoded["calldata"]
            selector = encoded["selector"]
            canonical = encoded["signature"]

        returns = raw_call.get("returns", raw_call.get("decode_output"))
        if returns is not None and not isinstance(returns, (str, list)):
            raise ValueError(f"calls[{idx}].returns must be string or array of strings")

        allow_failure = raw_call.get("allow_failure", raw_call.get("allowFailure", True))
        if not isinstance(allow_failure, bool):
            raise ValueError(f"calls[{idx}].allow_failure must be a boolean")

        normalized.append(
            {
                "id": call_id,
                "index": idx,
                "target": to_checksum_address(target),
                "data": calldata,
                "selector": selector,
                "signature": canonical,
                "returns": returns,
                "allow_failure": allow_failure,
            }
        )
    return normalized


def encode_aggregate3(calls: list[dict[str, Any]]) -> str:
    return encode_function_call(AGGREGATE3, [[[c["target"], c["allow_failure"], c["data"]] for c in calls]])


def decode_aggregate3(return_data: str, calls: list[dict[str, Any]] | None = None) -> list[dict[str, Any]]:
    results = decode_values(AGGREGATE3_RESULT_TYPES, return_data)[0]
    out = []
    for idx, (success, data) in enumerate(results):
        call = calls[idx] if calls and idx < len(calls) else {}
        item: dict[str, Any] = {
            "index": idx,
            "id": call.get("id", f"call_{idx}"),
            "success": bool(success),
            "return_data": "0x" + bytes(data).hex(),
        }
        if success and call.get("returns") is not None:
            try:
                item["decoded"] = decode_output(call["returns"], item["return_data"])["values"]
            except (AbiCodecError, ValueError) as err:
                item["decode_error"] = str(err)
        out.append(item)
    return out


def _calls(params: dict[str, Any]) -> list[dict[str, Any]]:
    return normalize_calls(
        p.get_json(params, "calls", required=True),
        max_calls=p.get_int(params, "max_calls", DEFAULT_MAX_CALLS, minimum=1),
    )


def _multicall_address(params: dict[str, Any]) -> str:
    return p.get_address(params, "multicall_address", required=False) or MULTICALL3_ADDRESS


def _summary(calls: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{k: c[k] for k in ("index", "id", "target", "selector", "signature", "allow_failure")} for c in calls]


def _create_multicall(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    calls = _calls(params)
    return {
        "multicall_address": _multicall_address(params),
        "call_data": encode_aggregate3(calls),
        "call_count": len(calls),
        "calls": _summary(calls),
    }


def _batch_read_calls(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    calls = _calls(params)
    raw = client.eth_call(_multicall_address(params), encode_aggregate3(calls), p.get_block_id(params))
    results = decode_aggregate3(raw, calls)
    return {
        "multicall_address": _multicall_address(params),
        "call_count": len(calls),
        "success_count": sum(1 for r in results if r["success"]),
        "failed_count": sum(1 for r in results if not r["success"]),
        "results": results,
    }


def _batch_write_calls(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    calls = _calls(params)
    tx: dict[str, Any] = {"to": _multicall_address(params), "data": encode_aggregate3(calls)}
    gas_limit = p.get_int(params, "gas_limit")
    if gas_limit:
        tx["gas"] = gas_limit
    sent = client.send_transaction(tx, wait=p.get_bool(params, "wait", True))
    sent["call_count"] = len(calls)
    sent["calls"] = _summary(calls)
    return sent


def _execute_multicall(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    if _mode(params) == "write":
        return _batch_write_calls(client, params)
    return _batch_read_calls(client, params)


def _get_multicall_results(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return_data = p.get_hex(params, "return_data", required=True)
    raw_calls = p.get_json(params, "calls")
    calls = normalize_calls(raw_calls) if raw_calls else None
    results = decode_aggregate3(return_data, calls)
    return {"result_count": len(results), "results": results}


_HANDLERS = {
    "createMulticall": _create_multicall,
    "batchReadCalls": _batch_read_calls,
    "batchWriteCalls": _batch_write_calls,
    "executeMulticall": _execute_multicall,
    "getMulticallResults": _get_multicall_results,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
