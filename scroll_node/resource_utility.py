"""Chain identity, connectivity checks, unit conversion and ABI helpers."""

from __future__ import annotations

import logging
import time
from importlib import metadata
from typing import Any

from . import __version__
from . import params as p
from .abi_codec import (
    AbiCodecError,
    decode_calldata,
    decode_function_result,
    encode_function_call,
    find_function,
    parse_function_signature,
)
from .address_utils import is_valid_address, is_zero_address, to_checksum_address
from .client import ScrollClient
from .error_map import RpcCallError, UnknownOperationError
from .networks import NETWORKS
from .quantity import UNIT_DECIMALS, convert_units, format_gwei, parse_units

logger = logging.getLogger(__name__)

RESOURCE = "utility"
OPERATIONS = {
    "getChainID": "Chain id reported by the RPC endpoint",
    "getNetworkInfo": "Chain id, head block and fee data",
    "validateAddress": "Validity, checksum form, zero and contract checks",
    "convertUnits": "Convert between wei, gwei and ether",
    "encodeABI": "Encode function call data from an ABI or signature",
    "decodeABI": "Decode function results or call data",
    "getBlockNumber": "Current L2 head",
    "getRPCHealth": "Latency and head of the RPC endpoint",
    "testConnection": "Whether the RPC endpoint answers and on which chain",
    "getScrollSDKVersion": "Package version and supported features",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

FEATURES = [
    "accounts",
    "transactions",
    "tokens",
    "nfts",
    "contracts",
    "events",
    "blocks",
    "bridge",
    "batches",
    "rollup",
    "gas",
    "defi",
    "session keys",
    "account abstraction",
    "multicall",
    "canvas",
    "analytics",
    "subgraph",
    "polling triggers",
]
LIBRARIES = ("eth-abi", "eth-account", "eth-utils", "PyYAML")


def _get_chain_id(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    chain_id = client.get_chain_id()
    return {
        "chain_id": chain_id,
        "network": client.network.key,
        "name": client.network.name,
        "matches_config": chain_id == client.network.chain_id,
    }


def _get_network_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fees = client.get_fee_data()
    gas_price = fees["gas_price"]
    return {
        "chain_id": client.get_chain_id(),
        "network": client.network.key,
        "name": client.network.name,
        "latest_block": client.get_block_number(),
        "gas_price": str(gas_price),
        "gas_price_gwei": format_gwei(gas_price),
        "max_fee_per_gas": None if fees["max_fee_per_gas"] is None else str(fees["max_fee_per_gas"]),
        "max_priority_fee_per_gas": str(fees["max_priority_fee_per_gas"]),
        "explorer_url": client.network.explorer_url,
        "l1_chain_id": client.network.l1_chain_id,
        "is_testnet": client.network.is_testnet,
    }


def _validate_address(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_str(params, "address", required=True)
    valid = is_valid_address(address)
    out: dict[str, Any] = {
        "address": address,
        "is_valid": valid,
        "checksum_address": to_checksum_address(address) if valid else None,
        "is_zero_address": valid and is_zero_address(address),
        "is_contract": False,
    }
    if valid:
        out["is_contract"] = client.get_code(out["checksum_address"]) not in ("0x", "0x0", "")
    return out


def _convert_units(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    value = p.require(params, "value")
    from_unit = p.get_choice(params, "from_unit", tuple(UNIT_DECIMALS), "ether")
    to_unit = p.get_choice(params, "to_unit", tuple(UNIT_DECIMALS), "wei")
    return {
        "original": str(value),
        "from_unit": from_unit,
        "to_unit": to_unit,
        "converted": convert_units(value, from_unit, to_unit),
        "wei_value": str(parse_units(value, UNIT_DECIMALS[from_unit])),
    }


def _fragment(params: dict[str, Any]):
    abi = p.get_json(params, "abi")
    if abi:
        return find_function(abi, p.get_str(params, "function_name", required=True))
    return parse_function_signature(p.get_str(params, "function_signature", required=True))


def _encode_abi(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fragment = _fragment(params)
    args = p.get_json(params, "function_args", [])
    if not isinstance(args, list):
        raise ValueError("function_args must be a JSON array")
    data = encode_function_call(fragment, args)
    return {"function_name": fragment.name, "signature": fragment.signature, "selector": data[:10], "encoded_data": data}


def _decode_abi(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fragment = _fragment(params)
    encoded = p.get_hex(params, "encoded_data", required=True)
    if encoded[:10].lower() == fragment.selector:
        decoded = decode_calldata([fragment], encoded)
        return {"function_name": fragment.name, "kind": "calldata", "args": decoded["args"]}
    try:
        return {"function_name": fragment.name, "kind": "result", "decoded": decode_function_result(fragment, encoded)}
    except AbiCodecError as err:
        raise AbiCodecError(f"Could not decode data with the provided ABI: {err}", error_code=err.error_code) from err


def _get_block_number(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return {"block_number": client.get_block_number(), "network": client.network.key}


def _get_rpc_health(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    started = time.monotonic()
    try:
        block_number = client.get_block_number()
    except RpcCallError as err:
        logger.warning("rpc health check failed: %s", err)
        return {
            "healthy": False,
            "status": "unhealthy",
            "error": str(err),
            "latency_ms": int((time.monotonic() - started) * 1000),
            "network": client.network.key,
        }
    return {
        "healthy": True,
        "status": "healthy",
        "block_number": block_number,
        "latency_ms": int((time.monotonic() - started) * 1000),
        "network": client.network.key,
    }


def _test_connection(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    try:
        chain_id = client.get_chain_id()
        block_number = client.get_block_number()
    except RpcCallError as err:
        return {"connected": False, "error": str(err), "network": client.network.key}
    return {"connected": True, "chain_id": chain_id, "block_number": block_number, "network": client.network.key}


def _library_version(name: str) -> str | None:
    try:
        return metadata.version(name)
    except metadata.PackageNotFoundError:
        return None


def _get_sdk_version(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return {
        "version": __version__,
        "libraries": {name: _library_version(name) for name in LIBRARIES},
        "supported_networks": sorted(NETWORKS) + ["custom"],
        "features": list(FEATURES),
    }


_HANDLERS = {
    "getChainID": _get_chain_id,
    "getNetworkInfo": _get_network_info,
    "validateAddress": _validate_address,
    "convertUnits": _convert_units,
    "encodeABI": _encode_abi,
    "decodeABI": _decode_abi,
    "getBlockNumber": _get_block_number,
    "getRPCHealth": _get_rpc_health,
    "testConnection": _test_connection,
    "getScrollSDKVersion": _get_sdk_version,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
