"""Generic contract calls, deployment and explorer lookups."""

from __future__ import annotations

from typing import Any

from . import params as p
from .abi_codec import (
    AbiFragment,
    decode_function_result,
    encode_args,
    encode_function_call,
    event_topic0,
    find_function,
    parse_abi,
    parse_function_signature,
)
from .address_utils import compute_create_address, to_checksum_address
from .client import ScrollClient
from .error_map import UnknownOperationError
from .formatters import explorer_unavailable, format_log
from .quantity import format_ether

RESOURCE = "contract"
OPERATIONS = {
    "callContract": "Read-only contract call (eth_call) with decoded result",
    "executeContract": "State-changing contract call from the configured signer",
    "deployContract": "Deploy bytecode with encoded constructor arguments",
    "getContractABI": "Verified ABI from Scrollscan",
    "getContractSource": "Verified source from Scrollscan",
    "getContractEvents": "Logs emitted by a contract, optionally by event signature",
    "encodeFunctionData": "Encode calldata for a function",
    "decodeFunctionResult": "Decode return data of a function",
    "estimateContractGas": "Gas estimate and cost of a contract call",
    "getContractBytecode": "Deployed bytecode and size",
    "getContractCreationInfo": "Creator and creation transaction from Scrollscan",
    "verifyContract": "How to verify a contract on Scrollscan",
}
OPERATION_TIERS = {
    "executeContract": "broadcast",
    "deployContract": "broadcast",
}
SIGNER_OPERATIONS = set(OPERATION_TIERS)

VERIFY_MESSAGE = (
    "Contract verification requires manual submission to Scrollscan. "
    "Use the Scrollscan verification tool or the hardhat/foundry verify plugins."
)


def _function(params: dict[str, Any]) -> AbiFragment:
    """Function fragment from ``abi`` + ``function_name``, or a bare human-readable signature."""
    name = p.get_str(params, "function_name", required=True)
    abi = p.get_json(params, "abi")
    if abi:
        return find_function(abi, name)
    if "(" not in name:
        raise ValueError("abi is required unless function_name is a full signature")
    return parse_function_signature(name)


def _args(params: dict[str, Any], key: str = "function_args") -> list[Any]:
    args = p.get_json(params, key, [])
    if not isinstance(args, list):
        raise ValueError(f"{key} must be a JSON array")
    return args


def _call_contract(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    fragment = _function(params)
    data = encode_function_call(fragment, _args(params))
    raw = client.eth_call(
        contract,
        data,
        p.get_block_id(params),
        from_address=p.get_address(params, "from", required=False),
    )
    return {
        "contract_address": contract,
        "function_name": fragment.name,
        "signature": fragment.signature,
        "result": decode_function_result(fragment, raw) if fragment.outputs else None,
        "raw": raw,
    }


def _execute_contract(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    fragment = _function(params)
    sent = client.write_contract(
        contract,
        fragment,
        _args(params),
        value=p.get_amount(params, "value", required=False) or 0,
        gas_limit=p.get_int(params, "gas_limit"),
        wait=p.get_bool(params, "wait", True),
    )
    sent.update({"contract_address": contract, "function_name": fragment.name})
    return sent


def _deploy_contract(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    bytecode = p.get_hex(params, "bytecode", required=True)
    if bytecode == "0x":
        raise ValueError("bytecode cannot be empty")
    args = _args(params, "constructor_args")
    abi = p.get_json(params, "abi")
    constructors = [f for f in parse_abi(abi) if f.kind == "constructor"] if abi else []
    if constructors:
        bytecode += encode_args(list(constructors[0].inputs), args)[2:]
    elif args:
        raise ValueError("constructor_args given but the abi has no constructor")
    wait = p.get_bool(params, "wait", True)
    tx: dict[str, Any] = {"data": bytecode, "value": p.get_amount(params, "value", required=False) or 0}
    gas_limit = p.get_int(params, "gas_limit")
    if gas_limit:
        tx["gas"] = gas_limit
    sent = client.send_transaction(tx, wait=wait)
    receipt = sent.get("receipt") or {}
    address = receipt.get("contractAddress")
    # Without a receipt the address follows from the sender and nonce.
    sent["contract_address"] = to_checksum_address(address) if address else compute_create_address(sent["from"], sent["nonce"])
    sent["deployer"] = sent["from"]
    return sent


def _explorer_contract(client: ScrollClient, params: dict[str, Any], action: str, field: str) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    query = {"module": "contract", "action": action}
    if action == "getcontractcreation":
        query["contractaddresses"] = contract
    else:
        query["address"] = contract
    result = client.explorer_get(query)
    if result is None:
        return explorer_unavailable(contract_address=contract)
    return {"contract_address": contract, field: result}


def _get_contract_abi(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    out = _explorer_contract(client, params, "getabi", "abi")
    if isinstance(out.get("abi"), str):
        out["abi"] = p.get_json({"abi": out["abi"]}, "abi")
    return out


def _get_contract_source(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _explorer_contract(client, params, "getsourcecode", "source")


def _get_contract_creation_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    out = _explorer_contract(client, params, "getcontractcreation", "creation_info")
    if isinstance(out.get("creation_info"), list) and out["creation_info"]:
        out["creation_info"] = out["creation_info"][0]
    return out


def _get_contract_events(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    log_filter: dict[str, Any] = {
        "address": contract,
        "fromBlock": p.get_block_id(params, "from_block", "earliest"),
        "toBlock": p.get_block_id(params, "to_block", "latest"),
    }
    signature = p.get_str(params, "event_signature")
    if signature:
        log_filter["topics"] = [event_topic0(signature)]
    logs = client.get_logs(log_filter)
    return {
        "contract_address": contract,
        "event_signature": signature,
        "events": [format_log(log) for log in logs],
        "count": len(logs),
    }


def _encode_function_data(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fragment = _function(params)
    data = encode_function_call(fragment, _args(params))
    return {
        "function_name": fragment.name,
        "signature": fragment.signature,
        "selector": fragment.selector,
        "encoded_data": data,
    }


def _decode_function_result(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    fragment = _function(params)
    if not fragment.outputs:
        raise ValueError(f"{fragment.signature} declares no outputs to decode")
    data = p.get_hex(params, "encoded_data", required=True)
    return {
        "function_name": fragment.name,
        "signature": fragment.signature,
        "decoded": decode_function_result(fragment, data),
    }


def _estimate_contract_gas(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    fragment = _function(params)
    tx: dict[str, Any] = {
        "to": contract,
        "data": encode_function_call(fragment, _args(params)),
        "value": p.get_amount(params, "value", required=False) or 0,
    }
    sender = p.get_address(params, "from", required=False)
    if sender or client.has_signer:
        tx["from"] = sender or client.signer_address
    gas = client.estimate_gas(tx)
    gas_price = client.get_gas_price()
    return {
        "contract_address": contract,
        "function_name": fragment.name,
        "gas_estimate": str(gas),
        "gas_price": str(gas_price),
        "estimated_cost_wei": str(gas * gas_price),
        "estimated_cost": format_ether(gas * gas_price),
    }


def _get_contract_bytecode(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    code = client.get_code(contract, p.get_block_id(params))
    return {
        "contract_address": contract,
        "bytecode": code,
        "is_contract": code != "0x",
        "size": (len(code) - 2) // 2,
    }


def _verify_contract(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return {
        "contract_address": p.get_address(params, "contract_address", required=False),
        "verification_url": f"{client.network.explorer_url}/verifyContract" if client.network.explorer_url else None,
        "message": VERIFY_MESSAGE,
    }


_HANDLERS = {
    "callContract": _call_contract,
    "executeContract": _execute_contract,
    "deployContract": _deploy_contract,
    "getContractABI": _get_contract_abi,
    "getContractSource": _get_contract_source,
    "getContractEvents": _get_contract_events,
    "encodeFunctionData": _encode_function_data,
    "decodeFunctionResult": _decode_function_result,
    "estimateContractGas": _estimate_contract_gas,
    "getContractBytecode": _get_contract_bytecode,
    "getContractCreationInfo": _get_contract_creation_info,
    "verifyContract": _verify_contract,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
