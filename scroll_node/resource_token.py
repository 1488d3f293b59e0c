"""ERC-20 token reads, transfers and explorer queries."""

from __future__ import annotations

import logging
from typing import Any

from . import params as p
from .client import ScrollClient
from .error_map import RpcCallError, UnknownOperationError
from .formatters import explorer_unavailable
from .quantity import format_units, parse_units
from .tokens import get_token_by_address

logger = logging.getLogger(__name__)

RESOURCE = "token"
OPERATIONS = {
    "getTokenInfo": "Name, symbol, decimals and total supply of an ERC-20 token",
    "getTokenBalance": "ERC-20 balance of an owner",
    "getTokenAllowance": "ERC-20 allowance granted by an owner to a spender",
    "transferToken": "Transfer ERC-20 tokens from the configured signer",
    "approveToken": "Approve a spender (amount or unlimited)",
    "transferFrom": "Move approved tokens between two accounts",
    "getTotalSupply": "Total supply of an ERC-20 token",
    "getTokenMetadata": "Token info merged with the known-token list",
    "getTokenHolders": "Top holders from Scrollscan",
    "getTokenTransfers": "Transfer history for a token from Scrollscan",
}
OPERATION_TIERS = {
    "transferToken": "broadcast",
    "approveToken": "broadcast",
    "transferFrom": "broadcast",
}
SIGNER_OPERATIONS = set(OPERATION_TIERS)

MAX_UINT256 = 2**256 - 1
DEFAULT_DECIMALS = 18


def _read_or_default(client: ScrollClient, address: str, signature: str, default: Any) -> Any:
    try:
        return client.read_contract(address, signature)
    except (RpcCallError, ValueError) as err:
        logger.debug("%s on %s failed (%s), using %r", signature, address, err, default)
        return default


def read_token_metadata(client: ScrollClient, address: str) -> dict[str, Any]:
    """Name/symbol/decimals with the usual fallbacks for non-conforming tokens."""
    decimals = _read_or_default(client, address, "decimals() view returns (uint8)", str(DEFAULT_DECIMALS))
    return {
        "address": address,
        "name": _read_or_default(client, address, "name() view returns (string)", "Unknown"),
        "symbol": _read_or_default(client, address, "symbol() view returns (string)", "UNKNOWN"),
        "decimals": int(decimals),
    }


def balance_of(client: ScrollClient, token: str, owner: str) -> int:
    return int(client.read_contract(token, "balanceOf(address) view returns (uint256)", [owner]))


def _get_token_info(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    out = read_token_metadata(client, token)
    supply = int(client.read_contract(token, "totalSupply() view returns (uint256)"))
    out["total_supply"] = str(supply)
    out["total_supply_formatted"] = format_units(supply, out["decimals"])
    return out


def _get_token_balance(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    owner = p.get_address(params, "address")
    meta = read_token_metadata(client, token)
    balance = balance_of(client, token, owner)
    return {
        "token_address": token,
        "address": owner,
        "symbol": meta["symbol"],
        "decimals": meta["decimals"],
        "balance": str(balance),
        "balance_formatted": format_units(balance, meta["decimals"]),
    }


def _get_token_allowance(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    owner = p.get_address(params, "owner")
    spender = p.get_address(params, "spender")
    meta = read_token_metadata(client, token)
    allowance = int(
        client.read_contract(token, "allowance(address,address) view returns (uint256)", [owner, spender])
    )
    return {
        "token_address": token,
        "owner": owner,
        "spender": spender,
        "allowance": str(allowance),
        "allowance_formatted": format_units(allowance, meta["decimals"]),
        "is_unlimited": allowance == MAX_UINT256,
    }


def _token_amount(client: ScrollClient, token: str, params: dict[str, Any]) -> tuple[int, int]:
    meta = read_token_metadata(client, token)
    return parse_units(p.get_str(params, "amount", required=True), meta["decimals"]), meta["decimals"]


def _transfer_token(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    to = p.get_address(params, "to")
    amount, decimals = _token_amount(client, token, params)
    sent = client.write_contract(
        token,
        "transfer(address,uint256)",
        [to, amount],
        wait=p.get_bool(params, "wait", True),
    )
    sent.update({"token_address": token, "recipient": to, "amount": str(amount), "amount_formatted": format_units(amount, decimals)})
    return sent


def _approve_token(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    spender = p.get_address(params, "spender")
    if p.get_bool(params, "unlimited", False) or str(p.lookup(params, "amount", "")).strip().lower() in {"max", "unlimited"}:
        amount, decimals = MAX_UINT256, read_token_metadata(client, token)["decimals"]
    else:
        amount, decimals = _token_amount(client, token, params)
    sent = client.write_contract(
        token,
        "approve(address,uint256)",
        [spender, amount],
        wait=p.get_bool(params, "wait", True),
    )
    sent.update(
        {
            "token_address": token,
            "spender": spender,
            "amount": str(amount),
            "is_unlimited": amount == MAX_UINT256,
            "amount_formatted": "unlimited" if amount == MAX_UINT256 else format_units(amount, decimals),
        }
    )
    return sent


def _transfer_from(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    sender = p.get_address(params, "from")
    to = p.get_address(params, "to")
    amount, decimals = _token_amount(client, token, params)
    sent = client.write_contract(
        token,
        "transferFrom(address,address,uint256)",
        [sender, to, amount],
        wait=p.get_bool(params, "wait", True),
    )
    sent.update({"token_address": token, "sender": sender, "recipient": to, "amount": str(amount), "amount_formatted": format_units(amount, decimals)})
    return sent


def _get_total_supply(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    meta = read_token_metadata(client, token)
    supply = int(client.read_contract(token, "totalSupply() view returns (uint256)"))
    return {
        "token_address": token,
        "symbol": meta["symbol"],
        "total_supply": str(supply),
        "total_supply_formatted": format_units(supply, meta["decimals"]),
    }


def _get_token_metadata(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    out = _get_token_info(client, params)
    known = get_token_by_address(client.network.key, out["address"])
    out["is_known_token"] = known is not None
    if known is not None:
        out["l1_address"] = known.l1_address
        out["logo_url"] = known.logo_url
    return out


def _get_token_holders(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    holders = client.explorer_get(
        {
            "module": "token",
            "action": "tokenholderlist",
            "contractaddress": token,
            "page": p.get_int(params, "page", 1, minimum=1),
            "offset": p.get_int(params, "offset", 100, minimum=1),
        }
    )
    if holders is None:
        return explorer_unavailable(token_address=token, holders=[])
    return {"token_address": token, "holders": holders, "count": len(holders)}


def _get_token_transfers(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    token = p.get_address(params, "token_address")
    query: dict[str, Any] = {
        "module": "account",
        "action": "tokentx",
        "contractaddress": token,
        "page": p.get_int(params, "page", 1, minimum=1),
        "offset": p.get_int(params, "offset", 100, minimum=1),
        "sort": p.get_choice(params, "sort", ("asc", "desc"), "desc"),
    }
    holder = p.get_address(params, "address", required=False)
    if holder:
        query["address"] = holder
    transfers = client.explorer_get(query)
    if transfers is None:
        return explorer_unavailable(token_address=token, transfers=[])
    return {"token_address": token, "transfers": transfers, "count": len(transfers)}


_HANDLERS = {
    "getTokenInfo": _get_token_info,
    "getTokenBalance": _get_token_balance,
    "getTokenAllowance": _get_token_allowance,
    "transferToken": _transfer_token,
    "approveToken": _approve_token,
    "transferFrom": _transfer_from,
    "getTotalSupply": _get_total_supply,
    "getTokenMetadata": _get_token_metadata,
    "getTokenHolders": _get_token_holders,
    "getTokenTransfers": _get_token_transfers,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
