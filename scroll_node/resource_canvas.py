"""Scroll Canvas profiles and badges."""

from __future__ import annotations

import logging
from typing import Any

from . import params as p
from .abi_codec import find_function
from .address_utils import is_zero_address
from .client import ScrollClient
from .contracts import CANVAS_BADGE_ABI, CANVAS_PROFILE_ABI
from .error_map import HttpApiError, RpcCallError, UnknownOperationError
from .tokens import get_canvas_config

logger = logging.getLogger(__name__)

RESOURCE = "canvas"
OPERATIONS = {
    "getProfile": "Canvas profile from the API, falling back to the profile registry",
    "getBadges": "Badge count and badge token ids held by an address",
    "getBadge": "Token URI and badge info of one badge",
    "getCanvasStats": "Canvas contract addresses and API endpoint",
    "isProfileMinted": "Whether an address has minted a Canvas profile",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

PROFILE_FN = find_function(CANVAS_PROFILE_ABI, "getProfile")
HAS_PROFILE_FN = find_function(CANVAS_PROFILE_ABI, "hasProfile")
BADGE_INFO_FN = find_function(CANVAS_BADGE_ABI, "getBadgeInfo")
BADGE_BALANCE_FN = find_function(CANVAS_BADGE_ABI, "balanceOf")
BADGE_BY_INDEX_FN = find_function(CANVAS_BADGE_ABI, "tokenOfOwnerByIndex")
BADGE_URI_FN = find_function(CANVAS_BADGE_ABI, "tokenURI")
MAX_LISTED_BADGES = 50


def _canvas(client: ScrollClient, contract: str) -> str:
    address = get_canvas_config(client.network.key)[contract]
    if is_zero_address(address):
        raise ValueError(f"Scroll Canvas {contract} is not deployed on {client.network.key}")
    return address


def _has_profile(client: ScrollClient, address: str) -> bool:
    return bool(client.read_contract(_canvas(client, "profile_contract"), HAS_PROFILE_FN, [address]))


def _onchain_profile(client: ScrollClient, address: str) -> dict[str, Any]:
    if not _has_profile(client, address):
        return {"address": address, "has_profile": False, "source": "contract"}
    profile = client.read_contract(_canvas(client, "profile_contract"), PROFILE_FN, [address])
    return {
        "address": address,
        "has_profile": True,
        "username": profile["username"],
        "avatar": profile["avatar"],
        "bio": profile["bio"],
        "created_at": profile["createdAt"],
        "source": "contract",
    }


def _get_profile(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    try:
        data = client.http_get_json(f"{client.canvas_api_url}/profile/{address}")
    except HttpApiError as err:
        logger.info("canvas api unavailable for %s, reading profile registry: %s", address, err)
        return _onchain_profile(client, address)
    profile = data.get("data", data) if isinstance(data, dict) else data
    return {"address": address, "has_profile": bool(profile), "profile": profile, "source": "api"}


def _get_badges(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    badge_contract = _canvas(client, "badge_contract")
    count = int(client.read_contract(badge_contract, BADGE_BALANCE_FN, [address]))
    badge_ids: list[str] = []
    for index in range(min(count, MAX_LISTED_BADGES)):
        try:
            token_id = client.read_contract(badge_contract, BADGE_BY_INDEX_FN, [address, index])
        except RpcCallError as err:
            logger.debug("badge enumeration stopped at %d: %s", index, err)
            break
        badge_ids.append(str(token_id))
    return {
        "address": address,
        "badge_contract": badge_contract,
        "badge_count": str(count),
        "badge_ids": badge_ids,
    }


def _get_badge(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    badge_id = p.get_int(params, "badge_id", required=True, minimum=0)
    badge_contract = _canvas(client, "badge_contract")
    out: dict[str, Any] = {"badge_id": str(badge_id), "badge_contract": badge_contract, "token_uri": None, "badge_info": None}
    try:
        out["token_uri"] = client.read_contract(badge_contract, BADGE_URI_FN, [badge_id])
    except RpcCallError as err:
        logger.debug("tokenURI(%s) failed: %s", badge_id, err)
    try:
        info = client.read_contract(badge_contract, BADGE_INFO_FN, [badge_id])
        out["badge_info"] = {
            "name": info["name"],
            "description": info["description"],
            "image_url": info["imageUrl"],
            "minted_at": info["mintedAt"],
        }
    except RpcCallError as err:
        logger.debug("getBadgeInfo(%s) failed: %s", badge_id, err)
    return out


def _get_canvas_stats(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    config = get_canvas_config(client.network.key)
    return {
        "network": client.network.key,
        "profile_contract": config["profile_contract"],
        "badge_contract": config["badge_contract"],
        "attestation_contract": config["attestation_contract"],
        "api_endpoint": client.canvas_api_url,
        "deployed": not is_zero_address(config["profile_contract"]),
    }


def _is_profile_minted(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    address = p.get_address(params, "address")
    return {"address": address, "is_minted": _has_profile(client, address)}


_HANDLERS = {
    "getProfile": _get_profile,
    "getBadges": _get_badges,
    "getBadge": _get_badge,
    "getCanvasStats": _get_canvas_stats,
    "isProfileMinted": _is_profile_minted,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
