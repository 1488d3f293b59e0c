"""ERC-721 / ERC-1155 reads, metadata resolution and transfers."""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

from . import params as p
from .client import ScrollClient
from .error_map import HttpApiError, RpcCallError, UnknownOperationError
from .formatters import explorer_unavailable

logger = logging.getLogger(__name__)

RESOURCE = "nft"
OPERATIONS = {
    "getNFT": "Owner, token URI and collection name of an NFT",
    "getNFTMetadata": "Resolve and fetch the metadata JSON of an NFT",
    "getNFTsByOwner": "NFT holdings of an owner in a collection",
    "getNFTCollection": "Collection name, symbol and total supply",
    "getCollectionStats": "Collection statistics available on-chain",
    "transferNFT": "safeTransferFrom for ERC-721 or ERC-1155",
    "approveNFT": "approve one token or setApprovalForAll",
    "getNFTTransfers": "NFT transfer history from Scrollscan",
}
OPERATION_TIERS = {
    "transferNFT": "broadcast",
    "approveNFT": "broadcast",
}
SIGNER_OPERATIONS = set(OPERATION_TIERS)

STANDARDS = ("erc721", "erc1155")
IPFS_GATEWAY = "https://ipfs.io/ipfs/"
DATA_JSON_PREFIX = "data:application/json"


def _try_read(client: ScrollClient, address: str, signature: str, args: list[Any] | None = None, default: Any = None) -> Any:
    try:
        return client.read_contract(address, signature, args or [])
    except (RpcCallError, ValueError) as err:
        logger.debug("%s on %s failed: %s", signature, address, err)
        return default


def _standard(params: dict[str, Any]) -> str:
    return p.get_choice(params, "nft_standard", STANDARDS, "erc721")


def _token_id(params: dict[str, Any]) -> int:
    return p.get_int(params, "token_id", required=True)


def _token_uri(client: ScrollClient, contract: str, token_id: int, standard: str) -> str | None:
    if standard == "erc721":
        return _try_read(client, contract, "tokenURI(uint256) view returns (string)", [token_id])
    uri = _try_read(client, contract, "uri(uint256) view returns (string)", [token_id])
    if uri and "{id}" in uri:
        uri = uri.replace("{id}", format(token_id, "064x"))
    return uri


def resolve_uri(uri: str) -> str:
    if uri.startswith("ipfs://"):
        return IPFS_GATEWAY + uri[len("ipfs://") :].removeprefix("ipfs/")
    return uri


def _decode_data_uri(uri: str) -> Any:
    header, _, payload = uri.partition(",")
    if header.endswith(";base64"):
        payload = base64.b64decode(payload).decode("utf-8")
    return json.loads(payload)


def _get_nft(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    token_id = _token_id(params)
    standard = _standard(params)
    out: dict[str, Any] = {"contract_address": contract, "token_id": str(token_id)}
    if standard == "erc721":
        out.update(
            {
                "standard": "ERC-721",
                "owner": _try_read(client, contract, "ownerOf(uint256) view returns (address)", [token_id]),
                "token_uri": _token_uri(client, contract, token_id, standard),
                "name": _try_read(client, contract, "name() view returns (string)", default="Unknown"),
                "symbol": _try_read(client, contract, "symbol() view returns (string)", default="NFT"),
            }
        )
        return out
    out.update({"standard": "ERC-1155", "uri": _token_uri(client, contract, token_id, standard)})
    holder = p.get_address(params, "owner", required=False)
    if holder:
        balance = _try_read(client, contract, "balanceOf(address,uint256) view returns (uint256)", [holder, token_id])
        out["owner"] = holder
        out["balance"] = None if balance is None else str(balance)
    return out


def _get_nft_metadata(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    token_id = _token_id(params)
    uri = _token_uri(client, contract, token_id, _standard(params))
    out: dict[str, Any] = {"contract_address": contract, "token_id": str(token_id), "uri": uri, "metadata": None}
    if not uri:
        return out
    try:
        if uri.startswith(DATA_JSON_PREFIX):
            out["metadata"] = _decode_data_uri(uri)
        else:
            out["resolved_uri"] = resolve_uri(uri)
            out["metadata"] = client.http_get_json(out["resolved_uri"])
    except (HttpApiError, ValueError) as err:
        out["metadata_error"] = str(err)
    return out


def _get_nfts_by_owner(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    owner = p.get_address(params, "owner_address")
    balance = _try_read(client, contract, "balanceOf(address) view returns (uint256)", [owner], 0)
    out: dict[str, Any] = {"owner_address": owner, "contract_address": contract, "balance": str(balance)}
    transfers = client.explorer_get(
        {
            "module": "account",
            "action": "tokennfttx",
            "address": owner,
            "contractaddress": contract,
            "page": p.get_int(params, "page", 1, minimum=1),
            "offset": p.get_int(params, "offset", 100, minimum=1),
            "sort": p.get_choice(params, "sort", ("asc", "desc"), "desc"),
        }
    )
    if transfers is None:
        out["message"] = "Use the Scrollscan API for detailed holdings"
    else:
        out["transfers"] = transfers
    return out


def _get_nft_collection(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    supply = _try_read(client, contract, "totalSupply() view returns (uint256)")
    return {
        "contract_address": contract,
        "name": _try_read(client, contract, "name() view returns (string)", default="Unknown"),
        "symbol": _try_read(client, contract, "symbol() view returns (string)", default="NFT"),
        "total_supply": None if supply is None else str(supply),
    }


def _get_collection_stats(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    out = _get_nft_collection(client, params)
    supports_721 = _try_read(
        client, out["contract_address"], "supportsInterface(bytes4) view returns (bool)", ["0x80ac58cd"]
    )
    supports_1155 = _try_read(
        client, out["contract_address"], "supportsInterface(bytes4) view returns (bool)", ["0xd9b67a26"]
    )
    out["is_erc721"] = bool(supports_721)
    out["is_erc1155"] = bool(supports_1155)
    out["has_code"] = client.get_code(out["contract_address"]) != "0x"
    return out


def _transfer_nft(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    to = p.get_address(params, "to_address")
    token_id = _token_id(params)
    sender = client.signer_address
    wait = p.get_bool(params, "wait", True)
    if _standard(params) == "erc721":
        sent = client.write_contract(
            contract, "safeTransferFrom(address,address,uint256)", [sender, to, token_id], wait=wait
        )
        sent.update({"standard": "ERC-721", "token_id": str(token_id), "recipient": to})
        return sent
    amount = p.get_int(params, "amount", 1, minimum=1)
    sent = client.write_contract(
        contract,
        "safeTransferFrom(address,address,uint256,uint256,bytes)",
        [sender, to, token_id, amount, "0x"],
        wait=wait,
    )
    sent.update({"standard": "ERC-1155", "token_id": str(token_id), "amount": str(amount), "recipient": to})
    return sent


def _approve_nft(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    operator = p.get_address(params, "to_address")
    wait = p.get_bool(params, "wait", True)
    if p.get_bool(params, "approve_all", False) or _standard(params) == "erc1155":
        approved = p.get_bool(params, "approved", True)
        sent = client.write_contract(contract, "setApprovalForAll(address,bool)", [operator, approved], wait=wait)
        sent.update({"contract_address": contract, "operator": operator, "approved_for_all": approved})
        return sent
    token_id = _token_id(params)
    sent = client.write_contract(contract, "approve(address,uint256)", [operator, token_id], wait=wait)
    sent.update({"contract_address": contract, "token_id": str(token_id), "approved": operator})
    return sent


def _get_nft_transfers(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    contract = p.get_address(params, "contract_address")
    transfers = client.explorer_get(
        {
            "module": "account",
            "action": "tokennfttx",
            "contractaddress": contract,
            "page": p.get_int(params, "page", 1, minimum=1),
            "offset": p.get_int(params, "offset", 100, minimum=1),
            "sort": p.get_choice(params, "sort", ("asc", "desc"), "desc"),
        }
    )
    if transfers is None:
        return explorer_unavailable(contract_address=contract, transfers=[])
    return {"contract_address": contract, "transfers": transfers, "count": len(transfers)}


_HANDLERS = {
    "getNFT": _get_nft,
    "getNFTMetadata": _get_nft_metadata,
    "getNFTsByOwner": _get_nfts_by_owner,
    "getNFTCollection": _get_nft_collection,
    "getCollectionStats": _get_collection_stats,
    "transferNFT": _transfer_nft,
    "approveNFT": _approve_nft,
    "getNFTTransfers": _get_nft_transfers,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
