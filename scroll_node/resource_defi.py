"""DEX and lending lookups plus DefiLlama statistics.

Swap and liquidity operations only describe the router call; they never sign.
"""

from __future__ import annotations

import logging
from typing import Any

from . import params as p
from .client import ScrollClient
from .error_map import RpcCallError, UnknownOperationError
from .formatters import iso_timestamp
from .tokens import get_dex_routers, get_lending_protocols

logger = logging.getLogger(__name__)

RESOURCE = "defi"
OPERATIONS = {
    "getDEXPrices": "Router quote for a token pair where the router supports getAmountsOut",
    "getLiquidityPools": "Pool tokens and reserves",
    "executeSwap": "Unsigned swap request skeleton for a DEX router",
    "addLiquidity": "Unsigned addLiquidity request skeleton",
    "removeLiquidity": "Unsigned removeLiquidity request skeleton",
    "getLendingMarkets": "Lending protocols and their listed markets",
    "getYieldFarms": "Known yield sources on Scroll",
    "getTVLStats": "Scroll chain TVL history from DefiLlama",
    "getProtocolStats": "Protocols deployed on Scroll ranked by TVL (DefiLlama)",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

DEFILLAMA_CHAIN_TVL_URL = "https://api.llama.fi/v2/historicalChainTvl/Scroll"
DEFILLAMA_PROTOCOLS_URL = "https://api.llama.fi/protocols"
CHAIN_NAME = "Scroll"
DEFAULT_SLIPPAGE_BPS = 50
DEFAULT_DEADLINE_SECONDS = 1200
YIELD_FARMS = [
    {"protocol": "SyncSwap", "kind": "LP staking"},
    {"protocol": "iZUMi", "kind": "concentrated liquidity farms"},
    {"protocol": "LayerBank", "kind": "lending"},
    {"protocol": "Aave V3", "kind": "lending"},
    {"protocol": "Rho Markets", "kind": "lending"},
]


def _router(client: ScrollClient, params: dict[str, Any]) -> dict[str, str]:
    routers = get_dex_routers(client.network.key)
    if not routers:
        raise ValueError(f"No DEX routers known for network: {client.network.key}")
    protocol = p.get_choice(params, "protocol", tuple(routers), next(iter(routers)))
    return {"protocol": protocol, **routers[protocol]}


def _try_read(client: ScrollClient, address: str, signature: str, args: list[Any] | None = None) -> Any:
    try:
        return client.read_contract(address, signature, args or [])
    except (RpcCallError, ValueError) as err:
        logger.debug("%s on %s failed: %s", signature, address, err)
        return None


def _get_dex_prices(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    router = _router(client, params)
    token_in = p.get_address(params, "token_in")
    token_out = p.get_address(params, "token_out")
    amount_in = p.get_int(params, "amount_in")
    out: dict[str, Any] = {
        "protocol": router["protocol"],
        "router": router["router"],
        "token_in": token_in,
        "token_out": token_out,
        "amount_in": None if amount_in is None else str(amount_in),
        "amount_out": None,
    }
    if amount_in and router["type"] == "uniswap-v2":
        amounts = _try_read(
            client,
            router["router"],
            "getAmountsOut(uint256,address[]) view returns (uint256[])",
            [amount_in, [token_in, token_out]],
        )
        if amounts:
            out["amount_out"] = amounts[-1]
    if out["amount_out"] is None:
        out["message"] = "Quote unavailable from this router; use a DEX aggregator for accurate prices"
    return out


def _get_liquidity_pools(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    router = _router(client, params)
    pool = p.get_address(params, "pool_address", required=False)
    out: dict[str, Any] = {"protocol": router["protocol"], "router": router["router"], "pool_address": pool}
    if not pool:
        out["message"] = "Pass pool_address to read pool tokens and reserves"
        return out
    out["token0"] = _try_read(client, pool, "token0() view returns (address)")
    out["token1"] = _try_read(client, pool, "token1() view returns (address)")
    reserves = _try_read(client, pool, "getReserves() view returns (uint112,uint112,uint32)")
    if reserves:
        out["reserve0"], out["reserve1"] = reserves[0], reserves[1]
    return out


def _skeleton(router: dict[str, str], function: str, args: dict[str, Any], message: str) -> dict[str, Any]:
    return {
        "protocol": router["protocol"],
        "router": router["router"],
        "unsigned_request": {"to": router["router"], "function": function, "args": args},
        "signed": False,
        "message": message,
    }


def _execute_swap(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    router = _router(client, params)
    token_in = p.get_address(params, "token_in")
    token_out = p.get_address(params, "token_out")
    amount = p.get_str(params, "amount", required=True)
    return _skeleton(
        router,
        "swapExactTokensForTokens(uint256,uint256,address[],address,uint256)",
        {
            "amountIn": amount,
            "amountOutMin": "<quote * (10000 - slippage_bps) / 10000>",
            "path": [token_in, token_out],
            "to": p.get_address(params, "recipient", required=False),
            "deadline": f"<now + {DEFAULT_DEADLINE_SECONDS}>",
            "slippage_bps": p.get_int(params, "slippage_bps", DEFAULT_SLIPPAGE_BPS),
        },
        "Swap execution requires approving token_in and signing the router call with slippage protection",
    )


def _liquidity(client: ScrollClient, params: dict[str, Any], adding: bool) -> dict[str, Any]:
    router = _router(client, params)
    pool = p.get_address(params, "pool_address", required=False)
    amount = p.get_str(params, "amount", required=True)
    if adding:
        function = "addLiquidity(address,address,uint256,uint256,uint256,uint256,address,uint256)"
        message = "Adding liquidity requires approving both tokens and signing the router call"
    else:
        function = "removeLiquidity(address,address,uint256,uint256,uint256,address,uint256)"
        message = "Removing liquidity requires approving the LP token and signing the router call"
    out = _skeleton(router, function, {"pool": pool, "amount": amount}, message)
    out["operation"] = "addLiquidity" if adding else "removeLiquidity"
    return out


def _add_liquidity(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _liquidity(client, params, True)


def _remove_liquidity(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return _liquidity(client, params, False)


def _get_lending_markets(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    protocols = get_lending_protocols(client.network.key)
    wanted = p.get_str(params, "protocol")
    if wanted and wanted not in protocols:
        raise ValueError(f"protocol must be one of {sorted(protocols)}")
    markets = []
    for key, info in protocols.items():
        if wanted and key != wanted:
            continue
        if info["kind"] == "pool":
            listed = _try_read(client, info["address"], "getReservesList() view returns (address[])")
        else:
            listed = _try_read(client, info["address"], "getAllMarkets() view returns (address[])")
        markets.append({"protocol": key, **info, "markets": listed})
    return {"network": client.network.key, "supported_protocols": sorted(protocols), "protocols": markets}


def _get_yield_farms(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    return {
        "farms": YIELD_FARMS,
        "note": "Check individual protocol websites for current APY rates",
    }


def _get_tvl_stats(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    days = p.get_int(params, "days", 30, minimum=1)
    history = client.http_get_json(DEFILLAMA_CHAIN_TVL_URL)
    if not isinstance(history, list):
        history = []
    recent = [
        {"date": iso_timestamp(int(point["date"])), "tvl": point.get("tvl")}
        for point in history[-days:]
        if isinstance(point, dict) and "date" in point
    ]
    return {
        "chain": CHAIN_NAME,
        "current_tvl": recent[-1]["tvl"] if recent else None,
        "history": recent,
        "source": DEFILLAMA_CHAIN_TVL_URL,
    }


def _get_protocol_stats(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    limit = p.get_int(params, "limit", 20, minimum=1)
    protocols = client.http_get_json(DEFILLAMA_PROTOCOLS_URL)
    if not isinstance(protocols, list):
        protocols = []
    on_scroll = [
        {
            "name": item.get("name"),
            "category": item.get("category"),
            "tvl": (item.get("chainTvls") or {}).get(CHAIN_NAME),
            "url": item.get("url"),
        }
        for item in protocols
        if isinstance(item, dict) and CHAIN_NAME in (item.get("chains") or [])
    ]
    on_scroll.sort(key=lambda item: item["tvl"] or 0, reverse=True)
    return {
        "chain": CHAIN_NAME,
        "protocol_count": len(on_scroll),
        "protocols": on_scroll[:limit],
        "source": DEFILLAMA_PROTOCOLS_URL,
    }


_HANDLERS = {
    "getDEXPrices": _get_dex_prices,
    "getLiquidityPools": _get_liquidity_pools,
    "executeSwap": _execute_swap,
    "addLiquidity": _add_liquidity,
    "removeLiquidity": _remove_liquidity,
    "getLendingMarkets": _get_lending_markets,
    "getYieldFarms": _get_yield_farms,
    "getTVLStats": _get_tvl_stats,
    "getProtocolStats": _get_protocol_stats,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
