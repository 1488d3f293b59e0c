"""Known tokens, DeFi protocol addresses and Canvas endpoints per network."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from .contracts import CONTRACT_ADDRESSES, ZERO_ADDRESS


@dataclass(frozen=True)
class TokenInfo:
    name: str
    symbol: str
    decimals: int
    l2_address: str
    l1_address: str | None = None
    logo_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_COINGECKO = "https://assets.coingecko.com/coins/images"

MAINNET_TOKENS: dict[str, TokenInfo] = {
    "ETH": TokenInfo("Ethereum", "ETH", 18, ZERO_ADDRESS, None, f"{_COINGECKO}/279/small/ethereum.png"),
    "WETH": TokenInfo(
        "Wrapped Ether",
        "WETH",
        18,
        "0x5300000000000000000000000000000000000004",
        "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
        f"{_COINGECKO}/2518/small/weth.png",
    ),
    "USDC": TokenInfo(
        "USD Coin",
        "USDC",
        6,
        "0x06eFdBFf2a14a7c8E15944D1F4A48F9F95F663A4",
        "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        f"{_COINGECKO}/6319/small/USD_Coin_icon.png",
    ),
    "USDT": TokenInfo(
        "Tether USD",
        "USDT",
        6,
        "0xf55BEC9cafDbE8730f096Aa55dad6D22d44099Df",
        "0xdAC17F958D2ee523a2206206994597C13D831ec7",
        f"{_COINGECKO}/325/small/Tether.png",
    ),
    "DAI": TokenInfo(
        "Dai Stablecoin",
        "DAI",
        18,
        "0xcA77eB3fEFe3725Dc33bccB54eDEFc3D9f764f97",
        "0x6B175474E89094C44Da98b954EedeAC495271d0F",
        f"{_COINGECKO}/9956/small/4943.png",
    ),
    "WBTC": TokenInfo(
        "Wrapped BTC",
        "WBTC",
        8,
        "0x3C1BCa5a656e69edCD0D4E36BEbb3FcDAcA60Cf1",
        "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599",
        f"{_COINGECKO}/7598/small/wrapped_bitcoin_wbtc.png",
    ),
    "wstETH": TokenInfo(
        "Wrapped stETH",
        "wstETH",
        18,
        "0xf610A9dfB7C89644979b4A0f27063E9e7d7Cda32",
        "0x7f39C581F595B53c5cb19bD0b3f8dA6c935E2Ca0",
        f"{_COINGECKO}/18834/small/wstETH.png",
    ),
    "SCR": TokenInfo(
        "Scroll",
        "SCR",
        18,
        "0xd29687c813D741E2F938F4aC377128810E217b1b",
        None,
        f"{_COINGECKO}/36056/small/scroll.png",
    ),
}

SEPOLIA_TOKENS: dict[str, TokenInfo] = {
    "ETH": TokenInfo("Ethereum", "ETH", 18, ZERO_ADDRESS),
    "WETH": TokenInfo(
        "Wrapped Ether",
        "WETH",
        18,
        "0x5300000000000000000000000000000000000004",
        "0xfFf9976782d46CC05630D1f6eBAb18b2324d6B14",
    ),
}

TOKENS = {"mainnet": MAINNET_TOKENS, "sepolia": SEPOLIA_TOKENS}

DEX_ROUTERS: dict[str, dict[str, dict[str, str]]] = {
    "mainnet": {
        "syncswap": {"name": "SyncSwap", "router": "0x80e38291e06339d10AAB483C65695D004dBD5C69", "type": "uniswap-v2"},
        "izumi": {"name": "iZUMi Swap", "router": "0x2db0AFD0045F3518c77eC6591a542e326Befd3D7", "type": "uniswap-v3"},
        "zebra": {"name": "Zebra", "router": "0x0122960d6e391478bfe8fb2408ba412d5600f621", "type": "uniswap-v2"},
        "ambient": {"name": "Ambient Finance", "router": "0xaaaaAAAACB71BF2C8CaE522EA5fa455571A74106", "type": "other"},
        "nuri": {"name": "Nuri Exchange", "router": "0xAAA45c8F5ef92a000a121d102F4e89278a711Faa", "type": "uniswap-v3"},
        "spacefi": {"name": "SpaceFi", "router": "0x18b71386418A9FCa5Ae7165E31c385a5a578D1d5", "type": "uniswap-v2"},
        "skydrome": {"name": "Skydrome", "router": "0xAA111C62cDEEf205f70E6722D1E22274274ec12F", "type": "uniswap-v2"},
    },
    "sepolia": {},
}

LENDING_PROTOCOLS: dict[str, dict[str, dict[str, str]]] = {
    "mainnet": {
        "aave": {"name": "Aave V3", "address": "0x11fCfe756c05AD438e312a7fd934381537D3cFfe", "kind": "pool"},
        "layerbank": {"name": "LayerBank", "address": "0xEC53c830f4444a8A56455c6836b5D2aA794289Aa", "kind": "comptroller"},
        "rhomarkets": {"name": "Rho Markets", "address": "0x8e00D5e02E65A19337Cdba98bbA9F84d4186a180", "kind": "comptroller"},
    },
    "sepolia": {},
}

CANVAS_CONFIG: dict[str, dict[str, str]] = {
    "mainnet": {
        "profile_contract": "0xB23AF8707c442f59BDfC368612Bd8DbCca8a7a5a",
        "badge_contract": "0xa74dFebc9903886EaA1F2C16F49DB63b7700Dbc4",
        "attestation_contract": "0x77b7DA1c40762Cd8AFfE2069b575328EfD4D9801",
        "api_endpoint": "https://canvas.scroll.cat/api",
    },
    "sepolia": {
        "profile_contract": ZERO_ADDRESS,
        "badge_contract": ZERO_ADDRESS,
        "attestation_contract": ZERO_ADDRESS,
        "api_endpoint": "https://sepolia.canvas.scroll.cat/api",
    },
}

GATEWAY_TYPES = {
    "standard_erc20": "l2_standard_erc20_gateway",
    "custom_erc20": "l2_custom_erc20_gateway",
    "eth": "l2_eth_gateway",
    "weth": "l2_weth_gateway",
    "usdc": "l2_custom_erc20_gateway",
    "erc721": "l2_erc721_gateway",
    "erc1155": "l2_erc1155_gateway",
}

_SYMBOL_GATEWAYS = {"ETH": "eth", "WETH": "weth", "USDC": "usdc"}


def _tokens_for(network: str) -> dict[str, TokenInfo]:
    return TOKENS.get(str(network or "").strip().lower(), MAINNET_TOKENS)


def get_token_by_symbol(network: str, symbol: str) -> TokenInfo | None:
    wanted = str(symbol or "").strip().upper()
    for token in _tokens_for(network).values():
        if token.symbol.upper() == wanted:
            return token
    return None


def get_token_by_address(network: str, address: str) -> TokenInfo | None:
    wanted = str(address or "").strip().lower()
    for token in _tokens_for(network).values():
        if token.l2_address.lower() == wanted:
            return token
    return None


def get_dex_routers(network: str) -> dict[str, dict[str, str]]:
    return dict(DEX_ROUTERS.get(str(network).lower(), {}))


def get_lending_protocols(network: str) -> dict[str, dict[str, str]]:
    return dict(LENDING_PROTOCOLS.get(str(network).lower(), {}))


def get_canvas_config(network: str) -> dict[str, str]:
    key = str(network).lower()
    if key not in CANVAS_CONFIG:
        raise ValueError(f"Scroll Canvas has no contracts on network {network}; use mainnet or sepolia")
    return dict(CANVAS_CONFIG[key])


def get_gateway_for_token(network: str, token: str) -> dict[str, str]:
    """Resolve the L2 gateway handling a token given by symbol or address."""
    info = get_token_by_address(network, token) if str(token).startswith("0x") else get_token_by_symbol(network, token)
    if info is not None and info.l2_address == ZERO_ADDRESS:
        gateway_type = "eth"
    elif info is not None:
        gateway_type = _SYMBOL_GATEWAYS.get(info.symbol.upper(), "standard_erc20")
    else:
        gateway_type = "standard_erc20"
    contract_key = GATEWAY_TYPES[gateway_type]
    addresses = CONTRACT_ADDRESSES.get(str(network).lower(), {})
    return {"gateway_type": gateway_type, "gateway": addresses.get(contract_key, "")}
