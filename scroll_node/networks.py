"""Static Scroll network table and network resolution."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

MAINNET_CHAIN_ID = 534352
SEPOLIA_CHAIN_ID = 534351

DEFAULT_GAS_LIMITS = {
    "transfer": 21_000,
    "token_transfer": 100_000,
    "contract_call": 300_000,
    "bridge": 200_000,
}
BLOCKS_PER_BATCH = 100
NATIVE_CURRENCY = {"name": "Ether", "symbol": "ETH", "decimals": 18}


@dataclass(frozen=True)
class NetworkConfig:
    key: str
    name: str
    chain_id: int
    rpc_url: str
    ws_url: str
    explorer_url: str
    explorer_api_url: str
    bridge_api_url: str
    l1_chain_id: int
    l1_rpc_url: str
    is_testnet: bool

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["native_currency"] = dict(NATIVE_CURRENCY)
        return out


NETWORKS: dict[str, NetworkConfig] = {
    "mainnet": NetworkConfig(
        key="mainnet",
        name="Scroll Mainnet",
        chain_id=MAINNET_CHAIN_ID,
        rpc_url="https://rpc.scroll.io",
        ws_url="wss://wss.scroll.io",
        explorer_url="https://scrollscan.com",
        explorer_api_url="https://api.scrollscan.com/api",
        bridge_api_url="https://mainnet-api-bridge.scroll.io/api",
        l1_chain_id=1,
        l1_rpc_url="https://eth.llamarpc.com",
        is_testnet=False,
    ),
    "sepolia": NetworkConfig(
        key="sepolia",
        name="Scroll Sepolia",
        chain_id=SEPOLIA_CHAIN_ID,
        rpc_url="https://sepolia-rpc.scroll.io",
        ws_url="wss://sepolia-rpc.scroll.io",
        explorer_url="https://sepolia.scrollscan.com",
        explorer_api_url="https://api-sepolia.scrollscan.com/api",
        bridge_api_url="https://sepolia-api-bridge.scroll.io/api",
        l1_chain_id=11155111,
        l1_rpc_url="https://ethereum-sepolia.publicnode.com",
        is_testnet=True,
    ),
}


def get_network_config(name: str) -> NetworkConfig:
    key = str(name or "").strip().lower()
    if key not in NETWORKS:
        raise ValueError(f"Unknown network: {name}. Supported networks: {', '.join(NETWORKS)}")
    return NETWORKS[key]


def is_testnet(name: str) -> bool:
    return get_network_config(name).is_testnet


def get_chain_id(name: str) -> int:
    return get_network_config(name).chain_id


def resolve_network(credentials: Any) -> NetworkConfig:
    """Build the effective network config from NetworkCredentials.

    Known networks start from the static table with caller overrides applied;
    ``custom`` requires an RPC URL and has no L1 endpoint or explorer unless
    the caller supplies them.
    """
    network = str(getattr(credentials, "network", "mainnet") or "mainnet").strip().lower()
    rpc_url = getattr(credentials, "rpc_url", None)
    ws_url = getattr(credentials, "ws_url", None)
    l1_rpc_url = getattr(credentials, "l1_rpc_url", None)
    chain_id = getattr(credentials, "chain_id", None)

    if network == "custom":
        if not rpc_url:
            raise ValueError("custom network requires rpc_url")
        return NetworkConfig(
            key="custom",
            name="Custom Network",
            chain_id=int(chain_id) if chain_id else MAINNET_CHAIN_ID,
            rpc_url=rpc_url,
            ws_url=ws_url or "",
            explorer_url="",
            explorer_api_url="",
            bridge_api_url="",
            l1_chain_id=1,
            l1_rpc_url=l1_rpc_url or "",
            is_testnet=False,
        )

    base = get_network_config(network)
    overrides: dict[str, Any] = {}
    if rpc_url:
        overrides["rpc_url"] = rpc_url
    if ws_url:
        overrides["ws_url"] = ws_url
    if l1_rpc_url:
        overrides["l1_rpc_url"] = l1_rpc_url
    return replace(base, **overrides) if overrides else base
