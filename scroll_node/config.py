"""Credential resolution from YAML config, environment and request overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SCROLL_NODE_CONFIG"
NETWORK_CHOICES = {"mainnet", "sepolia", "custom"}
ENVIRONMENT_CHOICES = {"mainnet", "sepolia"}

NETWORK_ENV_VARS = {
    "network": "SCROLL_NETWORK",
    "rpc_url": "SCROLL_RPC_URL",
    "private_key": "SCROLL_PRIVATE_KEY",
    "chain_id": "SCROLL_CHAIN_ID",
    "explorer_api_key": "SCROLLSCAN_API_KEY",
    "ws_url": "SCROLL_WS_URL",
    "l1_rpc_url": "SCROLL_L1_RPC_URL",
}
API_ENV_VARS = {
    "environment": "SCROLL_NETWORK",
    "scrollscan_api_key": "SCROLLSCAN_API_KEY",
    "bridge_api_endpoint": "SCROLL_BRIDGE_API",
    "subgraph_url": "SCROLL_SUBGRAPH_URL",
    "canvas_api_endpoint": "SCROLL_CANVAS_API",
}


@dataclass(frozen=True)
class NetworkCredentials:
    network: str = "mainnet"
    rpc_url: str | None = None
    private_key: str | None = field(default=None, repr=False)
    chain_id: int | None = None
    explorer_api_key: str | None = field(default=None, repr=False)
    ws_url: str | None = None
    l1_rpc_url: str | None = None


@dataclass(frozen=True)
class ApiCredentials:
    environment: str = "mainnet"
    scrollscan_api_key: str | None = field(default=None, repr=False)
    scrollscan_endpoint: str | None = None
    bridge_api_endpoint: str | None = None
    subgraph_url: str | None = None
    canvas_api_endpoint: str | None = None


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _section_overrides(cls: type, section: Mapping[str, Any] | None) -> dict[str, Any]:
    if not section:
        return {}
    out: dict[str, Any] = {}
    for f in fields(cls):
        for key in (f.name, _camel(f.name)):
            value = section.get(key)
            if value is not None and value != "":
                out[f.name] = value
                break
    return out


def _apply(base: Any, overrides: dict[str, Any]) -> Any:
    return replace(base, **overrides) if overrides else base


def load_config_file(path: str | None) -> dict[str, Any]:
    if not path:
        return {}
    try:
        with open(os.path.expanduser(path), encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as err:
        raise ValueError(f"cannot read config file {path}: {err}") from err
    except yaml.YAMLError as err:
        raise ValueError(f"config file {path} is not valid YAML: {err}") from err
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} must contain a mapping")
    for section in ("network", "api"):
        if section in data and not isinstance(data[section], dict):
            raise ValueError(f"config file section {section!r} must be a mapping")
    logger.debug("loaded config file %s (sections: %s)", path, sorted(data))
    return data


def _env_overrides(mapping: dict[str, str], env: Mapping[str, str]) -> dict[str, Any]:
    return {name: env[var] for name, var in mapping.items() if env.get(var)}


def _validate(network: NetworkCredentials, api: ApiCredentials) -> tuple[NetworkCredentials, ApiCredentials]:
    net_name = str(network.network).strip().lower()
    if net_name not in NETWORK_CHOICES:
        raise ValueError(f"network must be one of {sorted(NETWORK_CHOICES)}")
    chain_id = network.chain_id
    if chain_id is not None and not isinstance(chain_id, int):
        try:
            chain_id = int(str(chain_id).strip(), 0)
        except ValueError as err:
            raise ValueError("chain_id must be an integer") from err
    env_name = str(api.environment).strip().lower()
    if env_name not in ENVIRONMENT_CHOICES:
        env_name = "sepolia" if net_name == "sepolia" else "mainnet"
    return replace(network, network=net_name, chain_id=chain_id), replace(api, environment=env_name)


def resolve_credentials(
    request_credentials: Mapping[str, Any] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    config_path: str | None = None,
) -> tuple[NetworkCredentials, ApiCredentials]:
    """Merge defaults < YAML config < environment < request credentials.

    Request credentials may be flat (network fields) or split into
    ``network`` and ``api`` sections like the YAML file.
    """
    environ = os.environ if env is None else env
    path = config_path or environ.get(CONFIG_ENV_VAR)
    file_data = load_config_file(path)

    network = NetworkCredentials()
    api = ApiCredentials()

    network = _apply(network, _section_overrides(NetworkCredentials, file_data.get("network")))
    api = _apply(api, _section_overrides(ApiCredentials, file_data.get("api")))

    network = _apply(network, _env_overrides(NETWORK_ENV_VARS, environ))
    api = _apply(api, _env_overrides(API_ENV_VARS, environ))

    req = dict(request_credentials or {})
    net_section = req.get("network") if isinstance(req.get("network"), dict) else None
    api_section = req.get("api") if isinstance(req.get("api"), dict) else None
    flat = {k: v for k, v in req.items() if k not in {"network", "api"} or not isinstance(v, dict)}
    network = _apply(network, _section_overrides(NetworkCredentials, flat))
    network = _apply(network, _section_overrides(NetworkCredentials, net_section))
    api = _apply(api, _section_overrides(ApiCredentials, flat))
    api = _apply(api, _section_overrides(ApiCredentials, api_section))

    if not api.scrollscan_api_key and network.explorer_api_key:
        api = replace(api, scrollscan_api_key=network.explorer_api_key)
    if "environment" not in (file_data.get("api") or {}) and "environment" not in (api_section or {}):
        api = replace(api, environment=network.network)

    return _validate(network, api)
