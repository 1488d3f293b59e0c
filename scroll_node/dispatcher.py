"""Route ``resource.operation`` requests through policy to the resource modules."""

from __future__ import annotations

import logging
import os
import time
from types import ModuleType
from typing import Any, Callable, Mapping

from . import (
    resource_account,
    resource_account_abstraction,
    resource_analytics,
    resource_batch,
    resource_block,
    resource_bridge,
    resource_canvas,
    resource_contract,
    resource_defi,
    resource_event,
    resource_gas,
    resource_multicall,
    resource_nft,
    resource_rollup,
    resource_session_keys,
    resource_subgraph,
    resource_token,
    resource_transaction,
    resource_utility,
)
from .client import ScrollClient, create_scroll_client
from .config import resolve_credentials
from .envelope import build_error_payload, build_ok_payload, error_from_exception
from .error_map import (
    ERR_INVALID_REQUEST,
    ERR_UNKNOWN_OPERATION,
    ERR_UNKNOWN_RESOURCE,
    EXIT_DENIED,
    EXIT_INVALID,
    EXIT_OK,
    ScrollNodeError,
)
from .policy_eval import TIER_READ, evaluate_policy
from .rpc_contract import DEFAULT_TIMEOUT_SECONDS, validate_request
from .session_store import DEFAULT_SESSION_STORE, SESSION_STORE_ENV_VAR, SessionStore

logger = logging.getLogger(__name__)

RESOURCE_MODULES: dict[str, ModuleType] = {
    module.RESOURCE: module
    for module in (
        resource_account,
        resource_transaction,
        resource_token,
        resource_nft,
        resource_contract,
        resource_event,
        resource_block,
        resource_bridge,
        resource_batch,
        resource_rollup,
        resource_gas,
        resource_defi,
        resource_session_keys,
        resource_account_abstraction,
        resource_multicall,
        resource_canvas,
        resource_analytics,
        resource_subgraph,
        resource_utility,
    )
}

ClientFactory = Callable[..., ScrollClient]


def list_operations() -> dict[str, dict[str, dict[str, str]]]:
    """Every resource with its operations, descriptions and policy tiers."""
    out: dict[str, dict[str, dict[str, str]]] = {}
    for name, module in RESOURCE_MODULES.items():
        out[name] = {
            op: {"description": description, "tier": module.OPERATION_TIERS.get(op, TIER_READ)}
            for op, description in module.OPERATIONS.items()
        }
    return out


def operation_tier(module: ModuleType, operation: str, params: dict[str, Any]) -> str:
    resolver = getattr(module, "resolve_tier", None)
    if resolver is not None:
        return resolver(operation, params)
    return module.OPERATION_TIERS.get(operation, TIER_READ)


def operation_requires_signer(module: ModuleType, operation: str, params: dict[str, Any]) -> bool:
    resolver = getattr(module, "requires_signer", None)
    if resolver is not None:
        return bool(resolver(operation, params))
    return operation in module.SIGNER_OPERATIONS


def resolve_session_store(session_store: SessionStore | str | None, env: Mapping[str, str]) -> SessionStore:
    if isinstance(session_store, SessionStore):
        return session_store
    return SessionStore(session_store or env.get(SESSION_STORE_ENV_VAR) or DEFAULT_SESSION_STORE)


def _execute_one(
    module: ModuleType,
    client: ScrollClient,
    operation: str,
    params: dict[str, Any],
    store: SessionStore | None,
) -> Any:
    if module is resource_session_keys:
        return module.execute(client, operation, params, store=store)
    return module.execute(client, operation, params)


def run_node_request(
    req: dict[str, Any],
    *,
    env: Mapping[str, str] | None = None,
    config_path: str | None = None,
    session_store: SessionStore | str | None = None,
    client_factory: ClientFactory = create_scroll_client,
) -> tuple[int, dict[str, Any]]:
    """Run one request and return ``(exit_code, envelope)``.

    A request with ``items`` runs the operation once per params object. Without
    ``continue_on_fail`` the first failure becomes the envelope; with it the
    failing item is reported as ``{"error": message}`` and the run continues.
    """
    valid, validation_message = validate_request(req)
    if not valid:
        method = f"{req.get('resource', '')}.{req.get('operation', '')}" if isinstance(req, dict) else ""
        return EXIT_INVALID, build_error_payload(
            method=method,
            status="error",
            code=ERR_INVALID_REQUEST,
            message=validation_message,
            request=req if isinstance(req, dict) else None,
        )

    resource = req["resource"].strip()
    operation = req["operation"].strip()
    method = f"{resource}.{operation}"

    module = RESOURCE_MODULES.get(resource)
    if module is None:
        return EXIT_INVALID, build_error_payload(
            method=method,
            status="error",
            code=ERR_UNKNOWN_RESOURCE,
            message=f"Unknown resource: {resource}",
            request=req,
            hint=f"available resources: {', '.join(sorted(RESOURCE_MODULES))}",
        )
    if operation not in module.OPERATIONS:
        return EXIT_INVALID, build_error_payload(
            method=method,
            status="error",
            code=ERR_UNKNOWN_OPERATION,
            message=f"Unknown operation: {operation}",
            request=req,
        )

    environ = os.environ if env is None else env
    start = time.perf_counter()
    try:
        network_credentials, api_credentials = resolve_credentials(
            req.get("credentials"), env=environ, config_path=config_path
        )
        client = client_factory(
            network_credentials,
            api_credentials,
            timeout_seconds=float(req.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            context=req.get("context"),
        )
    except (ScrollNodeError, ValueError) as err:
        return error_from_exception(err, method=method, request=req)

    items = req.get("items")
    batch = items is not None
    params_list = items if batch else [req.get("params") or {}]
    continue_on_fail = bool(req.get("continue_on_fail", False))
    store = resolve_session_store(session_store, environ) if module is resource_session_keys else None

    results: list[Any] = []
    policy: dict[str, Any] | None = None
    for idx, params in enumerate(params_list):
        tier = operation_tier(module, operation, params)
        policy = evaluate_policy(
            method=method,
            tier=tier,
            context=client.context,
            requires_signer=operation_requires_signer(module, operation, params),
            has_signer=client.has_signer,
        )
        if not policy["allowed"]:
            logger.info("policy denied %s: %s", method, policy["reason"])
            return EXIT_DENIED, build_error_payload(
                method=method,
                status="denied",
                code=policy["error_code"],
                message=policy["reason"],
                policy=policy,
                request=req,
            )
        try:
            results.append(_execute_one(module, client, operation, params, store))
        except Exception as err:  # noqa: BLE001
            duration_ms = int((time.perf_counter() - start) * 1000)
            if continue_on_fail:
                logger.warning("%s item %d failed: %s", method, idx, err)
                results.append({"error": str(err)})
                continue
            if not isinstance(err, (ScrollNodeError, ValueError)):
                logger.exception("unexpected failure in %s", method)
            exit_code, payload = error_from_exception(err, method=method, request=req, duration_ms=duration_ms)
            payload["policy"] = policy
            return exit_code, payload

    duration_ms = int((time.perf_counter() - start) * 1000)
    return EXIT_OK, build_ok_payload(
        method=method,
        result=results if batch else results[0],
        request=req,
        policy=policy,
        duration_ms=duration_ms,
    )
