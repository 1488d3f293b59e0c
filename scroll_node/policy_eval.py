"""Policy evaluation for resource operations."""

from __future__ import annotations

from typing import Any

from .error_map import ERR_POLICY_DENIED

TIER_READ = "read"
TIER_LOCAL_SENSITIVE = "local-sensitive"
TIER_BROADCAST = "broadcast"
MIN_CONFIRMATION_TOKEN_LEN = 8


def _denied(method: str, tier: str, reason: str) -> dict[str, Any]:
    return {
        "allowed": False,
        "method": method,
        "tier": tier,
        "error_code": ERR_POLICY_DENIED,
        "reason": reason,
    }


def evaluate_policy(
    *,
    method: str,
    tier: str,
    context: dict[str, Any],
    requires_signer: bool = False,
    has_signer: bool = False,
) -> dict[str, Any]:
    if tier == TIER_LOCAL_SENSITIVE and not bool(context.get("allow_local_sensitive", False)):
        return _denied(method, tier, "local-sensitive operation requires allow_local_sensitive=true")

    if tier == TIER_BROADCAST:
        if not bool(context.get("allow_broadcast", False)):
            return _denied(method, tier, "broadcast operation requires allow_broadcast=true")
        confirmation = str(context.get("confirmation_token", "")).strip()
        if confirmation and len(confirmation) < MIN_CONFIRMATION_TOKEN_LEN:
            return _denied(
                method,
                tier,
                f"broadcast operation requires confirmation_token length >= {MIN_CONFIRMATION_TOKEN_LEN}",
            )

    if requires_signer and not has_signer:
        return _denied(method, tier, "operation requires a configured private key")

    return {
        "allowed": True,
        "method": method,
        "tier": tier,
        "error_code": None,
        "reason": "allowed",
    }
