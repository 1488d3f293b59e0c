"""GraphQL queries against a configured subgraph endpoint."""

from __future__ import annotations

import re
from typing import Any

from . import params as p
from .client import ScrollClient
from .error_map import HttpApiError, MissingCredentialsError, UnknownOperationError

RESOURCE = "subgraph"
OPERATIONS = {
    "querySubgraph": "Run a GraphQL query with variables",
    "customGraphQLQuery": "Alias of querySubgraph",
    "getIndexedData": "List entities of one type with first/skip/orderBy",
    "getSubgraphStatus": "Indexing head, deployment and error flag from _meta",
}
OPERATION_TIERS: dict[str, str] = {}
SIGNER_OPERATIONS: set[str] = set()

IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
DEFAULT_FIELDS = ["id"]
META_QUERY = "{ _meta { block { number hash timestamp } deployment hasIndexingErrors } }"
MAX_FIRST = 1000


def _subgraph_url(client: ScrollClient, params: dict[str, Any]) -> str:
    url = p.get_str(params, "subgraph_url") or client.subgraph_url
    if not url:
        raise MissingCredentialsError("Subgraph URL required. Pass subgraph_url or configure it in the API credentials.")
    return url


def run_graphql(client: ScrollClient, url: str, query: str, variables: dict[str, Any] | None = None) -> Any:
    """POST a GraphQL document; a non-empty ``errors`` member raises HttpApiError."""
    body: dict[str, Any] = {"query": query}
    if variables:
        body["variables"] = variables
    response = client.http_post_json(url, body, headers={"Content-Type": "application/json"})
    if not isinstance(response, dict):
        raise HttpApiError("Subgraph returned a non-object response", url=url, response=response)
    errors = response.get("errors")
    if errors:
        first = errors[0].get("message") if isinstance(errors[0], dict) else errors[0]
        raise HttpApiError(f"GraphQL error: {first}", url=url, response={"errors": errors})
    return response.get("data")


def _ident(value: str, field: str) -> str:
    if not IDENT_RE.fullmatch(value):
        raise ValueError(f"{field} must be a GraphQL identifier, got {value!r}")
    return value


def _query_subgraph(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    url = _subgraph_url(client, params)
    query = p.get_str(params, "query", required=True)
    variables = p.get_json(params, "variables", {})
    if not isinstance(variables, dict):
        raise ValueError("variables must be a JSON object")
    return {"subgraph_url": url, "data": run_graphql(client, url, query, variables)}


def _get_indexed_data(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    url = _subgraph_url(client, params)
    entity = _ident(p.get_str(params, "entity_type", required=True), "entity_type")
    fields = [_ident(str(f), "fields") for f in p.get_list(params, "fields")] or DEFAULT_FIELDS
    first = min(p.get_int(params, "first", p.lookup(params, "limit", 100), minimum=1), MAX_FIRST)
    skip = p.get_int(params, "skip", 0)
    order_by = p.get_str(params, "order_by")
    direction = p.get_choice(params, "order_direction", ("asc", "desc"), "desc")

    arguments = [f"first: {first}", f"skip: {skip}"]
    if order_by:
        arguments.append(f"orderBy: {_ident(order_by, 'order_by')}")
        arguments.append(f"orderDirection: {direction}")
    query = f"{{ {entity}({', '.join(arguments)}) {{ {' '.join(fields)} }} }}"

    data = run_graphql(client, url, query) or {}
    items = data.get(entity) or []
    return {
        "subgraph_url": url,
        "entity_type": entity,
        "first": first,
        "skip": skip,
        "order_by": order_by,
        "order_direction": direction if order_by else None,
        "count": len(items),
        "data": items,
    }


def _get_subgraph_status(client: ScrollClient, params: dict[str, Any]) -> dict[str, Any]:
    url = _subgraph_url(client, params)
    meta = (run_graphql(client, url, META_QUERY) or {}).get("_meta") or {}
    block = meta.get("block") or {}
    return {
        "subgraph_url": url,
        "block_number": block.get("number"),
        "block_hash": block.get("hash"),
        "block_timestamp": block.get("timestamp"),
        "deployment": meta.get("deployment"),
        "has_indexing_errors": bool(meta.get("hasIndexingErrors", False)),
        "healthy": bool(meta) and not meta.get("hasIndexingErrors", False),
    }


_HANDLERS = {
    "querySubgraph": _query_subgraph,
    "customGraphQLQuery": _query_subgraph,
    "getIndexedData": _get_indexed_data,
    "getSubgraphStatus": _get_subgraph_status,
}


def execute(client: ScrollClient, operation: str, params: dict[str, Any]) -> dict[str, Any]:
    handler = _HANDLERS.get(operation)
    if handler is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")
    return handler(client, params)
