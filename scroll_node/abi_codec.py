"""ABI parsing plus encode/decode helpers on top of eth-abi."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from eth_abi import decode, encode, is_encodable_type
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import keccak, to_checksum_address

from .error_map import ERR_ABI_DECODE_FAILED, ERR_ABI_ENCODE_FAILED, AbiCodecError

HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")
ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
NAME_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
ARRAY_SUFFIX_RE = re.compile(r"^((?:\[[0-9]*\])*)")
INT_TYPE_RE = re.compile(r"^(u?int)([0-9]*)((?:\[[0-9]*\])*)$")

FRAGMENT_KINDS = {"function", "event", "constructor", "error", "fallback", "receive"}
IGNORED_WORDS = {"memory", "calldata", "storage", "payable"}
MUTABILITY_WORDS = {"view", "pure", "payable", "nonpayable"}
VISIBILITY_WORDS = {"external", "public", "internal", "private"}


@dataclass(frozen=True)
class AbiParam:
    type: str
    name: str = ""
    indexed: bool = False
    components: tuple["AbiParam", ...] = ()

    @property
    def is_dynamic(self) -> bool:
        if self.type in {"string", "bytes"} or self.type.endswith("[]"):
            return True
        if self.type.startswith("("):
            return any(c.is_dynamic for c in self.components)
        return False


@dataclass(frozen=True)
class AbiFragment:
    kind: str
    name: str
    inputs: tuple[AbiParam, ...]
    outputs: tuple[AbiParam, ...] = ()
    state_mutability: str = "nonpayable"
    anonymous: bool = False

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def selector(self) -> str:
        return "0x" + keccak(text=self.signature)[:4].hex()

    @property
    def topic0(self) -> str:
        return "0x" + keccak(text=self.signature).hex()

    @property
    def is_read_only(self) -> bool:
        return self.state_mutability in {"view", "pure"}


def _split_csv(raw: str) -> list[str]:
    text = raw.strip()
    if not text:
        return []
    out: list[str] = []
    depth = 0
    token_start = 0
    for idx, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValueError("unbalanced parentheses in type list")
        elif ch == "," and depth == 0:
            out.append(text[token_start:idx].strip())
            token_start = idx + 1
    if depth != 0:
        raise ValueError("unbalanced parentheses in type list")
    out.append(text[token_start:].strip())
    if any(not item for item in out):
        raise ValueError("empty type entry in list")
    return out


def _matching_paren(text: str, start: int) -> int:
    depth = 0
    for idx in range(start, len(text)):
        if text[idx] == "(":
            depth += 1
        elif text[idx] == ")":
            depth -= 1
            if depth == 0:
                return idx
    raise ValueError(f"unbalanced parentheses in: {text}")


def parse_type(raw_type: str) -> str:
    """Return the canonical form of an ABI type, e.g. ``uint`` -> ``uint256``."""
    t = str(raw_type).strip()
    if not t:
        raise ValueError("type cannot be empty")
    if t.startswith("tuple("):
        t = t[len("tuple"):]
    if t.startswith("("):
        param = _parse_param(t)
        return param.type
    m = INT_TYPE_RE.fullmatch(t)
    if m and not m.group(2):
        t = f"{m.group(1)}256{m.group(3)}"
    if t.startswith("byte") and not t.startswith("bytes"):
        t = "bytes1" + t[len("byte"):]
    if not is_encodable_type(t):
        raise ValueError(f"unsupported ABI type: {raw_type}")
    return t


def parse_types(types: Any) -> list[AbiParam]:
    if isinstance(types, str):
        raw_items = _split_csv(types)
    elif isinstance(types, list) and all(isinstance(item, str) for item in types):
        raw_items = [item.strip() for item in types]
    elif isinstance(types, (list, tuple)) and all(isinstance(item, AbiParam) for item in types):
        return list(types)
    else:
        raise ValueError("types must be a comma-separated string or array of strings")
    return [_parse_param(item) for item in raw_items]


def _parse_param(text: str) -> AbiParam:
    raw = text.strip()
    if raw.startswith("tuple("):
        raw = raw[len("tuple"):]
    if raw.startswith("("):
        close = _matching_paren(raw, 0)
        components = tuple(_parse_param(item) for item in _split_csv(raw[1:close]))
        rest = raw[close + 1:]
        suffix = ARRAY_SUFFIX_RE.match(rest).group(1)
        type_str = "(" + ",".join(c.type for c in components) + ")" + suffix
        words = rest[len(suffix):].split()
        if not is_encodable_type(type_str):
            raise ValueError(f"unsupported ABI type: {raw}")
    else:
        parts = raw.split()
        if not parts:
            raise ValueError("parameter cannot be empty")
        components = ()
        type_str = parse_type(parts[0])
        words = parts[1:]

    indexed = False
    name = ""
    for word in words:
        if word == "indexed":
            indexed = True
        elif word in IGNORED_WORDS:
            continue
        elif NAME_RE.fullmatch(word):
            name = word
        else:
            raise ValueError(f"invalid parameter declaration: {text}")
    return AbiParam(type=type_str, name=name, indexed=indexed, components=components)


def _param_from_json(item: dict[str, Any]) -> AbiParam:
    raw_type = str(item.get("type", "")).strip()
    components: tuple[AbiParam, ...] = ()
    if raw_type.startswith("tuple"):
        components = tuple(_param_from_json(c) for c in item.get("components", []))
        type_str = "(" + ",".join(c.type for c in components) + ")" + raw_type[len("tuple"):]
    else:
        type_str = parse_type(raw_type)
    return AbiParam(
        type=type_str,
        name=str(item.get("name") or ""),
        indexed=bool(item.get("indexed", False)),
        components=components,
    )


def _fragment_from_json(item: dict[str, Any]) -> AbiFragment | None:
    kind = str(item.get("type", "function"))
    if kind not in FRAGMENT_KINDS:
        raise ValueError(f"unsupported ABI entry type: {kind}")
    if kind in {"fallback", "receive"}:
        return None
    mutability = item.get("stateMutability")
    if not mutability:
        if item.get("constant"):
            mutability = "view"
        elif item.get("payable"):
            mutability = "payable"
        else:
            mutability = "nonpayable"
    return AbiFragment(
        kind=kind,
        name=str(item.get("name") or ("constructor" if kind == "constructor" else "")),
        inputs=tuple(_param_from_json(p) for p in item.get("inputs", [])),
        outputs=tuple(_param_from_json(p) for p in item.get("outputs", []) or []),
        state_mutability=str(mutability),
        anonymous=bool(item.get("anonymous", False)),
    )


def parse_fragment(text: str, *, default_kind: str = "function") -> AbiFragment:
    """Parse a human-readable declaration like ``function balanceOf(address) view returns (uint256)``."""
    raw = str(text).strip().rstrip(";")
    if not raw:
        raise ValueError("fragment cannot be empty")
    kind = default_kind
    m_kind = re.match(r"^(function|event|constructor|error)\b", raw)
    if m_kind:
        kind = m_kind.group(1)
        raw = raw[len(kind):].strip()

    open_idx = raw.find("(")
    if open_idx < 0:
        raise ValueError("signature must look like functionName(type1,type2,...)")
    name = raw[:open_idx].strip()
    if kind == "constructor" and not name:
        name = "constructor"
    if not NAME_RE.fullmatch(name):
        raise ValueError(f"invalid fragment name: {name!r}")
    close_idx = _matching_paren(raw, open_idx)
    inputs = tuple(_parse_param(item) for item in _split_csv(raw[open_idx + 1:close_idx]))

    tail = raw[close_idx + 1:].strip()
    outputs: tuple[AbiParam, ...] = ()
    returns_idx = tail.find("returns")
    if returns_idx >= 0:
        ret = tail[returns_idx + len("returns"):].strip()
        if not ret.startswith("("):
            raise ValueError("returns clause must be parenthesized")
        ret_close = _matching_paren(ret, 0)
        outputs = tuple(_parse_param(item) for item in _split_csv(ret[1:ret_close]))
        tail = tail[:returns_idx]

    modifiers = tail.split()
    mutability = "nonpayable"
    anonymous = False
    for word in modifiers:
        if word in MUTABILITY_WORDS:
            mutability = word
        elif word == "anonymous":
            anonymous = True
        elif word not in VISIBILITY_WORDS:
            raise ValueError(f"unexpected modifier in fragment: {word}")
    return AbiFragment(
        kind=kind,
        name=name,
        inputs=inputs,
        outputs=outputs,
        state_mutability=mutability,
        anonymous=anonymous,
    )


def parse_function_signature(signature: str) -> AbiFragment:
    fragment = parse_fragment(signature, default_kind="function")
    if fragment.kind != "function":
        raise ValueError("expected a function signature")
    return fragment


def parse_event_declaration(declaration: str) -> AbiFragment:
    fragment = parse_fragment(declaration, default_kind="event")
    if fragment.kind != "event":
        raise ValueError("expected an event declaration")
    return fragment


def parse_abi(abi: Any) -> list[AbiFragment]:
    """Accept a JSON ABI (list or string), a list of human-readable fragments, or one fragment."""
    if isinstance(abi, str):
        text = abi.strip()
        if not text:
            raise ValueError("abi cannot be empty")
        if text[0] in "[{":
            try:
                abi = json.loads(text)
            except json.JSONDecodeError as err:
                raise ValueError(f"abi is not valid JSON: {err}") from err
        else:
            abi = [line for line in re.split(r"[\n;]", text) if line.strip()]
    if isinstance(abi, dict):
        abi = abi.get("abi", [abi])
    if not isinstance(abi, list):
        raise ValueError("abi must be a JSON array or list of signatures")

    fragments: list[AbiFragment] = []
    for idx, item in enumerate(abi):
        if isinstance(item, AbiFragment):
            fragments.append(item)
        elif isinstance(item, str):
            fragments.append(parse_fragment(item))
        elif isinstance(item, dict):
            fragment = _fragment_from_json(item)
            if fragment is not None:
                fragments.append(fragment)
        else:
            raise ValueError(f"abi[{idx}] must be an object or signature string")
    return fragments


def find_function(abi: Any, name_or_signature: str) -> AbiFragment:
    fragments = abi if isinstance(abi, list) and all(isinstance(f, AbiFragment) for f in abi) else parse_abi(abi)
    wanted = str(name_or_signature).strip()
    functions = [f for f in fragments if f.kind == "function"]
    if "(" in wanted:
        target = parse_function_signature(wanted).signature
        matches = [f for f in functions if f.signature == target]
    else:
        matches = [f for f in functions if f.name == wanted]
    if not matches:
        raise ValueError(f"function not found in abi: {wanted}")
    if len(matches) > 1:
        raise ValueError(f"ambiguous function name {wanted}; pass the full signature")
    return matches[0]


def find_event(abi: Any, name_or_signature: str) -> AbiFragment:
    fragments = abi if isinstance(abi, list) and all(isinstance(f, AbiFragment) for f in abi) else parse_abi(abi)
    wanted = str(name_or_signature).strip()
    for fragment in fragments:
        if fragment.kind != "event":
            continue
        if fragment.name == wanted or fragment.signature == wanted:
            return fragment
    raise ValueError(f"event not found in abi: {wanted}")


def _parse_int_like(value: Any, *, signed: bool) -> int:
    if isinstance(value, bool):
        raise ValueError("numeric value cannot be boolean")
    if isinstance(value, int):
        if value < 0 and not signed:
            raise ValueError("unsigned integer cannot be negative")
        return value
    if not isinstance(value, str):
        raise ValueError("numeric value must be int or string")
    raw = value.strip()
    if not raw:
        raise ValueError("numeric value cannot be empty")

    negative = raw.startswith("-")
    if negative:
        if not signed:
            raise ValueError("unsigned integer cannot be negative")
        raw = raw[1:]
    if raw.startswith("0x"):
        if len(raw) == 2:
            raise ValueError("hex integer cannot be empty")
        out = int(raw, 16)
    else:
        out = int(raw, 10)
    return -out if negative else out


def _parse_hex_bytes(value: Any, *, field: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str) or not HEX_RE.fullmatch(value) or len(value) % 2 != 0:
        raise ValueError(f"{field} must be even-length 0x-prefixed hex")
    return bytes.fromhex(value[2:])


def _element_param(param: AbiParam) -> AbiParam:
    base = param.type[: param.type.rindex("[")]
    return AbiParam(type=base, name=param.name, components=param.components)


def coerce_value(param: AbiParam, value: Any) -> Any:
    """Convert a JSON-ish argument into the Python value eth-abi expects."""
    t = param.type
    if t.endswith("]"):
        if isinstance(value, str) and value.strip().startswith("["):
            value = json.loads(value)
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"{param.name or t} must be an array")
        inner = _element_param(param)
        return [coerce_value(inner, item) for item in value]
    if t.startswith("("):
        components = param.components or tuple(_parse_param(item) for item in _split_csv(t[1:-1]))
        if isinstance(value, dict):
            missing = [c.name for c in components if c.name not in value]
            if missing:
                raise ValueError(f"tuple value missing fields: {missing}")
            value = [value[c.name] for c in components]
        if not isinstance(value, (list, tuple)) or len(value) != len(components):
            raise ValueError(f"{param.name or t} must be a tuple of {len(components)} values")
        return tuple(coerce_value(c, v) for c, v in zip(components, value))
    if t == "address":
        if not isinstance(value, str) or not ADDRESS_RE.fullmatch(value.strip()):
            raise ValueError(f"invalid address value: {value}")
        return to_checksum_address(value.strip().lower())
    if t == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
            return value.strip().lower() == "true"
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise ValueError(f"invalid bool value: {value}")
    if t.startswith("uint"):
        return _parse_int_like(value, signed=False)
    if t.startswith("int"):
        return _parse_int_like(value, signed=True)
    if t == "bytes" or t.startswith("bytes"):
        return _parse_hex_bytes(value, field=param.name or t)
    if t == "string":
        return value if isinstance(value, str) else str(value)
    return value


def to_jsonable(param: AbiParam, value: Any) -> Any:
    t = param.type
    if t.endswith("]"):
        inner = _element_param(param)
        return [to_jsonable(inner, item) for item in value]
    if t.startswith("("):
        components = param.components or tuple(_parse_param(item) for item in _split_csv(t[1:-1]))
        items = [to_jsonable(c, v) for c, v in zip(components, value)]
        if components and all(c.name for c in components):
            return {c.name: item for c, item in zip(components, items)}
        return items
    if t == "address":
        return to_checksum_address(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def encode_args(types_spec: Any, args: list[Any]) -> str:
    params = parse_types(types_spec)
    if len(params) != len(args):
        raise ValueError(f"argument count mismatch: expected {len(params)}, got {len(args)}")
    values = [coerce_value(p, a) for p, a in zip(params, args)]
    try:
        return "0x" + encode([p.type for p in params], values).hex()
    except (EncodingError, TypeError, OverflowError) as err:
        raise AbiCodecError(f"abi encode failed: {err}", error_code=ERR_ABI_ENCODE_FAILED) from err


def decode_values(types_spec: Any, data_hex: Any) -> list[Any]:
    params = parse_types(types_spec)
    data = _parse_hex_bytes(data_hex, field="data")
    if not params:
        return []
    try:
        return list(decode([p.type for p in params], data))
    except (DecodingError, OverflowError, ValueError) as err:
        raise AbiCodecError(f"abi decode failed: {err}", error_code=ERR_ABI_DECODE_FAILED) from err


def function_selector(signature: str) -> str:
    return parse_function_signature(signature).selector


def event_topic0(event_signature_or_declaration: str) -> str:
    return parse_event_declaration(event_signature_or_declaration).topic0


def encode_function_call(fragment: AbiFragment, args: list[Any]) -> str:
    if len(fragment.inputs) != len(args):
        raise ValueError(
            f"argument count mismatch for {fragment.signature}: expected {len(fragment.inputs)}, got {len(args)}"
        )
    encoded = encode_args(list(fragment.inputs), args)
    return fragment.selector + encoded[2:]


def encode_call(signature: str, args: list[Any]) -> dict[str, Any]:
    fragment = parse_function_signature(signature)
    return {
        "signature": fragment.signature,
        "selector": fragment.selector,
        "calldata": encode_function_call(fragment, list(args)),
    }


def decode_output(types_spec: Any, data_hex: str) -> dict[str, Any]:
    params = parse_types(types_spec)
    values = decode_values(params, data_hex)
    return {
        "types": [p.type for p in params],
        "values": [to_jsonable(p, v) for p, v in zip(params, values)],
    }


def decode_function_result(fragment: AbiFragment, data_hex: str) -> Any:
    """Decoded outputs as JSON values; a single output is unwrapped."""
    values = decode_values(list(fragment.outputs), data_hex)
    out = [to_jsonable(p, v) for p, v in zip(fragment.outputs, values)]
    if len(out) == 1:
        return out[0]
    if fragment.outputs and all(p.name for p in fragment.outputs):
        return {p.name: v for p, v in zip(fragment.outputs, out)}
    return out


def decode_log(
    event: str | AbiFragment,
    topics: list[str],
    data_hex: str,
    *,
    anonymous: bool = False,
) -> dict[str, Any]:
    if not isinstance(topics, list) or not all(isinstance(t, str) and HEX_RE.fullmatch(t) for t in topics):
        raise ValueError("topics must be an array of 0x-prefixed hex strings")

    fragment = event if isinstance(event, AbiFragment) else parse_event_declaration(event)
    anonymous = anonymous or fragment.anonymous
    expected_topic0 = fragment.topic0

    topic_cursor = 0
    if not anonymous:
        if not topics:
            raise ValueError("missing topic0 for non-anonymous event")
        if topics[0].lower() != expected_topic0.lower():
            raise ValueError("topic0 does not match event signature")
        topic_cursor = 1

    indexed = [p for p in fragment.inputs if p.indexed]
    if len(topics) - topic_cursor < len(indexed):
        raise ValueError("insufficient indexed topics for event declaration")

    non_indexed = [p for p in fragment.inputs if not p.indexed]
    non_indexed_values = decode_values(non_indexed, data_hex or "0x")
    non_idx_cursor = 0

    args_out: list[dict[str, Any]] = []
    for idx, param in enumerate(fragment.inputs):
        item: dict[str, Any] = {
            "index": idx,
            "name": param.name or f"arg{idx}",
            "type": param.type,
            "indexed": param.indexed,
        }
        if param.indexed:
            topic_word = topics[topic_cursor]
            topic_cursor += 1
            if param.is_dynamic or param.type.startswith("("):
                item["value_hash"] = topic_word
            else:
                word = _parse_hex_bytes(topic_word, field="topic").rjust(32, b"\x00")[-32:]
                item["value"] = to_jsonable(param, decode_values([param], "0x" + word.hex())[0])
        else:
            item["value"] = to_jsonable(param, non_indexed_values[non_idx_cursor])
            non_idx_cursor += 1
        args_out.append(item)

    return {
        "event": fragment.name,
        "signature": fragment.signature,
        "topic0": expected_topic0,
        "anonymous": anonymous,
        "args": args_out,
    }


def decode_calldata(abi_or_signature: Any, data_hex: str) -> dict[str, Any]:
    data = _parse_hex_bytes(data_hex, field="data")
    if len(data) < 4:
        raise ValueError("calldata shorter than a 4-byte selector")
    selector = "0x" + data[:4].hex()

    candidates = parse_abi(abi_or_signature)
    functions = [f for f in candidates if f.kind == "function" and f.selector == selector]
    if not functions:
        raise ValueError(f"no function in abi matches selector {selector}")
    fragment = functions[0]

    values = decode_values(list(fragment.inputs), "0x" + data[4:].hex())
    return {
        "function": fragment.name,
        "signature": fragment.signature,
        "selector": selector,
        "args": [
            {"index": idx, "name": p.name or f"arg{idx}", "type": p.type, "value": to_jsonable(p, v)}
            for idx, (p, v) in enumerate(zip(fragment.inputs, values))
        ],
    }


def run_abi_operation(request: dict[str, Any]) -> tuple[bool, dict[str, Any], str]:
    if not isinstance(request, dict):
        return False, {}, "abi request must be an object"

    operation = str(request.get("operation", "")).strip().lower()
    try:
        if operation == "encode_call":
            signature = request.get("signature")
            args = request.get("args", [])
            if not isinstance(signature, str) or not signature.strip():
                return False, {}, "encode_call requires non-empty signature"
            if not isinstance(args, list):
                return False, {}, "encode_call args must be an array"
            return True, encode_call(signature, args), ""

        if operation == "encode_args":
            types = request.get("types")
            args = request.get("args", [])
            if types is None or not isinstance(args, list):
                return False, {}, "encode_args requires types and an args array"
            return True, {"data": encode_args(types, args)}, ""

        if operation == "decode_output":
            types = request.get("types")
            data = request.get("data")
            if types is None:
                return False, {}, "decode_output requires types"
            if not isinstance(data, str):
                return False, {}, "decode_output requires data hex string"
            return True, decode_output(types, data), ""

        if operation == "decode_log":
            event_decl = request.get("event")
            topics = request.get("topics")
            data = request.get("data")
            if not isinstance(event_decl, str) or not event_decl.strip():
                return False, {}, "decode_log requires event declaration"
            if not isinstance(topics, list):
                return False, {}, "decode_log topics must be an array"
            if not isinstance(data, str):
                return False, {}, "decode_log requires data hex string"
            anonymous = bool(request.get("anonymous", False))
            return True, decode_log(event_decl, topics, data, anonymous=anonymous), ""

        if operation == "decode_calldata":
            abi = request.get("abi") or request.get("signature")
            data = request.get("data")
            if abi is None or not isinstance(data, str):
                return False, {}, "decode_calldata requires abi/signature and data"
            return True, decode_calldata(abi, data), ""

        if operation == "function_selector":
            signature = request.get("signature")
            if not isinstance(signature, str) or not signature.strip():
                return False, {}, "function_selector requires non-empty signature"
            return True, {"selector": function_selector(signature)}, ""

        if operation == "event_topic0":
            event_sig = request.get("event")
            if not isinstance(event_sig, str) or not event_sig.strip():
                return False, {}, "event_topic0 requires event declaration/signature"
            return True, {"topic0": event_topic0(event_sig)}, ""
    except (ValueError, json.JSONDecodeError) as err:
        return False, {}, str(err)

    return (
        False,
        {},
        "abi operation must be one of "
        "encode_call|encode_args|decode_output|decode_log|decode_calldata|function_selector|event_topic0",
    )
