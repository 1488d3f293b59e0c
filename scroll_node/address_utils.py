"""Address helpers built on eth-utils and rlp."""

from __future__ import annotations

import re
from typing import Any

import rlp
from eth_utils import is_address, keccak
from eth_utils import to_checksum_address as _to_checksum

from .contracts import ZERO_ADDRESS

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
HEX32_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)


def is_valid_address(value: Any) -> bool:
    """Format check; mixed-case input must also carry a valid checksum."""
    return isinstance(value, str) and bool(ADDRESS_RE.fullmatch(value)) and is_address(value)


def to_checksum_address(value: str) -> str:
    if not isinstance(value, str) or not ADDRESS_RE.fullmatch(value):
        raise ValueError(f"Invalid address: {value}")
    return _to_checksum(value.lower())


def require_address(value: Any, *, field: str = "address") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required")
    raw = value.strip()
    if not ADDRESS_RE.fullmatch(raw):
        raise ValueError(f"Invalid {field}: {raw}")
    return _to_checksum(raw.lower())


def is_zero_address(value: str) -> bool:
    return str(value).lower() == ZERO_ADDRESS


def shorten_address(value: str, chars: int = 4) -> str:
    addr = to_checksum_address(value)
    return f"{addr[:chars + 2]}...{addr[-chars:]}"


def addresses_equal(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def is_valid_private_key(value: Any) -> bool:
    if not isinstance(value, str) or not PRIVATE_KEY_RE.fullmatch(value.strip()):
        return False
    raw = value.strip()
    scalar = int(raw[2:] if raw.startswith("0x") else raw, 16)
    return 0 < scalar < SECP256K1_N


def pad_address(value: str) -> str:
    """Left-pad an address into a 32-byte log topic."""
    addr = to_checksum_address(value)
    return "0x" + addr[2:].lower().rjust(64, "0")


def topic_to_address(topic: str) -> str:
    if not isinstance(topic, str) or not HEX32_RE.fullmatch(topic):
        raise ValueError(f"Invalid topic: {topic}")
    return _to_checksum("0x" + topic[-40:].lower())


def compute_create2_address(deployer: str, salt: str, init_code_hash: str) -> str:
    if not HEX32_RE.fullmatch(str(salt)):
        raise ValueError("salt must be a 32-byte hex string")
    if not HEX32_RE.fullmatch(str(init_code_hash)):
        raise ValueError("init_code_hash must be a 32-byte hex string")
    preimage = b"\xff" + bytes.fromhex(to_checksum_address(deployer)[2:]) + bytes.fromhex(salt[2:])
    preimage += bytes.fromhex(init_code_hash[2:])
    return _to_checksum("0x" + keccak(preimage)[-20:].hex())


def compute_create_address(deployer: str, nonce: int) -> str:
    """Address of a contract created by ``deployer`` at ``nonce`` (keccak of rlp([sender, nonce]))."""
    if nonce < 0:
        raise ValueError("nonce must be >= 0")
    encoded = rlp.encode([bytes.fromhex(to_checksum_address(deployer)[2:]), nonce])
    return _to_checksum("0x" + keccak(encoded)[-20:].hex())
