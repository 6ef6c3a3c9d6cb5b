from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable
from typing import Any

from eth_utils import keccak, to_hex

from .canonical_json import canonical_json_bytes

CONTENT_HASH_LENGTH = 64
ZERO_HASH = "0x0"

_CONTENT_HASH_RE = re.compile(r"^[0-9a-f]{64}$")


def is_content_hash(value: Any) -> bool:
    """True for a lowercase hex SHA-256 digest, the format uploaders compute over proof media."""
    return isinstance(value, str) and _CONTENT_HASH_RE.fullmatch(value) is not None


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def keccak_hex(data: bytes) -> str:
    return to_hex(keccak(data))


def hash_canonical(value: Any) -> str:
    return keccak_hex(canonical_json_bytes(value))


def _without_fields(value: dict[str, Any], skip: set[str]) -> dict[str, Any]:
    return {k: v for k, v in value.items() if k not in skip}


def compute_decision_hash(decision: dict[str, Any]) -> str:
    return hash_canonical(_without_fields(decision, {"decisionHash", "signature", "signerAddress"}))


def compute_event_hash(event: dict[str, Any]) -> str:
    return hash_canonical(_without_fields(event, {"eventHash"}))


def evidence_root(content_hashes: Iterable[str]) -> str:
    """Keccak merkle root over proof content hashes, in submission order.

    An odd node at any level is paired with itself.
    """
    level = [bytes.fromhex(h) for h in content_hashes]
    if not level:
        return ZERO_HASH

    while len(level) > 1:
        nxt: list[bytes] = []
        for i in range(0, len(level), 2):
            left = level[i]
            right = level[i + 1] if i + 1 < len(level) else left
            nxt.append(keccak(left + right))
        level = nxt

    return to_hex(level[0])
