from __future__ import annotations

from typing import Any

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address

from .hashing import compute_decision_hash


def sign_hash_eip191(private_key: str, digest_hex: str) -> str:
    message = encode_defunct(hexstr=digest_hex)
    signed = Account.sign_message(message, private_key=private_key)
    raw = signed.signature.hex()
    return raw if raw.startswith("0x") else f"0x{raw}"


def recover_signer_eip191(digest_hex: str, signature: str) -> str:
    message = encode_defunct(hexstr=digest_hex)
    signer = Account.recover_message(message, signature=signature)
    return to_checksum_address(signer)


def sign_decision(private_key: str, decision: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``decision`` carrying its hash, signer address and EIP-191 signature."""
    signed = dict(decision)
    signed["decisionHash"] = compute_decision_hash(signed)
    signed["signerAddress"] = Account.from_key(private_key).address
    signed["signature"] = sign_hash_eip191(private_key, signed["decisionHash"])
    return signed


def verify_decision_signature(decision: dict[str, Any], expected_address: str | None = None) -> bool:
    signature = decision.get("signature")
    digest = decision.get("decisionHash")
    if not signature or not digest:
        return False
    if compute_decision_hash(decision) != digest:
        return False

    recovered = recover_signer_eip191(digest, signature)
    expected = expected_address or decision.get("signerAddress")
    if not expected:
        return False
    return recovered == to_checksum_address(expected)
