from trade_protocol import (
    ZERO_HASH,
    compute_decision_hash,
    evidence_root,
    hash_canonical,
    is_content_hash,
    keccak_hex,
    sha256_hex,
)


def test_hashing_is_stable() -> None:
    payload = {"foo": "bar", "n": 1}
    assert hash_canonical(payload) == hash_canonical({"n": 1, "foo": "bar"})
    assert hash_canonical(payload).startswith("0x")
    assert len(hash_canonical(payload)) == 66


def test_content_hash_format() -> None:
    digest = sha256_hex(b"finish-line.jpg")

    assert len(digest) == 64
    assert is_content_hash(digest)
    assert not is_content_hash(digest.upper())
    assert not is_content_hash(digest[:-1])
    assert not is_content_hash("0x" + digest[2:])
    assert not is_content_hash("g" * 64)
    assert not is_content_hash(None)


def test_decision_hash_ignores_signature_fields() -> None:
    decision = {"decisionId": "d1", "outcome": "auto_released", "winnerId": "alice"}
    signed = dict(decision, decisionHash="0x1", signerAddress="0xabc", signature="0xdef")

    assert compute_decision_hash(decision) == compute_decision_hash(signed)
    assert compute_decision_hash(decision) != compute_decision_hash(dict(decision, winnerId="bob"))


def test_evidence_root() -> None:
    a = sha256_hex(b"a")
    b = sha256_hex(b"b")
    c = sha256_hex(b"c")

    assert evidence_root([]) == ZERO_HASH
    assert evidence_root([a]) == "0x" + a

    ab = keccak_hex(bytes.fromhex(a) + bytes.fromhex(b))
    assert evidence_root([a, b]) == ab
    assert evidence_root([a, b]) != evidence_root([b, a])

    cc = keccak_hex(bytes.fromhex(c) + bytes.fromhex(c))
    expected = keccak_hex(bytes.fromhex(ab[2:]) + bytes.fromhex(cc[2:]))
    assert evidence_root([a, b, c]) == expected
