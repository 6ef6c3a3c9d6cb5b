from decimal import Decimal

from trade_protocol import Transfer, canonical_json_bytes, canonical_json_dumps


def test_canonical_json_is_deterministic() -> None:
    a = {"z": 1, "a": {"y": 2, "x": 3.0}, "list": [{"b": Decimal("1.50"), "a": 1}]}
    b = {"list": [{"a": 1, "b": Decimal("1.50")}], "a": {"x": 3, "y": 2}, "z": 1}

    assert canonical_json_dumps(a) == canonical_json_dumps(b)
    assert canonical_json_dumps(a) == '{"a":{"x":3,"y":2},"list":[{"a":1,"b":"1.50"}],"z":1}'


def test_canonical_json_accepts_models() -> None:
    transfer = Transfer(to="alice", amount="20", reason="votes_converged")

    assert canonical_json_dumps(transfer) == '{"amount":"20","reason":"votes_converged","to":"alice"}'
    assert canonical_json_bytes([transfer]) == b'[{"amount":"20","reason":"votes_converged","to":"alice"}]'
