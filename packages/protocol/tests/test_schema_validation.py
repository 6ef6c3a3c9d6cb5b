from trade_protocol import (
    SettlementDecision,
    Transfer,
    Vote,
    compute_decision_hash,
    sha256_hex,
    validate_schema,
)

PROOF_HASH = sha256_hex(b"finish-line.jpg")


def _decision() -> dict:
    votes = [
        Vote(challengeId="c1", voterId="alice", choice="challenger", referencedProofHash=PROOF_HASH, castAt=10),
        Vote(challengeId="c1", voterId="bob", choice="challenger", referencedProofHash=PROOF_HASH, castAt=11),
    ]
    decision = SettlementDecision(
        decisionId="d1",
        challengeId="c1",
        outcome="auto_released",
        state="converged",
        reason="votes_converged",
        winnerId="alice",
        transfers=[Transfer(to="alice", amount="20", reason="votes_converged")],
        evidence=votes,
        sequence=0,
        decidedAt=11,
    ).model_dump()
    decision["decisionHash"] = compute_decision_hash(decision)
    return decision


def test_schema_validation_pass_and_fail() -> None:
    good = _decision()
    assert validate_schema("settlement_decision.schema.json", good) == []

    missing = dict(good)
    missing.pop("decisionHash")
    assert validate_schema("settlement_decision.schema.json", missing)

    pending = dict(good, outcome="pending")
    assert validate_schema("settlement_decision.schema.json", pending)

    bad_amount = dict(good, transfers=[{"to": "alice", "amount": "-5", "reason": "x"}])
    errors = validate_schema("settlement_decision.schema.json", bad_amount)
    assert errors
    assert errors[0].startswith("transfers/0/amount")


def test_event_schema() -> None:
    event = {
        "eventId": "e1",
        "challengeId": "c1",
        "sequence": 0,
        "eventType": "challenge_registered",
        "actorId": "system",
        "payloadHash": "0x" + "a" * 64,
        "prevHash": "0x0",
        "timestamp": 1,
        "eventHash": "0x" + "b" * 64,
    }
    assert validate_schema("settlement_event.schema.json", event) == []
    assert validate_schema("settlement_event.schema.json", dict(event, eventType="vote_flipped"))
