import pytest
from pydantic import ValidationError
from trade_protocol import Challenge, ChallengeCreate, Outcome, Role, SettlementDecision, SettlementState


def _challenge(**overrides) -> Challenge:
    fields = {
        "challengeId": "c1",
        "challenger": "alice",
        "challenged": "bob",
        "stakeAmount": "10",
        "dueAt": 5000,
        "createdAt": 1000,
    }
    fields.update(overrides)
    return Challenge(**fields)


def test_challenge_participants() -> None:
    challenge = _challenge()

    assert challenge.participants() == {Role.CHALLENGER: "alice", Role.CHALLENGED: "bob"}
    assert challenge.role_of("bob") == Role.CHALLENGED
    assert challenge.role_of("mallory") is None
    assert challenge.participant_for(Role.CHALLENGER) == "alice"
    assert challenge.status == SettlementState.AWAITING_PROOFS


def test_challenge_rejects_bad_input() -> None:
    with pytest.raises(ValidationError):
        _challenge(challenged="alice")
    with pytest.raises(ValidationError):
        _challenge(stakeAmount="ten")
    with pytest.raises(ValidationError):
        _challenge(stakeAmount="-1")
    with pytest.raises(ValidationError):
        _challenge(stakeAmount="NaN")
    with pytest.raises(ValidationError):
        ChallengeCreate(challenger="alice", challenged="alice", stakeAmount="1", dueAt=0)


def test_closed_and_final_states() -> None:
    assert SettlementState.FINAL < SettlementState.CLOSED
    assert SettlementState.DISPUTE_OPENED in SettlementState.CLOSED
    assert SettlementState.DISPUTE_OPENED not in SettlementState.FINAL


def test_expiry_is_not_a_decision_outcome() -> None:
    assert not hasattr(Outcome, "EXPIRED")
    with pytest.raises(ValidationError):
        SettlementDecision(challengeId="c1", outcome="expired", state=SettlementState.EXPIRED)

    decision = SettlementDecision(challengeId="c1", outcome=Outcome.DISPUTE_OPENED, state=SettlementState.EXPIRED)
    assert decision.state == "expired"
