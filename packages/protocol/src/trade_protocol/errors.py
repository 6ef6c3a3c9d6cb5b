from __future__ import annotations


class SettlementError(Exception):
    """Base for every validation failure surfaced to callers of the settlement core."""

    code = "settlement_error"
    status_code = 400

    def __init__(self, message: str = "", **context: object) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "detail": self.message, **self.context}


class UnknownChallenge(SettlementError):
    code = "unknown_challenge"
    status_code = 404


class NotAParticipant(SettlementError):
    code = "not_a_participant"
    status_code = 403


class ProofNotFound(SettlementError):
    code = "proof_not_found"
    status_code = 422


class InvalidHash(SettlementError):
    code = "invalid_hash"
    status_code = 422


class AlreadyVoted(SettlementError):
    code = "already_voted"
    status_code = 409


class ChallengeAlreadySettled(SettlementError):
    code = "challenge_already_settled"
    status_code = 409


class AlreadyDisputed(SettlementError):
    code = "already_disputed"
    status_code = 409


class ChallengeExists(SettlementError):
    code = "challenge_exists"
    status_code = 409


class DisputeNotOpen(SettlementError):
    code = "dispute_not_open"
    status_code = 409


class InvalidResolution(SettlementError):
    code = "invalid_resolution"
    status_code = 422
