from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RoleName = Literal["challenger", "challenged"]
OutcomeName = Literal["pending", "auto_released", "dispute_opened", "resolved"]
DisputeReasonName = Literal["vote_mismatch", "expired", "participant_initiated"]
StateName = Literal[
    "awaiting_proofs",
    "awaiting_votes",
    "converged",
    "diverged",
    "expired",
    "auto_released",
    "dispute_opened",
    "resolved",
]
EventTypeName = Literal[
    "challenge_registered",
    "proof_submitted",
    "vote_cast",
    "dispute_opened",
    "decision_recorded",
]

CURRENT_ROUND = 1


class Role:
    CHALLENGER = "challenger"
    CHALLENGED = "challenged"

    ALL = (CHALLENGER, CHALLENGED)


class SettlementState:
    AWAITING_PROOFS = "awaiting_proofs"
    AWAITING_VOTES = "awaiting_votes"
    CONVERGED = "converged"
    DIVERGED = "diverged"
    EXPIRED = "expired"
    AUTO_RELEASED = "auto_released"
    DISPUTE_OPENED = "dispute_opened"
    RESOLVED = "resolved"

    # No proof or vote may be recorded once a challenge reaches one of these.
    CLOSED = frozenset({AUTO_RELEASED, DISPUTE_OPENED, RESOLVED})
    # Funds have moved; nothing, arbitration included, may change the decision.
    FINAL = frozenset({AUTO_RELEASED, RESOLVED})


class Outcome:
    PENDING = "pending"
    AUTO_RELEASED = "auto_released"
    DISPUTE_OPENED = "dispute_opened"
    RESOLVED = "resolved"


class DisputeReason:
    VOTE_MISMATCH = "vote_mismatch"
    EXPIRED = "expired"
    PARTICIPANT_INITIATED = "participant_initiated"


class EventType:
    CHALLENGE_REGISTERED = "challenge_registered"
    PROOF_SUBMITTED = "proof_submitted"
    VOTE_CAST = "vote_cast"
    DISPUTE_OPENED = "dispute_opened"
    DECISION_RECORDED = "decision_recorded"


def _check_amount(value: str) -> str:
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError("stakeAmount must be a decimal string") from exc
    if not amount.is_finite() or amount < 0:
        raise ValueError("stakeAmount must be a non-negative finite amount")
    return value


class Challenge(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schemaVersion: Literal["1.0.0"] = "1.0.0"
    challengeId: str = Field(min_length=1)
    challenger: str = Field(min_length=1)
    challenged: str = Field(min_length=1)
    stakeAmount: str
    dueAt: int = Field(ge=0)
    status: StateName = "awaiting_proofs"
    createdAt: int = Field(ge=0)

    @field_validator("stakeAmount")
    @classmethod
    def validate_stake(cls, value: str) -> str:
        return _check_amount(value)

    @model_validator(mode="after")
    def distinct_participants(self) -> Challenge:
        if self.challenger == self.challenged:
            raise ValueError("challenger and challenged must be different participants")
        return self

    def participants(self) -> dict[str, str]:
        return {Role.CHALLENGER: self.challenger, Role.CHALLENGED: self.challenged}

    def role_of(self, participant_id: str) -> str | None:
        for role, pid in self.participants().items():
            if pid == participant_id:
                return role
        return None

    def participant_for(self, role: str) -> str:
        return self.participants()[role]


class ProofSubmission(BaseModel):
    model_config = ConfigDict(extra="forbid")

    proofId: str
    challengeId: str
    submitterId: str
    contentUri: str
    contentHash: str
    sequence: int = Field(ge=0)
    submittedAt: int = Field(ge=0)


class Vote(BaseModel):
    model_config = ConfigDict(extra="forbid")

    challengeId: str
    voterId: str
    choice: RoleName
    referencedProofHash: str
    round: int = Field(default=CURRENT_ROUND, ge=1)
    castAt: int = Field(ge=0)


class Transfer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    to: str
    amount: str
    reason: str


class SettlementDecision(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schemaVersion: Literal["1.0.0"] = "1.0.0"
    decisionId: str | None = None
    challengeId: str
    outcome: OutcomeName
    state: StateName
    reason: str | None = None
    winnerId: str | None = None
    split: bool = False
    arbiterId: str | None = None
    transfers: list[Transfer] = Field(default_factory=list)
    evidence: list[Vote] = Field(default_factory=list)
    sequence: int = Field(default=0, ge=0)
    decidedAt: int | None = None
    decisionHash: str | None = None
    signerAddress: str | None = None
    signature: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.outcome == Outcome.PENDING


class DisputeRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    disputeId: str
    challengeId: str
    reason: DisputeReasonName
    openedBy: str | None = None
    openedAt: int = Field(ge=0)
    status: Literal["open", "resolved"] = "open"
    votes: list[Vote] = Field(default_factory=list)
    proofs: list[ProofSubmission] = Field(default_factory=list)
    evidenceRoot: str
    resolvedAt: int | None = None
    resolutionDecisionId: str | None = None


class SettlementEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    eventId: str
    challengeId: str
    sequence: int = Field(ge=0)
    eventType: EventTypeName
    actorId: str
    payloadHash: str
    prevHash: str
    timestamp: int = Field(ge=0)
    eventHash: str


class ChallengeCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    challengeId: str | None = None
    challenger: str = Field(min_length=1)
    challenged: str = Field(min_length=1)
    stakeAmount: str
    dueAt: int = Field(ge=0)

    @field_validator("stakeAmount")
    @classmethod
    def validate_stake(cls, value: str) -> str:
        return _check_amount(value)

    @model_validator(mode="after")
    def distinct_participants(self) -> ChallengeCreate:
        if self.challenger == self.challenged:
            raise ValueError("challenger and challenged must be different participants")
        return self


class ProofCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    submitterId: str = Field(min_length=1)
    contentUri: str = Field(min_length=1)
    # Format is checked by the proof store so malformed digests surface as invalid_hash.
    contentHash: str


class VoteCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    voterId: str = Field(min_length=1)
    choice: RoleName
    referencedProofHash: str


class DisputeCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    callerId: str = Field(min_length=1)


class ResolveCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    arbiterId: str = Field(min_length=1)
    winnerId: str | None = None
    split: bool = False
