from __future__ import annotations

import logging
import uuid

from trade_protocol import (
    CURRENT_ROUND,
    AlreadyDisputed,
    Challenge,
    ChallengeAlreadySettled,
    DisputeNotOpen,
    DisputeRecord,
    EventType,
    InvalidResolution,
    NotAParticipant,
    Outcome,
    SettlementDecision,
    SettlementState,
    UnknownChallenge,
    evidence_root,
)

from .audit import SYSTEM_ACTOR, AuditLog
from .decisions import DecisionRecorder
from .storage import SettlementStorage

logger = logging.getLogger(__name__)


class DisputeGateway:
    """Opens disputes and hands them to the external arbitration process.

    ``open`` is strict: a second dispute for the same challenge raises
    ``AlreadyDisputed``. The participant-facing path in the engine checks for an
    existing dispute first and returns it instead, which makes retries safe.
    """

    def __init__(self, storage: SettlementStorage, audit: AuditLog, recorder: DecisionRecorder) -> None:
        self.storage = storage
        self.audit = audit
        self.recorder = recorder

    def open(self, challenge: Challenge, reason: str, *, opened_by: str | None, now: int) -> DisputeRecord:
        # Runs inside the engine's storage transaction.
        challenge_id = challenge.challengeId
        if self.storage.get_dispute(challenge_id) is not None:
            raise AlreadyDisputed(f"dispute already open for {challenge_id}")

        proofs = self.storage.list_proofs(challenge_id)
        record = DisputeRecord(
            disputeId=str(uuid.uuid4()),
            challengeId=challenge_id,
            reason=reason,
            openedBy=opened_by,
            openedAt=now,
            votes=self.storage.list_votes(challenge_id, CURRENT_ROUND),
            proofs=proofs,
            evidenceRoot=evidence_root(p["contentHash"] for p in proofs),
        )
        payload = record.model_dump()
        self.storage.insert_dispute(payload)
        self.audit.append(challenge_id, EventType.DISPUTE_OPENED, opened_by or SYSTEM_ACTOR, payload, now=now)

        logger.info("dispute opened challenge=%s reason=%s by=%s", challenge_id, reason, opened_by or SYSTEM_ACTOR)
        return record

    def get(self, challenge_id: str) -> DisputeRecord | None:
        row = self.storage.get_dispute(challenge_id)
        return DisputeRecord.model_validate(row) if row else None

    def list(self, status: str | None = "open", limit: int = 200) -> list[DisputeRecord]:
        return [DisputeRecord.model_validate(d) for d in self.storage.list_disputes(status, limit)]

    def resolve(
        self,
        challenge_id: str,
        arbiter_id: str,
        *,
        winner_id: str | None = None,
        split: bool = False,
        now: int,
    ) -> SettlementDecision:
        """Finalize an open dispute with a winner or an even split."""
        row = self.storage.get_challenge(challenge_id)
        if row is None:
            raise UnknownChallenge(f"challenge {challenge_id} not found")
        if (winner_id is None) == (not split):
            raise InvalidResolution("exactly one of winnerId or split must be given")

        challenge = Challenge.model_validate(row)
        if challenge.status in SettlementState.FINAL:
            raise ChallengeAlreadySettled(f"challenge {challenge_id} is {challenge.status}")

        dispute = self.get(challenge_id)
        if dispute is None or dispute.status != "open" or challenge.status != SettlementState.DISPUTE_OPENED:
            raise DisputeNotOpen(f"no open dispute for {challenge_id}")
        if winner_id is not None and challenge.role_of(winner_id) is None:
            raise NotAParticipant(f"{winner_id} is not a participant in {challenge_id}")

        with self.storage.transaction():
            decision = self.recorder.record(
                challenge,
                outcome=Outcome.RESOLVED,
                state=SettlementState.DISPUTE_OPENED,
                reason="arbiter_split" if split else "arbiter_award",
                votes=dispute.votes,
                now=now,
                winner_id=winner_id,
                split=split,
                arbiter_id=arbiter_id,
            )
            resolved = dispute.model_copy(
                update={"status": "resolved", "resolvedAt": now, "resolutionDecisionId": decision.decisionId}
            )
            self.storage.update_dispute(resolved.model_dump())
            self.storage.update_challenge_status(row, SettlementState.RESOLVED)

        return decision
