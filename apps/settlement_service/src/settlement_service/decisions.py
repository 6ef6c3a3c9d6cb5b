from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any

from trade_protocol import (
    Challenge,
    EventType,
    Outcome,
    SettlementDecision,
    Transfer,
    Vote,
    compute_decision_hash,
    sign_decision,
)

from .audit import SYSTEM_ACTOR, AuditLog
from .storage import SettlementStorage

logger = logging.getLogger(__name__)

LEDGER_TOPIC = "ledger"
ARBITRATION_TOPIC = "arbitration"

_TOPICS = {
    Outcome.AUTO_RELEASED: LEDGER_TOPIC,
    Outcome.RESOLVED: LEDGER_TOPIC,
    Outcome.DISPUTE_OPENED: ARBITRATION_TOPIC,
}


def _amount(value: Decimal) -> str:
    return format(value.normalize(), "f") if value else "0"


def compute_transfers(challenge: Challenge, *, winner_id: str | None, split: bool, reason: str) -> list[Transfer]:
    """Both parties staked ``stakeAmount``; a winner takes the pot, a split refunds each stake."""
    stake = Decimal(challenge.stakeAmount)
    if split:
        return [
            Transfer(to=pid, amount=_amount(stake), reason="split_refund")
            for pid in challenge.participants().values()
        ]
    if winner_id is None:
        return []
    return [Transfer(to=winner_id, amount=_amount(stake * 2), reason=reason)]


class DecisionRecorder:
    """Builds, hashes, signs and persists settlement decisions.

    ``record`` must run inside the caller's storage transaction: the decision,
    its audit event and its outbox entry commit together.
    """

    def __init__(self, storage: SettlementStorage, audit: AuditLog, signer_key: str | None = None) -> None:
        self.storage = storage
        self.audit = audit
        self.signer_key = signer_key

    def pending(self, challenge: Challenge, state: str) -> SettlementDecision:
        return SettlementDecision(challengeId=challenge.challengeId, outcome=Outcome.PENDING, state=state)

    def record(
        self,
        challenge: Challenge,
        *,
        outcome: str,
        state: str,
        reason: str,
        votes: list[Vote],
        now: int,
        winner_id: str | None = None,
        split: bool = False,
        arbiter_id: str | None = None,
    ) -> SettlementDecision:
        decision: dict[str, Any] = SettlementDecision(
            decisionId=str(uuid.uuid4()),
            challengeId=challenge.challengeId,
            outcome=outcome,
            state=state,
            reason=reason,
            winnerId=winner_id,
            split=split,
            arbiterId=arbiter_id,
            transfers=compute_transfers(challenge, winner_id=winner_id, split=split, reason=reason),
            evidence=votes,
            sequence=self.storage.next_decision_sequence(challenge.challengeId),
            decidedAt=now,
        ).model_dump()

        if self.signer_key:
            decision = sign_decision(self.signer_key, decision)
        else:
            decision["decisionHash"] = compute_decision_hash(decision)

        self.storage.insert_decision(decision)
        self.audit.append(
            challenge.challengeId,
            EventType.DECISION_RECORDED,
            arbiter_id or SYSTEM_ACTOR,
            {"decisionId": decision["decisionId"], "outcome": outcome, "decisionHash": decision["decisionHash"]},
            now=now,
        )
        topic = _TOPICS.get(outcome)
        if topic:
            self.storage.enqueue_outbox(decision, topic)

        logger.info(
            "decision recorded challenge=%s outcome=%s reason=%s winner=%s",
            challenge.challengeId,
            outcome,
            reason,
            winner_id,
        )
        return SettlementDecision.model_validate(decision)

    def latest(self, challenge_id: str) -> SettlementDecision | None:
        row = self.storage.get_latest_decision(challenge_id)
        return SettlementDecision.model_validate(row) if row else None

    def history(self, challenge_id: str) -> list[SettlementDecision]:
        return [SettlementDecision.model_validate(d) for d in self.storage.list_decisions(challenge_id)]
