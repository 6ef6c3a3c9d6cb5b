from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Callable

from trade_protocol import (
    CURRENT_ROUND,
    Challenge,
    ChallengeAlreadySettled,
    ChallengeExists,
    DisputeReason,
    DisputeRecord,
    EventType,
    NotAParticipant,
    Outcome,
    ProofSubmission,
    SettlementDecision,
    SettlementState,
    UnknownChallenge,
    Vote,
)

from .audit import SYSTEM_ACTOR, AuditLog
from .deadline import DeadlineClock, now_ms
from .decisions import DecisionRecorder
from .disputes import DisputeGateway
from .locks import ChallengeLocks
from .proofs import ProofStore
from .storage import SettlementStorage
from .votes import VoteLedger

logger = logging.getLogger(__name__)

OPEN_STATES = (SettlementState.AWAITING_PROOFS, SettlementState.AWAITING_VOTES)


def derive_state(votes: list[Vote], proof_count: int, due_at: int, now: int) -> str:
    """Pure transition rule for a challenge that has no decision yet.

    Two votes decide on their own: a vote is only accepted after the deadline
    has been checked, so both were in before expiry.
    """
    if len(votes) >= 2:
        choices = {v.choice for v in votes}
        return SettlementState.CONVERGED if len(choices) == 1 else SettlementState.DIVERGED
    if DeadlineClock.has_expired(now, due_at):
        return SettlementState.EXPIRED
    if proof_count == 0:
        return SettlementState.AWAITING_PROOFS
    return SettlementState.AWAITING_VOTES


class SettlementEngine:
    """Dual-confirmation settlement state machine.

    Every mutating call and every evaluation runs under the challenge's lock,
    so the first terminal decision recorded is the only one; later triggers see
    the closed status and are rejected with ``ChallengeAlreadySettled``.
    """

    def __init__(
        self,
        storage: SettlementStorage,
        *,
        signer_key: str | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.storage = storage
        self.clock = clock
        self.locks = ChallengeLocks()
        self.audit = AuditLog(storage)
        self.recorder = DecisionRecorder(storage, self.audit, signer_key)
        self.proofs = ProofStore(storage, self.audit)
        self.votes = VoteLedger(storage, self.audit, self.proofs)
        self.disputes = DisputeGateway(storage, self.audit, self.recorder)

    # challenge intake

    def register_challenge(
        self,
        *,
        challenger: str,
        challenged: str,
        stake_amount: str,
        due_at: int,
        challenge_id: str | None = None,
    ) -> Challenge:
        challenge_id = challenge_id or str(uuid.uuid4())
        with self.locks.hold(challenge_id):
            if self.storage.get_challenge(challenge_id) is not None:
                raise ChallengeExists(f"challenge {challenge_id} already registered")
            now = self.clock()
            challenge = Challenge(
                challengeId=challenge_id,
                challenger=challenger,
                challenged=challenged,
                stakeAmount=stake_amount,
                dueAt=due_at,
                status=SettlementState.AWAITING_PROOFS,
                createdAt=now,
            )
            payload = challenge.model_dump()
            try:
                with self.storage.transaction():
                    self.storage.insert_challenge(payload)
                    self.audit.append(challenge_id, EventType.CHALLENGE_REGISTERED, SYSTEM_ACTOR, payload, now=now)
            except sqlite3.IntegrityError as exc:
                raise ChallengeExists(f"challenge {challenge_id} already registered") from exc

        logger.info("challenge registered challenge=%s due_at=%s", challenge_id, due_at)
        return challenge

    def get_challenge(self, challenge_id: str) -> Challenge:
        row = self.storage.get_challenge(challenge_id)
        if row is None:
            raise UnknownChallenge(f"challenge {challenge_id} not found")
        return Challenge.model_validate(row)

    # participant operations

    def submit_proof(self, challenge_id: str, submitter_id: str, content_uri: str, content_hash: str) -> ProofSubmission:
        with self.locks.hold(challenge_id):
            now = self.clock()
            self._evaluate(challenge_id, now)
            proof = self.proofs.submit(challenge_id, submitter_id, content_uri, content_hash, now=now)
            self._evaluate(challenge_id, now)
            return proof

    def list_proofs(self, challenge_id: str) -> list[ProofSubmission]:
        self.get_challenge(challenge_id)
        return self.proofs.list(challenge_id)

    def cast_vote(self, challenge_id: str, voter_id: str, choice: str, referenced_proof_hash: str) -> Vote:
        with self.locks.hold(challenge_id):
            now = self.clock()
            self._evaluate(challenge_id, now)
            vote = self.votes.cast_vote(challenge_id, voter_id, choice, referenced_proof_hash, now=now)
            self._evaluate(challenge_id, now)
            return vote

    def get_votes(self, challenge_id: str) -> dict[str, Vote]:
        self.get_challenge(challenge_id)
        return self.votes.get_votes(challenge_id)

    def open_dispute(self, challenge_id: str, caller_id: str) -> DisputeRecord:
        """Escalate on a participant's request.

        Repeating the call while the dispute is open returns the existing record.
        """
        with self.locks.hold(challenge_id):
            now = self.clock()
            self._evaluate(challenge_id, now)
            challenge = self.get_challenge(challenge_id)
            if challenge.role_of(caller_id) is None:
                raise NotAParticipant(f"{caller_id} is not a participant in {challenge_id}")
            if challenge.status in SettlementState.FINAL:
                raise ChallengeAlreadySettled(f"challenge {challenge_id} is {challenge.status}")
            if challenge.status == SettlementState.DISPUTE_OPENED:
                existing = self.disputes.get(challenge_id)
                if existing is not None:
                    return existing

            return self._escalate(
                challenge,
                DisputeReason.PARTICIPANT_INITIATED,
                state=challenge.status,
                votes=self.votes.list(challenge_id),
                opened_by=caller_id,
                now=now,
            )

    def get_dispute(self, challenge_id: str) -> DisputeRecord | None:
        self.get_challenge(challenge_id)
        return self.disputes.get(challenge_id)

    # arbitration

    def resolve(
        self,
        challenge_id: str,
        arbiter_id: str,
        *,
        winner_id: str | None = None,
        split: bool = False,
    ) -> SettlementDecision:
        with self.locks.hold(challenge_id):
            now = self.clock()
            self._evaluate(challenge_id, now)
            return self.disputes.resolve(challenge_id, arbiter_id, winner_id=winner_id, split=split, now=now)

    # evaluation

    def get_settlement(self, challenge_id: str) -> SettlementDecision:
        """Current decision for the challenge, applying the deadline as of now."""
        return self.evaluate(challenge_id)

    def evaluate(self, challenge_id: str, now: int | None = None) -> SettlementDecision:
        self.get_challenge(challenge_id)
        with self.locks.hold(challenge_id):
            challenge = self.get_challenge(challenge_id)
            decision = self._evaluate(challenge_id, self.clock() if now is None else now)
        return decision or self.recorder.pending(challenge, challenge.status)

    def sweep_expired(self, now: int | None = None) -> list[SettlementDecision]:
        """Evaluate every undecided challenge whose due time has passed."""
        now = self.clock() if now is None else now
        decided: list[SettlementDecision] = []
        for challenge_id in self.storage.list_challenge_ids(statuses=OPEN_STATES, due_at_or_before=now):
            with self.locks.hold(challenge_id):
                decision = self._evaluate(challenge_id, now)
            if decision is not None and not decision.is_pending:
                decided.append(decision)
        return decided

    def list_decisions(self, challenge_id: str) -> list[SettlementDecision]:
        self.get_challenge(challenge_id)
        return self.recorder.history(challenge_id)

    def _evaluate(self, challenge_id: str, now: int) -> SettlementDecision | None:
        # Caller holds the challenge lock.
        row = self.storage.get_challenge(challenge_id)
        if row is None:
            return None
        challenge = Challenge.model_validate(row)

        if challenge.status in SettlementState.CLOSED:
            latest = self.recorder.latest(challenge_id)
            return latest or self.recorder.pending(challenge, challenge.status)

        votes = self.votes.list(challenge_id, CURRENT_ROUND)
        proof_count = len(self.storage.list_proofs(challenge_id))
        state = derive_state(votes, proof_count, challenge.dueAt, now)

        if state == SettlementState.CONVERGED:
            winner_id = challenge.participant_for(votes[0].choice)
            with self.storage.transaction():
                decision = self.recorder.record(
                    challenge,
                    outcome=Outcome.AUTO_RELEASED,
                    state=state,
                    reason="votes_converged",
                    votes=votes,
                    now=now,
                    winner_id=winner_id,
                )
                self.storage.update_challenge_status(row, SettlementState.AUTO_RELEASED)
            return decision

        if state in (SettlementState.DIVERGED, SettlementState.EXPIRED):
            reason = DisputeReason.VOTE_MISMATCH if state == SettlementState.DIVERGED else DisputeReason.EXPIRED
            self._escalate(challenge, reason, state=state, votes=votes, opened_by=None, now=now)
            return self.recorder.latest(challenge_id)

        if state != challenge.status:
            with self.storage.transaction():
                self.storage.update_challenge_status(row, state)
        return self.recorder.pending(challenge, state)

    def _escalate(
        self,
        challenge: Challenge,
        reason: str,
        *,
        state: str,
        votes: list[Vote],
        opened_by: str | None,
        now: int,
    ) -> DisputeRecord:
        with self.storage.transaction():
            record = self.disputes.open(challenge, reason, opened_by=opened_by, now=now)
            self.recorder.record(
                challenge,
                outcome=Outcome.DISPUTE_OPENED,
                state=state,
                reason=reason,
                votes=votes,
                now=now,
            )
            self.storage.update_challenge_status(challenge.model_dump(), SettlementState.DISPUTE_OPENED)
        return record
