from __future__ import annotations

import logging

from trade_protocol import (
    CURRENT_ROUND,
    AlreadyVoted,
    Challenge,
    ChallengeAlreadySettled,
    EventType,
    NotAParticipant,
    ProofNotFound,
    SettlementState,
    UnknownChallenge,
    Vote,
)

from .audit import AuditLog
from .proofs import ProofStore
from .storage import SettlementStorage

logger = logging.getLogger(__name__)


class VoteLedger:
    """Write-once votes, at most one per participant per round."""

    def __init__(self, storage: SettlementStorage, audit: AuditLog, proofs: ProofStore) -> None:
        self.storage = storage
        self.audit = audit
        self.proofs = proofs

    def cast_vote(
        self,
        challenge_id: str,
        voter_id: str,
        choice: str,
        referenced_proof_hash: str,
        *,
        now: int,
        round_: int = CURRENT_ROUND,
    ) -> Vote:
        row = self.storage.get_challenge(challenge_id)
        if row is None:
            raise UnknownChallenge(f"challenge {challenge_id} not found")
        challenge = Challenge.model_validate(row)
        if challenge.status in SettlementState.CLOSED:
            raise ChallengeAlreadySettled(f"challenge {challenge_id} is {challenge.status}")
        if challenge.role_of(voter_id) is None:
            raise NotAParticipant(f"{voter_id} is not a participant in {challenge_id}")
        if not self.proofs.has_hash(challenge_id, referenced_proof_hash):
            raise ProofNotFound(f"no proof with hash {referenced_proof_hash} for {challenge_id}")
        if self.storage.get_vote(challenge_id, voter_id, round_) is not None:
            raise AlreadyVoted(f"{voter_id} already voted on {challenge_id}")

        vote = Vote(
            challengeId=challenge_id,
            voterId=voter_id,
            choice=choice,
            referencedProofHash=referenced_proof_hash,
            round=round_,
            castAt=now,
        )
        payload = vote.model_dump()
        with self.storage.transaction():
            self.storage.insert_vote(payload)
            self.audit.append(challenge_id, EventType.VOTE_CAST, voter_id, payload, now=now)

        logger.info("vote accepted challenge=%s voter=%s choice=%s", challenge_id, voter_id, choice)
        return vote

    def get_votes(self, challenge_id: str, round_: int = CURRENT_ROUND) -> dict[str, Vote]:
        return {v.voterId: v for v in self.list(challenge_id, round_)}

    def list(self, challenge_id: str, round_: int = CURRENT_ROUND) -> list[Vote]:
        """Votes in acceptance order."""
        return [Vote.model_validate(v) for v in self.storage.list_votes(challenge_id, round_)]
