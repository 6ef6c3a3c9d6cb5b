from __future__ import annotations

import logging
import uuid

from trade_protocol import (
    Challenge,
    ChallengeAlreadySettled,
    EventType,
    InvalidHash,
    NotAParticipant,
    ProofSubmission,
    SettlementState,
    UnknownChallenge,
    is_content_hash,
)

from .audit import AuditLog
from .storage import SettlementStorage

logger = logging.getLogger(__name__)


class ProofStore:
    """Append-only log of proof submissions per challenge."""

    def __init__(self, storage: SettlementStorage, audit: AuditLog) -> None:
        self.storage = storage
        self.audit = audit

    def submit(
        self,
        challenge_id: str,
        submitter_id: str,
        content_uri: str,
        content_hash: str,
        *,
        now: int,
    ) -> ProofSubmission:
        row = self.storage.get_challenge(challenge_id)
        if row is None:
            raise UnknownChallenge(f"challenge {challenge_id} not found")
        challenge = Challenge.model_validate(row)
        if challenge.status in SettlementState.CLOSED:
            raise ChallengeAlreadySettled(f"challenge {challenge_id} is {challenge.status}")
        if challenge.role_of(submitter_id) is None:
            raise NotAParticipant(f"{submitter_id} is not a participant in {challenge_id}")
        if not is_content_hash(content_hash):
            raise InvalidHash("contentHash must be a 64-character lowercase hex digest")

        with self.storage.transaction():
            proof = ProofSubmission(
                proofId=str(uuid.uuid4()),
                challengeId=challenge_id,
                submitterId=submitter_id,
                contentUri=content_uri,
                contentHash=content_hash,
                sequence=self.storage.next_proof_sequence(challenge_id),
                submittedAt=now,
            )
            payload = proof.model_dump()
            self.storage.insert_proof(payload)
            self.audit.append(challenge_id, EventType.PROOF_SUBMITTED, submitter_id, payload, now=now)

        logger.info("proof accepted challenge=%s submitter=%s hash=%s", challenge_id, submitter_id, content_hash)
        return proof

    def list(self, challenge_id: str) -> list[ProofSubmission]:
        return [ProofSubmission.model_validate(p) for p in self.storage.list_proofs(challenge_id)]

    def has_hash(self, challenge_id: str, content_hash: str) -> bool:
        return self.storage.has_proof_hash(challenge_id, content_hash)
