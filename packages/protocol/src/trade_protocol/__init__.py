from .canonical_json import canonical_json_bytes, canonical_json_dumps
from .errors import (
    AlreadyDisputed,
    AlreadyVoted,
    ChallengeAlreadySettled,
    ChallengeExists,
    DisputeNotOpen,
    InvalidHash,
    InvalidResolution,
    NotAParticipant,
    ProofNotFound,
    SettlementError,
    UnknownChallenge,
)
from .event_chain import EventChainResult, verify_event_chain
from .hashing import (
    ZERO_HASH,
    compute_decision_hash,
    compute_event_hash,
    evidence_root,
    hash_canonical,
    is_content_hash,
    keccak_hex,
    sha256_hex,
)
from .schema_validation import validate_schema
from .signatures import (
    recover_signer_eip191,
    sign_decision,
    sign_hash_eip191,
    verify_decision_signature,
)
from .types import (
    CURRENT_ROUND,
    Challenge,
    ChallengeCreate,
    DisputeCreate,
    DisputeReason,
    DisputeRecord,
    EventType,
    Outcome,
    ProofCreate,
    ProofSubmission,
    ResolveCreate,
    Role,
    SettlementDecision,
    SettlementEvent,
    SettlementState,
    Transfer,
    Vote,
    VoteCreate,
)

__all__ = [
    "CURRENT_ROUND",
    "ZERO_HASH",
    "Challenge",
    "ChallengeCreate",
    "DisputeCreate",
    "DisputeReason",
    "DisputeRecord",
    "EventType",
    "Outcome",
    "ProofCreate",
    "ProofSubmission",
    "ResolveCreate",
    "Role",
    "SettlementDecision",
    "SettlementEvent",
    "SettlementState",
    "Transfer",
    "Vote",
    "VoteCreate",
    "SettlementError",
    "UnknownChallenge",
    "NotAParticipant",
    "ProofNotFound",
    "InvalidHash",
    "AlreadyVoted",
    "ChallengeAlreadySettled",
    "AlreadyDisputed",
    "ChallengeExists",
    "DisputeNotOpen",
    "InvalidResolution",
    "EventChainResult",
    "canonical_json_dumps",
    "canonical_json_bytes",
    "keccak_hex",
    "sha256_hex",
    "hash_canonical",
    "is_content_hash",
    "compute_decision_hash",
    "compute_event_hash",
    "evidence_root",
    "sign_hash_eip191",
    "recover_signer_eip191",
    "sign_decision",
    "verify_decision_signature",
    "verify_event_chain",
    "validate_schema",
]
