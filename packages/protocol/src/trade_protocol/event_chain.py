from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .hashing import ZERO_HASH, compute_event_hash


@dataclass(slots=True)
class EventChainResult:
    ok: bool
    errors: list[str]


def verify_event_chain(
    events: list[dict[str, Any]],
    *,
    expected_challenge_id: str | None = None,
) -> EventChainResult:
    """Check that a challenge's audit events form an unbroken hash chain starting at sequence 0."""
    errors: list[str] = []
    ordered = sorted(events, key=lambda e: e["sequence"])

    for idx, event in enumerate(ordered):
        event_id = event.get("eventId")
        seq = event["sequence"]
        if seq != idx:
            errors.append(f"sequence mismatch at index={idx}: got {seq}")

        if expected_challenge_id and event.get("challengeId") != expected_challenge_id:
            errors.append(f"event {event_id} has wrong challengeId")

        if compute_event_hash(event) != event.get("eventHash"):
            errors.append(f"event hash mismatch for {event_id}")

        if idx == 0:
            if event.get("prevHash") != ZERO_HASH:
                errors.append(f"first event prevHash must be {ZERO_HASH}")
        elif event.get("prevHash") != ordered[idx - 1].get("eventHash"):
            errors.append(f"prevHash mismatch for {event_id}")

    return EventChainResult(ok=not errors, errors=errors)
