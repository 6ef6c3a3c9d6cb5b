from __future__ import annotations

import uuid
from typing import Any

from trade_protocol import ZERO_HASH, compute_event_hash, hash_canonical, verify_event_chain
from trade_protocol.event_chain import EventChainResult

from .storage import SettlementStorage

SYSTEM_ACTOR = "system"


class AuditLog:
    """Hash-chained record of every accepted mutation, one chain per challenge.

    ``append`` must run inside the caller's storage transaction so the event
    commits or rolls back with the change it describes.
    """

    def __init__(self, storage: SettlementStorage) -> None:
        self.storage = storage

    def append(
        self,
        challenge_id: str,
        event_type: str,
        actor_id: str,
        payload: dict[str, Any],
        *,
        now: int,
    ) -> dict[str, Any]:
        last = self.storage.get_last_event(challenge_id)
        event: dict[str, Any] = {
            "eventId": str(uuid.uuid4()),
            "challengeId": challenge_id,
            "sequence": 0 if last is None else last["sequence"] + 1,
            "eventType": event_type,
            "actorId": actor_id,
            "payloadHash": hash_canonical(payload),
            "prevHash": ZERO_HASH if last is None else last["eventHash"],
            "timestamp": now,
        }
        event["eventHash"] = compute_event_hash(event)
        self.storage.insert_event(event)
        return event

    def list(self, challenge_id: str) -> list[dict[str, Any]]:
        return self.storage.list_events(challenge_id)

    def verify(self, challenge_id: str) -> EventChainResult:
        return verify_event_chain(self.list(challenge_id), expected_challenge_id=challenge_id)
