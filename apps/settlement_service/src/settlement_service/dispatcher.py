from __future__ import annotations

import logging
import threading
from typing import Any

import httpx
from trade_protocol import validate_schema

from .config import Settings
from .decisions import ARBITRATION_TOPIC, LEDGER_TOPIC
from .storage import SettlementStorage

logger = logging.getLogger(__name__)


class DecisionDispatcher:
    """Delivers outbox decisions to the ledger and arbitration collaborators.

    Runs outside any challenge lock. Each POST carries ``Idempotency-Key`` set to
    the decision id, so redelivery after a lost response is harmless.
    """

    def __init__(
        self,
        storage: SettlementStorage,
        settings: Settings,
        client: httpx.Client | None = None,
    ) -> None:
        self.storage = storage
        self.settings = settings
        self.client = client or httpx.Client(timeout=settings.dispatch_timeout_sec)
        self._drain_lock = threading.Lock()

    def endpoint_for(self, topic: str) -> str:
        if topic == LEDGER_TOPIC and self.settings.ledger_url:
            return f"{self.settings.ledger_url}/settlements"
        if topic == ARBITRATION_TOPIC and self.settings.arbitration_url:
            return f"{self.settings.arbitration_url}/disputes"
        return ""

    def mode(self) -> dict[str, Any]:
        return {
            "dryRun": self.settings.dry_run,
            "ledgerConfigured": bool(self.settings.ledger_url),
            "arbitrationConfigured": bool(self.settings.arbitration_url),
            "failed": self.storage.count_outbox("failed"),
        }

    def dispatch_pending(self, challenge_id: str | None = None) -> int:
        with self._drain_lock:
            entries = self.storage.list_outbox(
                max_attempts=self.settings.dispatch_max_attempts,
                challenge_id=challenge_id,
            )
            return sum(1 for entry in entries if self._deliver(entry))

    def redrive(self, challenge_id: str | None = None) -> dict[str, int]:
        """Return dead-lettered entries to the queue and try them again."""
        requeued = self.storage.requeue_failed_outbox(challenge_id)
        logger.info("requeued %s failed deliveries challenge=%s", requeued, challenge_id)
        return {"requeued": requeued, "delivered": self.dispatch_pending(challenge_id)}

    def _deliver(self, entry: dict[str, Any]) -> bool:
        decision_id = entry["decisionId"]
        topic = entry["topic"]
        decision = entry["decision"]

        errors = validate_schema("settlement_decision.schema.json", decision)
        if errors:
            return self._fail(decision_id, topic, "schema: " + "; ".join(errors))

        if self.settings.dry_run:
            self.storage.mark_outbox_delivered(decision_id, topic)
            logger.info("dry-run delivery decision=%s topic=%s", decision_id, topic)
            return True

        url = self.endpoint_for(topic)
        if not url:
            # Not an attempt: the entry stays pending until the collaborator is configured.
            logger.warning("no endpoint configured for %s; holding decision=%s", topic, decision_id)
            return False

        try:
            resp = self.client.post(url, json=decision, headers={"Idempotency-Key": decision_id})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            return self._fail(decision_id, topic, str(exc) or exc.__class__.__name__)

        self.storage.mark_outbox_delivered(decision_id, topic)
        logger.info("delivered decision=%s topic=%s status=%s", decision_id, topic, resp.status_code)
        return True

    def _fail(self, decision_id: str, topic: str, error: str) -> bool:
        self.storage.mark_outbox_failed(decision_id, topic, error, max_attempts=self.settings.dispatch_max_attempts)
        logger.warning("delivery failed decision=%s topic=%s error=%s", decision_id, topic, error)
        return False

    def close(self) -> None:
        self.client.close()
