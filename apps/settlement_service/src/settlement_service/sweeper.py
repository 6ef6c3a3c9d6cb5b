from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .dispatcher import DecisionDispatcher
from .engine import SettlementEngine

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExpirySweeper:
    """External timer for the engine: applies elapsed deadlines, then drains the outbox."""

    engine: SettlementEngine
    dispatcher: DecisionDispatcher

    async def run_forever(self, poll_sec: float) -> None:
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("settlement sweep failed")
            await asyncio.sleep(poll_sec)

    def run_once(self, now: int | None = None) -> int:
        decided = self.engine.sweep_expired(now)
        for decision in decided:
            logger.info("deadline elapsed challenge=%s outcome=%s", decision.challengeId, decision.outcome)
        self.dispatcher.dispatch_pending()
        return len(decided)
