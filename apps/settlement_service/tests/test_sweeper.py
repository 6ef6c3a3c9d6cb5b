import asyncio

import pytest
from settlement_service.config import Settings
from settlement_service.dispatcher import DecisionDispatcher
from settlement_service.sweeper import ExpirySweeper
from trade_protocol import SettlementState


@pytest.fixture
def sweeper(engine, storage):
    dispatcher = DecisionDispatcher(storage, Settings(dry_run=True))
    yield ExpirySweeper(engine=engine, dispatcher=dispatcher)
    dispatcher.close()


def test_run_once_applies_deadline_and_dispatches(sweeper, engine, storage, challenge, clock) -> None:
    assert sweeper.run_once() == 0

    clock.advance(60_000)
    assert sweeper.run_once() == 1

    decision = engine.list_decisions("ch-1")[0]
    assert engine.get_challenge("ch-1").status == SettlementState.DISPUTE_OPENED
    assert storage.get_outbox_entry(decision.decisionId, "arbitration")["status"] == "delivered"
    assert sweeper.run_once() == 0


@pytest.mark.asyncio
async def test_run_forever_until_cancelled(sweeper, engine, challenge, clock) -> None:
    clock.advance(60_000)
    task = asyncio.create_task(sweeper.run_forever(0.01))
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert engine.get_challenge("ch-1").status == SettlementState.DISPUTE_OPENED
