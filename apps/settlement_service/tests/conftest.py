import pytest
from settlement_service.engine import SettlementEngine
from settlement_service.storage import SettlementStorage

START_MS = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = START_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(tmp_path):
    return SettlementStorage(str(tmp_path / "settlement.db"))


@pytest.fixture
def engine(storage, clock):
    return SettlementEngine(storage, clock=clock)


@pytest.fixture
def challenge(engine, clock):
    return engine.register_challenge(
        challenger="alice",
        challenged="bob",
        stake_amount="10",
        due_at=clock.now + 60_000,
        challenge_id="ch-1",
    )
