from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from .config import Settings
from .dispatcher import DecisionDispatcher
from .engine import SettlementEngine
from .storage import SettlementStorage
from .sweeper import ExpirySweeper


@dataclass(slots=True)
class ServerState:
    settings: Settings
    storage: SettlementStorage
    engine: SettlementEngine
    dispatcher: DecisionDispatcher
    sweeper: ExpirySweeper


def get_state(request: Request) -> ServerState:
    state = getattr(request.app.state, "server_state", None)
    if state is None:
        raise RuntimeError("server state not initialized")
    return state
