from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from trade_protocol import SettlementError

from .config import Settings
from .dispatcher import DecisionDispatcher
from .engine import SettlementEngine
from .routes import router
from .server_state import ServerState
from .storage import SettlementStorage
from .sweeper import ExpirySweeper

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    storage = SettlementStorage(settings.sqlite_path)
    engine = SettlementEngine(storage, signer_key=settings.signer_key)
    dispatcher = DecisionDispatcher(storage, settings)
    sweeper = ExpirySweeper(engine=engine, dispatcher=dispatcher)
    state = ServerState(
        settings=settings,
        storage=storage,
        engine=engine,
        dispatcher=dispatcher,
        sweeper=sweeper,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        task = None
        if settings.sweep_enabled:
            task = asyncio.create_task(sweeper.run_forever(settings.sweep_sec))
        logger.info(
            "settlement service started db=%s sweep=%s dispatch=%s",
            settings.sqlite_path,
            settings.sweep_enabled,
            dispatcher.mode(),
        )
        if not settings.dry_run and not (settings.ledger_url and settings.arbitration_url):
            logger.warning("collaborator endpoints missing; decisions stay queued until configured")
        yield
        if task:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        dispatcher.close()

    app = FastAPI(title="Settlement Service", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.server_state = state
    app.include_router(router)

    @app.exception_handler(SettlementError)
    async def settlement_error(request: Request, exc: SettlementError) -> JSONResponse:
        logger.info("rejected %s %s error=%s detail=%s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    def health() -> dict[str, object]:
        return {"status": "ok", "dispatch": dispatcher.mode(), "sweepEnabled": settings.sweep_enabled}

    return app


def main() -> None:
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    import uvicorn

    uvicorn.run(
        "settlement_service.server:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
