from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(slots=True)
class Settings:
    sqlite_path: str = "./data/settlement.db"
    signer_key: str | None = None
    ledger_url: str = ""
    arbitration_url: str = ""
    dry_run: bool = False
    dispatch_timeout_sec: float = 10.0
    dispatch_max_attempts: int = 5
    sweep_sec: float = 5.0
    sweep_enabled: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 4010

    @classmethod
    def from_env(cls) -> Settings:
        load_dotenv(Path(os.environ.get("SETTLEMENT_ENV_FILE", ".env")))
        return cls(
            sqlite_path=os.environ.get("SQLITE_PATH", "./data/settlement.db"),
            signer_key=os.environ.get("SETTLEMENT_SIGNER_KEY") or None,
            ledger_url=os.environ.get("LEDGER_URL", "").rstrip("/"),
            arbitration_url=os.environ.get("ARBITRATION_URL", "").rstrip("/"),
            dry_run=os.environ.get("LEDGER_DRY_RUN", "0") == "1",
            dispatch_timeout_sec=float(os.environ.get("DISPATCH_TIMEOUT_SEC", "10")),
            dispatch_max_attempts=int(os.environ.get("DISPATCH_MAX_ATTEMPTS", "5")),
            sweep_sec=float(os.environ.get("SETTLEMENT_SWEEP_SEC", "5")),
            sweep_enabled=os.environ.get("SETTLEMENT_SWEEP_ENABLED", "1") == "1",
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "4010")),
        )
