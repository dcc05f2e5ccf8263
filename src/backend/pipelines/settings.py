from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from common.rules_engine.config import DEFAULT_POLL_INTERVAL_SECONDS, EngineConfig, SchedulerConfig


load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///./autobank.db"


@dataclass(frozen=True)
class AppSettings:
    database_url: str
    bank: str
    poll_interval_seconds: float
    scheduler_enabled: bool
    defer_pending: bool
    log_level: str
    host: str
    port: int

    def engine_config(self) -> EngineConfig:
        return EngineConfig(defer_pending_transactions=self.defer_pending)

    def scheduler_config(self) -> SchedulerConfig:
        return SchedulerConfig(poll_interval_seconds=self.poll_interval_seconds, enabled=self.scheduler_enabled)


def get_app_settings() -> AppSettings:
    """
    Load service settings from environment variables.

    Reads AUTOBANK_DATABASE_URL, AUTOBANK_BANK (demo|live), AUTOBANK_POLL_INTERVAL_SECONDS,
    AUTOBANK_SCHEDULER_ENABLED, AUTOBANK_DEFER_PENDING, AUTOBANK_LOG_LEVEL, AUTOBANK_HOST
    and AUTOBANK_PORT.
    """
    bank = os.getenv("AUTOBANK_BANK", "demo").strip().lower()
    if bank not in ("demo", "live"):
        raise ValueError("AUTOBANK_BANK must be 'demo' or 'live'.")

    interval = _float_env("AUTOBANK_POLL_INTERVAL_SECONDS", float(DEFAULT_POLL_INTERVAL_SECONDS))
    if interval <= 0:
        raise ValueError("AUTOBANK_POLL_INTERVAL_SECONDS must be > 0.")

    return AppSettings(
        database_url=os.getenv("AUTOBANK_DATABASE_URL", DEFAULT_DATABASE_URL).strip() or DEFAULT_DATABASE_URL,
        bank=bank,
        poll_interval_seconds=interval,
        scheduler_enabled=_bool_env("AUTOBANK_SCHEDULER_ENABLED", True),
        defer_pending=_bool_env("AUTOBANK_DEFER_PENDING", False),
        log_level=os.getenv("AUTOBANK_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        host=os.getenv("AUTOBANK_HOST", "127.0.0.1").strip() or "127.0.0.1",
        port=int(_float_env("AUTOBANK_PORT", 3000)),
    )


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean (true/false).")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number.") from exc
