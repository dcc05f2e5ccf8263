from __future__ import annotations

import os
from dataclasses import dataclass, replace

from dotenv import load_dotenv

from .token_store import load_tokens, token_store_path


load_dotenv()

DEFAULT_BASE_URL = "https://api.sparebank1.no"


@dataclass(frozen=True)
class SB1Config:
    base_url: str
    client_id: str
    client_secret: str
    financial_institution: str
    access_token: str
    refresh_token: str
    token_expires_at: str

    def with_tokens(self, *, access_token: str, refresh_token: str, token_expires_at: str) -> "SB1Config":
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=token_expires_at,
        )


def get_sb1_config() -> SB1Config:
    """
    Load SpareBank 1 connector configuration from environment variables.

    Reads SB1_CLIENT_ID, SB1_CLIENT_SECRET, SB1_FINANCIAL_INSTITUTION and SB1_BASE_URL.
    Token values (SB1_ACCESS_TOKEN, SB1_REFRESH_TOKEN, SB1_TOKEN_EXPIRES_AT) prefer the
    JSON token store written after each refresh.
    """
    stored = load_tokens(token_store_path())

    return SB1Config(
        base_url=os.getenv("SB1_BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/") or DEFAULT_BASE_URL,
        client_id=_require_env("SB1_CLIENT_ID"),
        client_secret=_require_env("SB1_CLIENT_SECRET"),
        financial_institution=os.getenv("SB1_FINANCIAL_INSTITUTION", "").strip(),
        access_token=_require_env("SB1_ACCESS_TOKEN", stored),
        refresh_token=_require_env("SB1_REFRESH_TOKEN", stored),
        token_expires_at=_optional_env("SB1_TOKEN_EXPIRES_AT", stored),
    )


def _require_env(name: str, stored: dict[str, str] | None = None) -> str:
    value = _optional_env(name, stored)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_env(name: str, stored: dict[str, str] | None = None) -> str:
    if stored and name in stored and stored[name]:
        return stored[name]
    return os.getenv(name, "").strip()
