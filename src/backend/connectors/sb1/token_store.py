from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any


TOKEN_STORE_DEFAULT = ".sb1_tokens.json"


def token_store_path() -> str:
    return os.getenv("SB1_TOKEN_STORE_PATH", TOKEN_STORE_DEFAULT)


def load_tokens(path: str) -> dict[str, str] | None:
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as handle:
        raw = json.loads(handle.read())
    if not isinstance(raw, dict):
        return None
    return {k: str(v) for k, v in raw.items() if v is not None}


def save_tokens(
    path: str,
    *,
    access_token: str,
    refresh_token: str,
    token_expires_at: str,
) -> None:
    data: dict[str, Any] = {
        "SB1_ACCESS_TOKEN": access_token,
        "SB1_REFRESH_TOKEN": refresh_token,
        "SB1_TOKEN_EXPIRES_AT": token_expires_at,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(data, handle, indent=2)
