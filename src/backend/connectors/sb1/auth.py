from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from http.client import HTTPException
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .config import SB1Config
from .token_store import save_tokens, token_store_path


logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/token"

# Refresh slightly early so a token does not expire between the check and the request.
EXPIRY_MARGIN = timedelta(seconds=60)


class SB1AuthError(RuntimeError):
    def __init__(self, message: str, body: str | None = None):
        super().__init__(message)
        self.body = body


def refresh_access_token(config: SB1Config) -> SB1Config:
    """
    Exchange the refresh token for a new access token and persist the result.

    SpareBank 1 rotates refresh tokens; when the response omits one the old token is kept.
    """
    token_payload = _post_refresh_token(config)
    access_token = token_payload.get("access_token")
    refresh_token = token_payload.get("refresh_token") or config.refresh_token
    expires_in = token_payload.get("expires_in")
    if not access_token or not expires_in:
        raise SB1AuthError("Token refresh response missing required fields.", json.dumps(token_payload))

    try:
        expires_seconds = int(expires_in)
    except (TypeError, ValueError) as exc:
        raise SB1AuthError(f"Token refresh returned invalid expires_in: {expires_in!r}") from exc

    updated = config.with_tokens(
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=_expires_at_from_seconds(expires_seconds),
    )
    _persist_tokens(updated)
    logger.info("Refreshed SpareBank 1 access token (expires %s)", updated.token_expires_at)
    return updated


def ensure_access_token_valid(config: SB1Config) -> SB1Config:
    """
    Refresh the access token if its recorded expiry has passed.

    An unknown expiry is trusted; the client refreshes on the first 401 instead.
    """
    if is_expired(config.token_expires_at):
        return refresh_access_token(config)
    return config


def is_expired(value: str, *, now: datetime | None = None) -> bool:
    parsed = _parse_expires(value)
    if parsed is None:
        return False
    current = now or datetime.now(timezone.utc)
    return parsed - EXPIRY_MARGIN <= current


def _post_refresh_token(config: SB1Config) -> dict[str, Any]:
    data = urlencode(
        {
            "client_id": config.client_id,
            "client_secret": config.client_secret,
            "refresh_token": config.refresh_token,
            "grant_type": "refresh_token",
        }
    ).encode("utf-8")

    req = Request(f"{config.base_url}{TOKEN_PATH}", data=data, method="POST")
    req.add_header("Accept", "application/json")
    req.add_header("Content-Type", "application/x-www-form-urlencoded")

    try:
        with urlopen(req, timeout=30) as resp:
            raw = resp.read().decode("utf-8")
    except HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace") if exc.fp else None
        raise SB1AuthError(f"Token refresh failed: {exc.code} {exc.reason}", body) from exc
    except (URLError, OSError, HTTPException) as exc:
        raise SB1AuthError(f"Token refresh failed: {str(exc) or type(exc).__name__}") from exc
    except UnicodeDecodeError as exc:
        raise SB1AuthError("Token refresh response is not valid UTF-8.") from exc

    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise SB1AuthError("Token refresh response is not valid JSON.", raw) from exc
    if not isinstance(payload, dict):
        raise SB1AuthError("Token refresh response is not a JSON object.", raw)
    return payload


def _parse_expires(value: str) -> datetime | None:
    if not value:
        return None
    v = value.strip()
    if v.isdigit():
        return datetime.fromtimestamp(int(v), tz=timezone.utc)
    try:
        dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _expires_at_from_seconds(seconds: int) -> str:
    dt = datetime.now(timezone.utc) + timedelta(seconds=seconds)
    return dt.isoformat()


def _persist_tokens(config: SB1Config) -> None:
    os.environ["SB1_ACCESS_TOKEN"] = config.access_token
    os.environ["SB1_REFRESH_TOKEN"] = config.refresh_token
    os.environ["SB1_TOKEN_EXPIRES_AT"] = config.token_expires_at
    save_tokens(
        token_store_path(),
        access_token=config.access_token,
        refresh_token=config.refresh_token,
        token_expires_at=config.token_expires_at,
    )
