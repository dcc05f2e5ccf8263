from __future__ import annotations

import json
import logging
import time
from http.client import HTTPException
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .auth import ensure_access_token_valid, refresh_access_token
from .config import SB1Config


logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/vnd.sparebank1.v1+json; charset=utf-8"
RETRY_STATUSES = (429, 500, 502, 503, 504)
INVALID_RESPONSE_CODE = "INVALID_RESPONSE"


class SB1HttpError(RuntimeError):
    def __init__(self, status: int, message: str, body: str | None = None, *, code: str = ""):
        super().__init__(f"SB1 HTTP {status}: {message}")
        self.status = status
        self.body = body
        self.code = code


class SB1Session:
    """
    Authenticated access to the SpareBank 1 API.

    Holds the current config so a refreshed token carries over to later calls. Retries
    429/5xx and transport errors with exponential backoff and refreshes the token once on 401.
    """

    def __init__(self, config: SB1Config):
        self.config = config

    def get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        timeout_seconds: int = 30,
        max_retries: int = 3,
    ) -> dict[str, Any]:
        payload, self.config = _request(
            self.config,
            "GET",
            path,
            params=params,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
        )
        return payload

    def post(
        self,
        path: str,
        body: dict[str, Any],
        *,
        timeout_seconds: int = 30,
        max_retries: int = 3,
    ) -> dict[str, Any]:
        payload, self.config = _request(
            self.config,
            "POST",
            path,
            body=body,
            timeout_seconds=timeout_seconds,
            max_retries=max_retries,
        )
        return payload


def _request(
    config: SB1Config,
    method: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    body: dict[str, Any] | None = None,
    timeout_seconds: int = 30,
    max_retries: int = 3,
) -> tuple[dict[str, Any], SB1Config]:
    config = ensure_access_token_valid(config)

    retries = 0
    refreshed = False
    backoff = 0.5
    data = json.dumps(body).encode("utf-8") if body is not None else None

    while True:
        url = _build_url(config.base_url, path, params)
        req = Request(url, data=data, method=method)
        req.add_header("Accept", ACCEPT_HEADER)
        req.add_header("Authorization", f"Bearer {config.access_token}")
        if data is not None:
            req.add_header("Content-Type", ACCEPT_HEADER)
        logger.debug("%s %s", method, url)

        try:
            with urlopen(req, timeout=timeout_seconds) as resp:
                raw = resp.read()
        except HTTPError as exc:
            raw_body = _error_body(exc)
            status = exc.code

            if status == 401 and not refreshed:
                config = refresh_access_token(config)
                refreshed = True
                continue

            if status in RETRY_STATUSES and retries < max_retries:
                logger.warning("SB1 %s %s returned %s; retrying in %.1fs", method, path, status, backoff)
                time.sleep(backoff)
                retries += 1
                backoff *= 2
                continue

            code, message = _first_error(raw_body)
            raise SB1HttpError(status, message or str(exc.reason), raw_body, code=code) from exc
        except (URLError, OSError, HTTPException) as exc:
            # URLError, timeouts, resets and dropped connections all land here.
            if retries < max_retries:
                logger.warning("SB1 %s %s failed (%s); retrying in %.1fs", method, path, exc, backoff)
                time.sleep(backoff)
                retries += 1
                backoff *= 2
                continue
            raise SB1HttpError(0, str(exc) or type(exc).__name__) from exc

        return _decode_body(raw), config


def _decode_body(raw: bytes) -> dict[str, Any]:
    try:
        text = raw.decode("utf-8")
        if not text.strip():
            return {}
        payload = json.loads(text)
    except ValueError as exc:
        raise SB1HttpError(
            200,
            "Response body is not valid JSON",
            raw.decode("utf-8", errors="replace"),
            code=INVALID_RESPONSE_CODE,
        ) from exc
    if not isinstance(payload, dict):
        raise SB1HttpError(200, "Response body is not a JSON object", code=INVALID_RESPONSE_CODE)
    return payload


def _error_body(exc: HTTPError) -> str | None:
    if not exc.fp:
        return None
    try:
        return exc.read().decode("utf-8", errors="replace")
    except (OSError, HTTPException):
        return None


def _build_url(base_url: str, path: str, params: dict[str, Any] | None) -> str:
    normalized_path = path if path.startswith("/") else f"/{path}"
    url = f"{base_url.rstrip('/')}{normalized_path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def _first_error(raw_body: str | None) -> tuple[str, str]:
    """Pull (code, message) out of an SB1 `{"errors": [...]}` body, if there is one."""
    if not raw_body:
        return "", ""
    try:
        payload = json.loads(raw_body)
    except ValueError:
        return "", ""
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        first = errors[0]
        return str(first.get("code") or ""), str(first.get("message") or "")
    return "", ""
