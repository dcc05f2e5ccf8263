from __future__ import annotations

import json
import logging
import threading
from typing import Optional

from adapters.sb1.accounts import accounts_response_from_payload
from adapters.sb1.transactions import transactions_response_from_payload
from adapters.sb1.transfers import (
    SB1TransferAdapterError,
    transfer_request_to_payload,
    transfer_response_from_payload,
)
from common.rules_engine.models import (
    AccountsResponse,
    TransactionsResponse,
    TransferRequest,
    TransferResponse,
)
from connectors.sb1.accounts import fetch_accounts
from connectors.sb1.auth import SB1AuthError
from connectors.sb1.client import SB1HttpError, SB1Session
from connectors.sb1.config import SB1Config, get_sb1_config
from connectors.sb1.transactions import fetch_transactions
from connectors.sb1.transfers import post_transfer

from .data_source import BankApiError


logger = logging.getLogger(__name__)


class LiveSB1BankClient:
    """
    BankDataSource backed by the SpareBank 1 personal banking API.

    Connector errors and malformed payloads (adapter and model validation errors are
    ValueErrors) surface as BankApiError. A rejected transfer whose body carries an
    `errors` array comes back as a TransferResponse with those errors.
    """

    def __init__(self, config: Optional[SB1Config] = None) -> None:
        self._session = SB1Session(config or get_sb1_config())
        # Serialises token refreshes between the scheduler thread and manual polls.
        self._lock = threading.Lock()

    def get_accounts(self) -> AccountsResponse:
        with self._lock:
            try:
                payload = fetch_accounts(self._session)
                return accounts_response_from_payload(payload)
            except (SB1HttpError, SB1AuthError, ValueError) as exc:
                raise _bank_error("Failed to fetch accounts", exc) from exc

    def get_transactions(self, account_key: str) -> TransactionsResponse:
        with self._lock:
            try:
                payload = fetch_transactions(self._session, account_key)
                return transactions_response_from_payload(payload, account_key=account_key)
            except (SB1HttpError, SB1AuthError, ValueError) as exc:
                raise _bank_error(f"Failed to fetch transactions for {account_key}", exc) from exc

    def create_transfer(self, request: TransferRequest) -> TransferResponse:
        with self._lock:
            try:
                payload = post_transfer(self._session, transfer_request_to_payload(request))
                return transfer_response_from_payload(payload)
            except SB1HttpError as exc:
                rejected = _rejected_transfer(exc)
                if rejected is not None:
                    logger.warning("Transfer rejected by bank: HTTP %s %s", exc.status, exc.code)
                    return rejected
                raise _bank_error("Transfer failed", exc) from exc
            except (SB1AuthError, ValueError) as exc:
                raise _bank_error("Transfer failed", exc) from exc


def _bank_error(prefix: str, exc: Exception) -> BankApiError:
    code = ""
    if isinstance(exc, SB1HttpError):
        code = exc.code or str(exc.status)
    elif isinstance(exc, SB1AuthError):
        code = "AUTH"
    return BankApiError(f"{prefix}: {exc}", code=code)


def _rejected_transfer(exc: SB1HttpError) -> Optional[TransferResponse]:
    if not (400 <= exc.status < 500) or not exc.body:
        return None
    try:
        payload = json.loads(exc.body)
    except ValueError:
        return None
    if not isinstance(payload, dict) or not payload.get("errors"):
        return None
    try:
        return transfer_response_from_payload(payload)
    except SB1TransferAdapterError:
        return None
