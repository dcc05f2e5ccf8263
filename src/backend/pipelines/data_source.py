from __future__ import annotations

from typing import Protocol

from common.rules_engine.models import (
    AccountsResponse,
    TransactionsResponse,
    TransferRequest,
    TransferResponse,
)


class BankApiError(RuntimeError):
    """Hard failure talking to the bank (transport, auth, non-2xx response)."""

    def __init__(self, message: str, *, code: str = ""):
        super().__init__(message)
        self.code = code


class BankDataSource(Protocol):
    def get_accounts(self) -> AccountsResponse:
        """Return every account visible to the authenticated user."""
        ...

    def get_transactions(self, account_key: str) -> TransactionsResponse:
        """Return recent transactions for one account."""
        ...

    def create_transfer(self, request: TransferRequest) -> TransferResponse:
        """
        Submit a transfer between two of the user's accounts.

        A returned response with non-empty `errors` means the transfer was not completed;
        raising BankApiError means the call itself failed.
        """
        ...


def get_bank_client(name: str) -> BankDataSource:
    """Resolve a bank data source implementation by name (demo|live)."""
    source = (name or "").strip().lower()
    if source in ("demo", ""):
        from .demo_bank import DemoBankClient

        return DemoBankClient.with_sample_data()
    if source == "live":
        from .live_sb1 import LiveSB1BankClient

        return LiveSB1BankClient()
    raise ValueError(f"Unknown bank data source '{name}' (expected 'demo' or 'live').")
