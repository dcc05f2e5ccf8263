from __future__ import annotations

from typing import Any

from .client import SB1Session


TRANSACTIONS_PATH = "/personal/banking/transactions"


def fetch_transactions(session: SB1Session, account_key: str) -> dict[str, Any]:
    """
    Fetch recent transactions for one account (`{"transactions": [...], "errors": [...]}`).
    """
    if not account_key:
        raise ValueError("account_key is required")
    return session.get(TRANSACTIONS_PATH, params={"accountKey": account_key})
