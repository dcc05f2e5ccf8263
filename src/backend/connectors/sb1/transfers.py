from __future__ import annotations

from typing import Any

from .client import SB1Session


TRANSFER_DEBIT_PATH = "/personal/banking/transfer/debit"


def post_transfer(session: SB1Session, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Submit a transfer between two of the user's own accounts.

    Not retried on 429/5xx: the bank may have accepted the first attempt.
    """
    return session.post(TRANSFER_DEBIT_PATH, payload, max_retries=0)
