from __future__ import annotations

from typing import Any

from .client import SB1Session


ACCOUNTS_PATH = "/personal/banking/accounts"


def fetch_accounts(session: SB1Session, *, include_credit_cards: bool = True) -> dict[str, Any]:
    """
    Fetch every account the token owner can see (`{"accounts": [...], "errors": [...]}`).
    """
    return session.get(
        ACCOUNTS_PATH,
        params={"includeCreditCardAccounts": "true" if include_credit_cards else "false"},
    )
