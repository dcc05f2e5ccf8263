from __future__ import annotations

from typing import Any

from common.rules_engine.models import Account, AccountsResponse


class SB1AccountsAdapterError(ValueError):
    pass


def account_from_payload(raw: dict[str, Any]) -> Account:
    key = raw.get("key")
    if not isinstance(key, str) or not key.strip():
        raise SB1AccountsAdapterError("Account payload is missing 'key'.")
    return Account(
        key=key,
        account_number=account_number_from_payload(raw.get("accountNumber")),
        iban=str(raw.get("iban") or ""),
        name=str(raw.get("name") or ""),
        description=str(raw.get("description") or ""),
        balance=float(raw.get("balance") or 0.0),
        available_balance=float(raw.get("availableBalance") or 0.0),
        currency_code=str(raw.get("currencyCode") or "NOK"),
        product_type=str(raw.get("productType") or ""),
        type=str(raw.get("type") or ""),
    )


def accounts_response_from_payload(payload: Any) -> AccountsResponse:
    """
    Convert a `GET /personal/banking/accounts` body into an AccountsResponse.

    Entries without a key are dropped; the bank's own `errors` array is passed through.
    """
    if not isinstance(payload, dict):
        raise SB1AccountsAdapterError("Accounts payload must be a JSON object.")

    raw_accounts = payload.get("accounts")
    accounts = []
    if isinstance(raw_accounts, list):
        for raw in raw_accounts:
            if not isinstance(raw, dict):
                continue
            try:
                accounts.append(account_from_payload(raw))
            except SB1AccountsAdapterError:
                continue
    return AccountsResponse(accounts=accounts, errors=errors_from_payload(payload))


def account_number_from_payload(value: Any) -> str:
    # Accounts carry a plain string; transactions nest {value, formatted, unformatted}.
    if isinstance(value, dict):
        return str(value.get("unformatted") or value.get("value") or "")
    return str(value or "")


def errors_from_payload(payload: dict[str, Any]) -> list[dict[str, Any]]:
    raw = payload.get("errors")
    if not isinstance(raw, list):
        return []
    return [e if isinstance(e, dict) else {"message": str(e)} for e in raw]
