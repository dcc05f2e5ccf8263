from __future__ import annotations

from typing import Any, Optional

from common.rules_engine.models import Transaction, TransactionsResponse

from .accounts import account_number_from_payload, errors_from_payload


class SB1TransactionsAdapterError(ValueError):
    pass


def transaction_from_payload(raw: dict[str, Any]) -> Transaction:
    tx_id = raw.get("id")
    if not isinstance(tx_id, str) or not tx_id.strip():
        raise SB1TransactionsAdapterError("Transaction payload is missing 'id'.")
    amount = raw.get("amount")
    if not isinstance(amount, (int, float)) or isinstance(amount, bool):
        raise SB1TransactionsAdapterError(f"Transaction {tx_id} has no numeric amount.")

    return Transaction(
        id=tx_id,
        non_unique_id=str(raw.get("nonUniqueId") or ""),
        description=_optional_str(raw.get("description")),
        cleaned_description=_optional_str(raw.get("cleanedDescription")),
        account_number=account_number_from_payload(raw.get("accountNumber")),
        amount=float(amount),
        date=int(raw.get("date") or 0),
        interest_date=_optional_int(raw.get("interestDate")),
        type_code=str(raw.get("typeCode") or ""),
        type_text=str(raw.get("typeText") or ""),
        currency_code=str(raw.get("currencyCode") or "NOK"),
        booking_status=str(raw.get("bookingStatus") or ""),
        account_key=str(raw.get("accountKey") or ""),
        account_name=str(raw.get("accountName") or ""),
        source=str(raw.get("source") or ""),
        remote_account_number=_optional_str(raw.get("remoteAccountNumber")),
        remote_account_name=_optional_str(raw.get("remoteAccountName")),
        kid_or_message=_optional_str(raw.get("kidOrMessage")),
    )


def transactions_response_from_payload(payload: Any, *, account_key: str = "") -> TransactionsResponse:
    """
    Convert a `GET /personal/banking/transactions` body into a TransactionsResponse.

    Transactions missing an id or amount are reported in `errors` instead of failing the
    whole account. `account_key` fills in entries that come back without one.
    """
    if not isinstance(payload, dict):
        raise SB1TransactionsAdapterError("Transactions payload must be a JSON object.")

    errors = errors_from_payload(payload)
    transactions = []
    raw_transactions = payload.get("transactions")
    if isinstance(raw_transactions, list):
        for raw in raw_transactions:
            if not isinstance(raw, dict):
                continue
            try:
                tx = transaction_from_payload(raw)
            except SB1TransactionsAdapterError as exc:
                errors.append({"code": "INVALID_TRANSACTION", "message": str(exc)})
                continue
            if not tx.account_key and account_key:
                tx = tx.model_copy(update={"account_key": account_key})
            transactions.append(tx)
    return TransactionsResponse(transactions=transactions, errors=errors)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
