from __future__ import annotations

from typing import Any

from common.rules_engine.models import TransferError, TransferRequest, TransferResponse


class SB1TransferAdapterError(ValueError):
    pass


def transfer_request_to_payload(request: TransferRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "amount": request.amount,
        "fromAccount": request.from_account,
        "toAccount": request.to_account,
    }
    if request.message:
        payload["message"] = request.message
    if request.due_date:
        payload["dueDate"] = request.due_date
    if request.currency_code:
        payload["currencyCode"] = request.currency_code
    return payload


def transfer_response_from_payload(payload: Any) -> TransferResponse:
    if not isinstance(payload, dict):
        raise SB1TransferAdapterError("Transfer response must be a JSON object.")

    errors = []
    raw_errors = payload.get("errors")
    if isinstance(raw_errors, list):
        for raw in raw_errors:
            if isinstance(raw, dict):
                errors.append(
                    TransferError(
                        code=str(raw.get("code") or ""),
                        message=str(raw.get("message") or ""),
                        trace_id=str(raw.get("traceId") or ""),
                    )
                )
            else:
                errors.append(TransferError(message=str(raw)))

    payment_id = payload.get("paymentId")
    status = payload.get("status")
    return TransferResponse(
        errors=errors,
        payment_id=str(payment_id) if payment_id is not None else None,
        status=str(status) if status is not None else None,
    )
