from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from pipelines.demo_bank import DemoBankClient


router = APIRouter(prefix="/demo", tags=["demo"])

_DISABLED_MESSAGE = "Demo mode is not enabled. Start the server with --demo."


class CreateTransactionRequest(BaseModel):
    account_key: str
    description: str
    amount: float
    is_settled: bool = True


def get_demo_bank(request: Request) -> DemoBankClient:
    bank = getattr(request.app.state, "bank", None)
    if not isinstance(bank, DemoBankClient):
        raise HTTPException(status_code=403, detail=_DISABLED_MESSAGE)
    return bank


@router.get("/status")
def demo_status(request: Request):
    enabled = isinstance(getattr(request.app.state, "bank", None), DemoBankClient)
    return {
        "enabled": enabled,
        "message": "Demo mode is active. You can create test transactions." if enabled else _DISABLED_MESSAGE,
    }


@router.post("/transactions")
def create_demo_transaction(payload: CreateTransactionRequest, bank: DemoBankClient = Depends(get_demo_bank)):
    """Inject a transaction into the demo bank; the next poll picks it up."""
    tx = bank.create_transaction(
        payload.account_key,
        payload.description,
        payload.amount,
        settled=payload.is_settled,
    )
    if tx is None:
        raise HTTPException(status_code=404, detail=f"Account not found: {payload.account_key}")
    bank.add_transaction(tx)
    return {"success": True, "transaction_id": tx.id, "transaction": tx}


@router.get("/accounts")
def list_demo_accounts(bank: DemoBankClient = Depends(get_demo_bank)):
    return {
        "accounts": [
            {
                "key": a.key,
                "name": a.name,
                "account_number": a.account_number,
                "balance": a.balance,
                "account_type": a.type,
            }
            for a in bank.get_accounts().accounts
        ]
    }
