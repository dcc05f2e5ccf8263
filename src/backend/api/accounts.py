from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from common.rules_engine.models import Account, AccountsResponse, TransactionsResponse
from pipelines.data_source import BankApiError, BankDataSource


router = APIRouter(prefix="/accounts", tags=["accounts"])


def get_bank(request: Request) -> BankDataSource:
    bank = getattr(request.app.state, "bank", None)
    if bank is None:
        raise HTTPException(status_code=503, detail="Bank is not configured.")
    return bank


def _fetch_accounts(bank: BankDataSource) -> AccountsResponse:
    try:
        return bank.get_accounts()
    except BankApiError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.get("", response_model=AccountsResponse)
def list_accounts(bank: BankDataSource = Depends(get_bank)):
    return _fetch_accounts(bank)


@router.get("/{key}", response_model=Account)
def get_account(key: str, bank: BankDataSource = Depends(get_bank)):
    account = next((a for a in _fetch_accounts(bank).accounts if a.key == key), None)
    if account is None:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.get("/{key}/transactions", response_model=TransactionsResponse)
def get_account_transactions(key: str, bank: BankDataSource = Depends(get_bank)):
    try:
        return bank.get_transactions(key)
    except BankApiError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
