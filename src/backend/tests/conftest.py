import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work,
# even when pytest's rootdir is the repository root (pyproject.toml).
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import pytest

from common.rules_engine.models import Account, Transaction
from common.rules_engine.rule import Rule
from pipelines.demo_bank import DemoBankClient, sample_accounts
from pipelines.sql_repository import SqlRepository


@pytest.fixture
def make_transaction():
    def _make(
        *,
        id: str = "tx-001",
        description: str | None = "NETFLIX.COM",
        cleaned_description: str | None = None,
        amount: float = -179.0,
        type_code: str = "PURCHASE",
        booking_status: str = "BOOKED",
        account_key: str = "checking-1",
        date: int = 1_700_000_000_000,
        **extra,
    ) -> Transaction:
        return Transaction(
            id=id,
            non_unique_id=id,
            description=description,
            cleaned_description=cleaned_description,
            account_number="12345678901",
            amount=amount,
            date=date,
            type_code=type_code,
            type_text=type_code.title(),
            booking_status=booking_status,
            account_key=account_key,
            account_name="Checking Account",
            **extra,
        )

    return _make


@pytest.fixture
def make_account():
    def _make(*, key: str, account_number: str, name: str = "", balance: float = 0.0) -> Account:
        return Account(
            key=key,
            account_number=account_number,
            name=name or key,
            balance=balance,
            available_balance=balance,
        )

    return _make


@pytest.fixture
def make_rule():
    def _make(*, id: str = "rule-1", name: str = "", trigger_account_key: str = "checking-1", **fields) -> Rule:
        return Rule.model_validate(
            {
                "id": id,
                "name": name or id,
                "trigger_account_key": trigger_account_key,
                **fields,
            }
        )

    return _make


@pytest.fixture
def bank() -> DemoBankClient:
    """Demo bank with the sample accounts and no transactions."""
    return DemoBankClient(accounts=sample_accounts())


@pytest.fixture
def repository(tmp_path) -> SqlRepository:
    repo = SqlRepository(f"sqlite:///{tmp_path / 'autobank.db'}")
    repo.create_tables()
    yield repo
    repo.dispose()
