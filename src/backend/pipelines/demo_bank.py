from __future__ import annotations

import itertools
import logging
import threading
import time
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional, Union

from common.rules_engine.amounts import Percentage, TransactionAmountAbs
from common.rules_engine.conditions import AmountLessThan, DescriptionMatches, IsSettled, TransactionType
from common.rules_engine.models import (
    Account,
    AccountsResponse,
    Transaction,
    TransactionsResponse,
    TransferRequest,
    TransferResponse,
)
from common.rules_engine.rule import ByKey, Rule, Transfer, TriggerAccount

from .data_source import BankApiError


logger = logging.getLogger(__name__)

_DAY_MS = 86_400_000

TransferOutcome = Union[TransferResponse, BankApiError]


class DemoBankClient:
    """
    In-memory bank used for demo mode and tests.

    Transfers are recorded, never executed. Queued outcomes are returned in order by
    `create_transfer`; when the queue is empty every transfer succeeds.
    """

    def __init__(
        self,
        *,
        accounts: Optional[List[Account]] = None,
        transactions: Optional[List[Transaction]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._accounts: List[Account] = list(accounts or [])
        self._transactions: List[Transaction] = list(transactions or [])
        self._transaction_errors: Dict[str, BankApiError] = {}
        self._accounts_error: Optional[BankApiError] = None
        self._transfer_outcomes: Deque[TransferOutcome] = deque()
        self._transfer_history: List[TransferRequest] = []
        self._next_tx_id = itertools.count(100)

    @classmethod
    def with_sample_data(cls) -> "DemoBankClient":
        accounts = sample_accounts()
        return cls(accounts=accounts, transactions=sample_transactions(accounts[0]))

    def get_accounts(self) -> AccountsResponse:
        with self._lock:
            if self._accounts_error is not None:
                raise self._accounts_error
            return AccountsResponse(accounts=[a.model_copy() for a in self._accounts])

    def get_transactions(self, account_key: str) -> TransactionsResponse:
        with self._lock:
            error = self._transaction_errors.get(account_key)
            if error is not None:
                raise error
            if not any(a.key == account_key for a in self._accounts):
                raise BankApiError(f"No transactions for account {account_key}", code="NOT_FOUND")
            return TransactionsResponse(
                transactions=[tx.model_copy() for tx in self._transactions if tx.account_key == account_key]
            )

    def create_transfer(self, request: TransferRequest) -> TransferResponse:
        with self._lock:
            self._transfer_history.append(request)
            outcome = self._transfer_outcomes.popleft() if self._transfer_outcomes else None
        logger.info(
            "Demo transfer: %s from %s to %s",
            request.amount,
            request.from_account,
            request.to_account,
        )
        if isinstance(outcome, BankApiError):
            raise outcome
        if outcome is not None:
            return outcome
        return TransferResponse(payment_id=f"demo-payment-{uuid.uuid4()}", status="COMPLETED")

    def set_accounts(self, accounts: List[Account]) -> None:
        with self._lock:
            self._accounts = list(accounts)

    def set_transactions(self, account_key: str, transactions: List[Transaction]) -> None:
        with self._lock:
            kept = [tx for tx in self._transactions if tx.account_key != account_key]
            self._transactions = kept + [tx.model_copy(update={"account_key": account_key}) for tx in transactions]

    def add_transaction(self, tx: Transaction) -> None:
        logger.info("Adding demo transaction: %s - %s", tx.id, tx.description_text)
        with self._lock:
            self._transactions.append(tx)

    def replace_transaction(self, tx: Transaction) -> None:
        with self._lock:
            self._transactions = [tx if existing.id == tx.id else existing for existing in self._transactions]

    def create_transaction(
        self,
        account_key: str,
        description: str,
        amount: float,
        *,
        settled: bool = True,
    ) -> Optional[Transaction]:
        with self._lock:
            account = next((a for a in self._accounts if a.key == account_key), None)
            tx_number = next(self._next_tx_id)
        if account is None:
            return None
        now = int(time.time() * 1000)
        type_code = "TRANSFER" if amount >= 0 else "PURCHASE"
        return Transaction(
            id=f"tx-{tx_number}",
            non_unique_id=f"tx-{tx_number}",
            description=description.upper(),
            cleaned_description=description,
            account_number=account.account_number,
            amount=amount,
            date=now,
            interest_date=now if settled else None,
            type_code=type_code,
            type_text=type_code.title(),
            booking_status="BOOKED" if settled else "PENDING",
            account_key=account.key,
            account_name=account.name,
            source="CARD",
        )

    def fail_transactions(self, account_key: str, error: BankApiError) -> None:
        with self._lock:
            self._transaction_errors[account_key] = error

    def fail_accounts(self, error: Optional[BankApiError]) -> None:
        with self._lock:
            self._accounts_error = error

    def queue_transfer_result(self, outcome: TransferOutcome) -> None:
        with self._lock:
            self._transfer_outcomes.append(outcome)

    @property
    def transfer_history(self) -> List[TransferRequest]:
        with self._lock:
            return list(self._transfer_history)

    def clear_transfer_history(self) -> None:
        with self._lock:
            self._transfer_history.clear()


def sample_accounts() -> List[Account]:
    return [
        Account(
            key="checking-1",
            account_number="12345678901",
            iban="NO9312345678901",
            name="Checking Account",
            description="Main checking account",
            balance=15420.50,
            available_balance=15420.50,
            product_type="CURRENT",
            type="ACCOUNT",
        ),
        Account(
            key="savings-1",
            account_number="12345678902",
            iban="NO9312345678902",
            name="Savings Account",
            description="High-interest savings",
            balance=52000.00,
            available_balance=52000.00,
            product_type="SAVINGS",
            type="ACCOUNT",
        ),
        Account(
            key="creditcard-1",
            account_number="12345678903",
            iban="NO9312345678903",
            name="Credit Card",
            description="Visa Gold",
            balance=-2340.00,
            available_balance=47660.00,
            product_type="CREDITCARD",
            type="CREDITCARD",
        ),
    ]


def sample_transactions(checking: Account) -> List[Transaction]:
    now = int(time.time() * 1000)
    samples = [
        # (id, raw, cleaned, amount, days ago, type code, status)
        ("tx-001", "NETFLIX.COM", "Netflix", -179.0, 1, "PURCHASE", "BOOKED"),
        ("tx-002", "SPOTIFY AB", "Spotify", -119.0, 2, "PURCHASE", "BOOKED"),
        ("tx-003", "REMA 1000 SENTRUM", "Rema 1000", -342.50, 3, "PURCHASE", "BOOKED"),
        ("tx-004", "SALARY ACME CORP", "Salary", 45000.0, 5, "SALARY", "BOOKED"),
        ("tx-005", "AMAZON.COM*123ABC", "Amazon", -599.0, 0, "PURCHASE", "PENDING"),
    ]
    out = []
    for tx_id, raw, cleaned, amount, days_ago, type_code, status in samples:
        when = now - days_ago * _DAY_MS
        out.append(
            Transaction(
                id=tx_id,
                non_unique_id=tx_id,
                description=raw,
                cleaned_description=cleaned,
                account_number=checking.account_number,
                amount=amount,
                date=when,
                interest_date=when if status == "BOOKED" else None,
                type_code=type_code,
                type_text=type_code.title(),
                booking_status=status,
                account_key=checking.key,
                account_name=checking.name,
                source="TRANSFER" if type_code == "SALARY" else "CARD",
            )
        )
    return out


def sample_rules() -> List[Rule]:
    """Rules that exercise the sample data: a subscription sweep and a salary savings split."""
    return [
        Rule(
            id="demo-netflix-sweep",
            name="Match Netflix into savings",
            description="Move the same amount as every Netflix charge to savings.",
            trigger_account_key="checking-1",
            conditions=[
                DescriptionMatches(pattern="netflix", case_insensitive=True),
                AmountLessThan(value=0),
            ],
            actions=[
                Transfer(
                    from_account=TriggerAccount(),
                    to_account=ByKey(key="savings-1"),
                    amount=TransactionAmountAbs(),
                    message="Netflix sweep",
                )
            ],
        ),
        Rule(
            id="demo-salary-savings",
            name="Save 10% of salary",
            trigger_account_key="checking-1",
            conditions=[TransactionType(type_code="SALARY"), IsSettled()],
            actions=[
                Transfer(
                    from_account=TriggerAccount(),
                    to_account=ByKey(key="savings-1"),
                    amount=Percentage(of_transaction=10.0),
                    message="Salary savings",
                )
            ],
        ),
    ]
