from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


SETTLED_BOOKING_STATUS = "BOOKED"


class Account(BaseModel):
    key: str
    account_number: str
    iban: str = ""
    name: str = ""
    description: str = ""
    balance: float = 0.0
    available_balance: float = 0.0
    currency_code: str = "NOK"
    product_type: str = ""
    type: str = ""


class AccountsResponse(BaseModel):
    accounts: List[Account] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class Transaction(BaseModel):
    id: str
    non_unique_id: str = ""
    description: Optional[str] = None
    cleaned_description: Optional[str] = None
    account_number: str = ""
    amount: float
    # Epoch milliseconds, as reported by the bank.
    date: int = 0
    interest_date: Optional[int] = None
    type_code: str = ""
    type_text: str = ""
    currency_code: str = "NOK"
    booking_status: str = ""
    account_key: str = ""
    account_name: str = ""
    source: str = ""
    remote_account_number: Optional[str] = None
    remote_account_name: Optional[str] = None
    kid_or_message: Optional[str] = None

    @property
    def description_text(self) -> str:
        if self.cleaned_description is not None:
            return self.cleaned_description
        return self.description or ""

    @property
    def is_settled(self) -> bool:
        return self.booking_status == SETTLED_BOOKING_STATUS


class TransactionsResponse(BaseModel):
    transactions: List[Transaction] = Field(default_factory=list)
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class TransferRequest(BaseModel):
    amount: str
    from_account: str
    to_account: str
    message: Optional[str] = None
    due_date: Optional[str] = None
    currency_code: Optional[str] = None


class TransferError(BaseModel):
    code: str = ""
    message: str = ""
    trace_id: str = ""


class TransferResponse(BaseModel):
    errors: List[TransferError] = Field(default_factory=list)
    payment_id: Optional[str] = None
    status: Optional[str] = None


class TrackedTransaction(BaseModel):
    id: str
    account_key: str
    fingerprint: str
    first_seen_at: datetime
    last_updated_at: datetime
    settled: bool = False
    raw_data: str = "{}"


class RuleTransactionLog(BaseModel):
    id: str
    rule_id: str
    transaction_id: str
    transaction_fingerprint: str
    action_taken: str
    processed_at: datetime


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class RuleExecution(BaseModel):
    id: str
    rule_id: str
    transaction_id: str
    transfer_payment_id: Optional[str] = None
    amount: float
    from_account: str
    to_account: str
    status: ExecutionStatus
    error_message: Optional[str] = None
    executed_at: datetime


class DecisionKind(str, Enum):
    PROCESS = "PROCESS"
    SKIP = "SKIP"
    WAIT = "WAIT"


@dataclass(frozen=True)
class ProcessingDecision:
    kind: DecisionKind
    reason: str = ""

    @classmethod
    def process(cls) -> "ProcessingDecision":
        return cls(kind=DecisionKind.PROCESS)

    @classmethod
    def skip(cls, reason: str) -> "ProcessingDecision":
        return cls(kind=DecisionKind.SKIP, reason=reason)

    @classmethod
    def wait(cls, reason: str) -> "ProcessingDecision":
        return cls(kind=DecisionKind.WAIT, reason=reason)

    @property
    def should_process(self) -> bool:
        return self.kind == DecisionKind.PROCESS


class PollReport(BaseModel):
    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None

    accounts_polled: int = 0
    accounts_failed: int = 0

    transactions_seen: int = 0
    transactions_processed: int = 0
    transactions_skipped: int = 0
    transactions_deferred: int = 0
    transactions_failed: int = 0

    rules_evaluated: int = 0
    rules_matched: int = 0
    rules_already_handled: int = 0
    rules_failed: int = 0

    executions_succeeded: int = 0
    executions_failed: int = 0
    actions_aborted: int = 0
