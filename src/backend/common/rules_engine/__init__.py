"""Source-agnostic rules engine for conditional transfers.

This package intentionally contains only domain logic:
- Inputs are transactions, accounts and rule definitions.
- No bank API, database, or network calls live here.
"""

from .amounts import AmountSpec, resolve_amount
from .conditions import Condition, conditions_match, evaluate_condition
from .config import EngineConfig, SchedulerConfig
from .fingerprint import TransactionFingerprint, decide_processing, fingerprint_transaction
from .models import (
    Account,
    ExecutionStatus,
    PollReport,
    ProcessingDecision,
    RuleExecution,
    RuleTransactionLog,
    TrackedTransaction,
    Transaction,
    TransferRequest,
    TransferResponse,
)
from .rule import AccountNotFoundError, AccountRef, Action, Rule, Transfer, resolve_account_ref
