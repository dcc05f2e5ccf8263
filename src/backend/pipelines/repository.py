from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from common.rules_engine.models import (
    RuleExecution,
    RuleTransactionLog,
    TrackedTransaction,
)
from common.rules_engine.rule import Rule


class RepositoryError(RuntimeError):
    """A persistence operation failed; the underlying driver error is chained."""


class RuleStore(Protocol):
    def list_rules(self) -> List[Rule]:
        ...

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        ...

    def create_rule(self, rule: Rule) -> None:
        ...

    def update_rule(self, rule: Rule) -> None:
        ...

    def delete_rule(self, rule_id: str) -> None:
        ...

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> None:
        ...

    def get_enabled_rules_by_account(self) -> Dict[str, List[Rule]]:
        """Enabled rules keyed by trigger account, each list in creation order."""
        ...


class TrackingStore(Protocol):
    def get_tracked_transaction(self, transaction_id: str) -> Optional[TrackedTransaction]:
        ...

    def upsert_tracked_transaction(self, tracked: TrackedTransaction) -> None:
        """Insert, or update everything except `first_seen_at` for an existing id."""
        ...


class ProcessingLedger(Protocol):
    def has_processed(self, rule_id: str, transaction_id: str, fingerprint: str) -> bool:
        ...

    def record_processing(self, log: RuleTransactionLog) -> bool:
        """Return False when a row for the same (rule, transaction, fingerprint) already exists."""
        ...

    def get_processing_log(self, rule_id: str) -> List[RuleTransactionLog]:
        ...


class ExecutionHistory(Protocol):
    def record_execution(self, execution: RuleExecution) -> None:
        ...

    def get_execution(self, execution_id: str) -> Optional[RuleExecution]:
        ...

    def list_executions(self, limit: int = 100) -> List[RuleExecution]:
        ...

    def get_rule_executions(self, rule_id: str) -> List[RuleExecution]:
        ...


class Repository(RuleStore, TrackingStore, ProcessingLedger, ExecutionHistory, Protocol):
    pass
