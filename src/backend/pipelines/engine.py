from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from common.rules_engine.config import EngineConfig
from common.rules_engine.fingerprint import (
    TransactionFingerprint,
    decide_processing,
    fingerprint_transaction,
)
from common.rules_engine.models import (
    DecisionKind,
    ExecutionStatus,
    PollReport,
    RuleTransactionLog,
    TrackedTransaction,
    Transaction,
)
from common.rules_engine.rule import Rule

from .data_source import BankApiError, BankDataSource
from .executor import ActionError, ActionExecutor
from .repository import Repository, RepositoryError


logger = logging.getLogger(__name__)

SKIPPED_MARKER = "skipped"


class RuleEngine:
    """
    One poll cycle: fetch each trigger account's transactions, decide which are new or
    changed, and run the account's rules against those.

    Accounts, transactions, rules and actions are handled sequentially and in order.
    A failure is contained to the account, transaction, rule or action it came from.
    """

    def __init__(
        self,
        bank: BankDataSource,
        repository: Repository,
        *,
        executor: Optional[ActionExecutor] = None,
        config: Optional[EngineConfig] = None,
    ):
        self._bank = bank
        self._repository = repository
        self._executor = executor or ActionExecutor(bank, repository, repository)
        self._config = config or EngineConfig()

    def evaluate_all(self) -> PollReport:
        report = PollReport(run_id=str(uuid.uuid4()), started_at=datetime.now(timezone.utc))
        rules_by_account = self._repository.get_enabled_rules_by_account()
        logger.debug("Poll %s: %d trigger account(s) with enabled rules", report.run_id, len(rules_by_account))

        for account_key, rules in rules_by_account.items():
            try:
                response = self._bank.get_transactions(account_key)
            except BankApiError as exc:
                report.accounts_failed += 1
                logger.error("Failed to fetch transactions for account %s: %s", account_key, exc)
                continue
            report.accounts_polled += 1
            if response.errors:
                logger.warning("Bank reported errors for account %s: %s", account_key, response.errors)

            for tx in response.transactions:
                report.transactions_seen += 1
                try:
                    self._process_transaction(account_key, tx, rules, report)
                except RepositoryError as exc:
                    report.transactions_failed += 1
                    logger.error("Persistence failure while processing transaction %s: %s", tx.id, exc)

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Poll %s finished: %d account(s), %d transaction(s) processed, %d execution(s) (%d failed)",
            report.run_id,
            report.accounts_polled,
            report.transactions_processed,
            report.executions_succeeded + report.executions_failed,
            report.executions_failed,
        )
        return report

    def _process_transaction(
        self,
        account_key: str,
        tx: Transaction,
        rules: List[Rule],
        report: PollReport,
    ) -> None:
        fingerprint = fingerprint_transaction(tx)
        tracked = self._repository.get_tracked_transaction(tx.id)
        decision = decide_processing(
            tx,
            fingerprint,
            tracked,
            defer_pending=self._config.defer_pending_transactions,
        )
        if decision.kind == DecisionKind.SKIP:
            report.transactions_skipped += 1
            return
        if decision.kind == DecisionKind.WAIT:
            report.transactions_deferred += 1
            logger.debug("Deferring transaction %s: %s", tx.id, decision.reason)
            return

        report.transactions_processed += 1
        now = datetime.now(timezone.utc)
        self._repository.upsert_tracked_transaction(
            TrackedTransaction(
                id=tx.id,
                account_key=account_key,
                fingerprint=fingerprint.fingerprint,
                first_seen_at=tracked.first_seen_at if tracked is not None else now,
                last_updated_at=now,
                settled=tx.is_settled,
                raw_data=tx.model_dump_json(),
            )
        )

        for rule in rules:
            try:
                self._apply_rule(rule, tx, fingerprint, report)
            except RepositoryError as exc:
                report.rules_failed += 1
                logger.error("Rule '%s' failed on transaction %s: %s", rule.name, tx.id, exc)

    def _apply_rule(
        self,
        rule: Rule,
        tx: Transaction,
        fingerprint: TransactionFingerprint,
        report: PollReport,
    ) -> None:
        if self._repository.has_processed(rule.id, tx.id, fingerprint.fingerprint):
            report.rules_already_handled += 1
            return

        report.rules_evaluated += 1
        if not rule.matches(tx):
            self._repository.record_processing(
                RuleTransactionLog(
                    id=str(uuid.uuid4()),
                    rule_id=rule.id,
                    transaction_id=tx.id,
                    transaction_fingerprint=fingerprint.fingerprint,
                    action_taken=SKIPPED_MARKER,
                    processed_at=datetime.now(timezone.utc),
                )
            )
            return

        report.rules_matched += 1
        logger.info("Rule '%s' matched transaction %s (%s)", rule.name, tx.id, tx.description_text)
        for action in rule.actions:
            try:
                execution = self._executor.execute(rule, tx, action, fingerprint)
            except ActionError as exc:
                report.actions_aborted += 1
                logger.warning("Rule '%s' action aborted for transaction %s: %s", rule.name, tx.id, exc)
                continue
            if execution.status == ExecutionStatus.SUCCESS:
                report.executions_succeeded += 1
            else:
                report.executions_failed += 1
