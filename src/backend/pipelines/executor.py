from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from common.rules_engine.amounts import resolve_amount
from common.rules_engine.fingerprint import TransactionFingerprint
from common.rules_engine.models import (
    ExecutionStatus,
    RuleExecution,
    RuleTransactionLog,
    Transaction,
    TransferRequest,
)
from common.rules_engine.rule import AccountNotFoundError, Action, Rule, resolve_account_ref

from .data_source import BankApiError, BankDataSource
from .repository import ExecutionHistory, ProcessingLedger


logger = logging.getLogger(__name__)


class ActionError(RuntimeError):
    """An action could not be attempted; nothing was submitted or recorded for it."""


def executed_marker(status: ExecutionStatus) -> str:
    return f"executed:{status.value}"


class ActionExecutor:
    """
    Runs one action of a matched rule against the bank.

    Whatever the transfer outcome, an execution row and an idempotency ledger row are
    written, so a failed transfer is not retried for the same transaction content.
    """

    def __init__(self, bank: BankDataSource, ledger: ProcessingLedger, history: ExecutionHistory):
        self._bank = bank
        self._ledger = ledger
        self._history = history

    def execute(
        self,
        rule: Rule,
        tx: Transaction,
        action: Action,
        fingerprint: TransactionFingerprint,
    ) -> RuleExecution:
        # Fetched per action: an earlier transfer in the same rule may have moved money.
        try:
            accounts = self._bank.get_accounts().accounts
        except BankApiError as exc:
            raise ActionError(f"Could not load accounts: {exc}") from exc

        try:
            from_account = resolve_account_ref(action.from_account, rule.trigger_account_key, accounts)
            to_account = resolve_account_ref(action.to_account, rule.trigger_account_key, accounts)
        except AccountNotFoundError as exc:
            raise ActionError(str(exc)) from exc

        amount = resolve_amount(action.amount, tx)
        if not math.isfinite(amount) or amount <= 0:
            raise ActionError(f"Resolved transfer amount {amount!r} is not a positive number")

        request = TransferRequest(
            amount=f"{amount:.2f}",
            from_account=from_account.account_number,
            to_account=to_account.account_number,
            message=action.message,
        )

        payment_id: Optional[str] = None
        error_message: Optional[str] = None
        try:
            response = self._bank.create_transfer(request)
        except BankApiError as exc:
            status = ExecutionStatus.FAILED
            error_message = str(exc)
        else:
            if response.errors:
                status = ExecutionStatus.FAILED
                error_message = response.errors[0].message or response.errors[0].code or "Transfer rejected"
            else:
                status = ExecutionStatus.SUCCESS
                payment_id = response.payment_id

        now = datetime.now(timezone.utc)
        execution = RuleExecution(
            id=str(uuid.uuid4()),
            rule_id=rule.id,
            transaction_id=tx.id,
            transfer_payment_id=payment_id,
            amount=amount,
            from_account=from_account.account_number,
            to_account=to_account.account_number,
            status=status,
            error_message=error_message,
            executed_at=now,
        )
        self._history.record_execution(execution)
        self._ledger.record_processing(
            RuleTransactionLog(
                id=str(uuid.uuid4()),
                rule_id=rule.id,
                transaction_id=tx.id,
                transaction_fingerprint=fingerprint.fingerprint,
                action_taken=executed_marker(status),
                processed_at=now,
            )
        )

        if status == ExecutionStatus.SUCCESS:
            logger.info(
                "Rule '%s' transferred %s from %s to %s (payment %s)",
                rule.name,
                request.amount,
                request.from_account,
                request.to_account,
                payment_id,
            )
        else:
            logger.warning(
                "Rule '%s' transfer of %s for transaction %s failed: %s",
                rule.name,
                request.amount,
                tx.id,
                error_message,
            )
        return execution
