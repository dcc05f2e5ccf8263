from __future__ import annotations

import json
import logging
from collections import OrderedDict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from common.rules_engine.models import (
    ExecutionStatus,
    RuleExecution,
    RuleTransactionLog,
    TrackedTransaction,
)
from common.rules_engine.rule import Rule

from .repository import RepositoryError


logger = logging.getLogger(__name__)

Base = declarative_base()


class RuleRow(Base):
    __tablename__ = "rules"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    enabled = Column(Boolean, nullable=False, default=True)
    trigger_account_key = Column(String, nullable=False, index=True)
    conditions = Column(Text, nullable=False)  # JSON list of condition trees
    actions = Column(Text, nullable=False)  # JSON list of actions
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class TrackedTransactionRow(Base):
    __tablename__ = "tracked_transactions"

    id = Column(String, primary_key=True)
    account_key = Column(String, nullable=False, index=True)
    fingerprint = Column(String, nullable=False)
    first_seen_at = Column(DateTime(timezone=True), nullable=False)
    last_updated_at = Column(DateTime(timezone=True), nullable=False)
    settled = Column(Boolean, nullable=False, default=False, index=True)
    raw_data = Column(Text, nullable=False)


class RuleTransactionLogRow(Base):
    __tablename__ = "rule_transaction_log"
    __table_args__ = (
        UniqueConstraint("rule_id", "transaction_id", "transaction_fingerprint", name="uq_rule_tx_fingerprint"),
        Index("idx_rule_transaction_log_rule", "rule_id"),
    )

    id = Column(String, primary_key=True)
    rule_id = Column(String, nullable=False)
    transaction_id = Column(String, nullable=False)
    transaction_fingerprint = Column(String, nullable=False)
    action_taken = Column(String, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False)


class RuleExecutionRow(Base):
    __tablename__ = "rule_executions"

    id = Column(String, primary_key=True)
    rule_id = Column(String, nullable=False, index=True)
    transaction_id = Column(String, nullable=False)
    transfer_payment_id = Column(String)
    amount = Column(Float, nullable=False)
    from_account = Column(String, nullable=False)
    to_account = Column(String, nullable=False)
    status = Column(String, nullable=False)
    error_message = Column(Text)
    executed_at = Column(DateTime(timezone=True), nullable=False, index=True)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _rule_from_row(row: RuleRow) -> Rule:
    return Rule.model_validate(
        {
            "id": row.id,
            "name": row.name,
            "description": row.description,
            "enabled": bool(row.enabled),
            "trigger_account_key": row.trigger_account_key,
            "conditions": json.loads(row.conditions),
            "actions": json.loads(row.actions),
            "created_at": _as_utc(row.created_at),
            "updated_at": _as_utc(row.updated_at),
        }
    )


def _dump_rule_parts(rule: Rule) -> tuple[str, str]:
    conditions = json.dumps([c.model_dump(mode="json") for c in rule.conditions])
    actions = json.dumps([a.model_dump(mode="json") for a in rule.actions])
    return conditions, actions


def _tracked_from_row(row: TrackedTransactionRow) -> TrackedTransaction:
    return TrackedTransaction(
        id=row.id,
        account_key=row.account_key,
        fingerprint=row.fingerprint,
        first_seen_at=_as_utc(row.first_seen_at),
        last_updated_at=_as_utc(row.last_updated_at),
        settled=bool(row.settled),
        raw_data=row.raw_data,
    )


def _log_from_row(row: RuleTransactionLogRow) -> RuleTransactionLog:
    return RuleTransactionLog(
        id=row.id,
        rule_id=row.rule_id,
        transaction_id=row.transaction_id,
        transaction_fingerprint=row.transaction_fingerprint,
        action_taken=row.action_taken,
        processed_at=_as_utc(row.processed_at),
    )


def _execution_from_row(row: RuleExecutionRow) -> RuleExecution:
    return RuleExecution(
        id=row.id,
        rule_id=row.rule_id,
        transaction_id=row.transaction_id,
        transfer_payment_id=row.transfer_payment_id,
        amount=row.amount,
        from_account=row.from_account,
        to_account=row.to_account,
        status=ExecutionStatus(row.status),
        error_message=row.error_message,
        executed_at=_as_utc(row.executed_at),
    )


class SqlRepository:
    """SQLAlchemy-backed rule store, tracking store, idempotency ledger and execution history."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        kwargs: dict = {"echo": echo}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}  # SQLite specific
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees its own empty database.
                kwargs["poolclass"] = StaticPool
        self._engine = create_engine(database_url, **kwargs)
        self._session_factory = sessionmaker(bind=self._engine, autoflush=False, expire_on_commit=False)

    def create_tables(self) -> None:
        """Create all database tables"""
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Failed to create tables: {exc}") from exc
        logger.info("Database tables ready")

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise RepositoryError(str(exc)) from exc
        finally:
            session.close()

    # --- Rules ---

    def list_rules(self) -> List[Rule]:
        with self._session() as db:
            rows = db.query(RuleRow).order_by(RuleRow.created_at.desc(), RuleRow.id).all()
            return [_rule_from_row(r) for r in rows]

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        with self._session() as db:
            row = db.get(RuleRow, rule_id)
            return _rule_from_row(row) if row is not None else None

    def create_rule(self, rule: Rule) -> None:
        conditions, actions = _dump_rule_parts(rule)
        with self._session() as db:
            db.add(
                RuleRow(
                    id=rule.id,
                    name=rule.name,
                    description=rule.description,
                    enabled=rule.enabled,
                    trigger_account_key=rule.trigger_account_key,
                    conditions=conditions,
                    actions=actions,
                    created_at=rule.created_at,
                    updated_at=rule.updated_at,
                )
            )

    def update_rule(self, rule: Rule) -> None:
        conditions, actions = _dump_rule_parts(rule)
        with self._session() as db:
            row = db.get(RuleRow, rule.id)
            if row is None:
                raise RepositoryError(f"Rule {rule.id} not found")
            row.name = rule.name
            row.description = rule.description
            row.enabled = rule.enabled
            row.trigger_account_key = rule.trigger_account_key
            row.conditions = conditions
            row.actions = actions
            row.updated_at = rule.updated_at

    def delete_rule(self, rule_id: str) -> None:
        with self._session() as db:
            db.query(RuleRow).filter(RuleRow.id == rule_id).delete()

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> None:
        with self._session() as db:
            db.query(RuleRow).filter(RuleRow.id == rule_id).update(
                {RuleRow.enabled: enabled, RuleRow.updated_at: datetime.now(timezone.utc)}
            )

    def get_enabled_rules_by_account(self) -> Dict[str, List[Rule]]:
        with self._session() as db:
            rows = (
                db.query(RuleRow)
                .filter(RuleRow.enabled.is_(True))
                .order_by(RuleRow.created_at, RuleRow.id)
                .all()
            )
            grouped: Dict[str, List[Rule]] = OrderedDict()
            for row in rows:
                rule = _rule_from_row(row)
                grouped.setdefault(rule.trigger_account_key, []).append(rule)
            return grouped

    def count_rules(self) -> int:
        with self._session() as db:
            return db.query(func.count(RuleRow.id)).scalar() or 0

    # --- Tracked transactions ---

    def get_tracked_transaction(self, transaction_id: str) -> Optional[TrackedTransaction]:
        with self._session() as db:
            row = db.get(TrackedTransactionRow, transaction_id)
            return _tracked_from_row(row) if row is not None else None

    def upsert_tracked_transaction(self, tracked: TrackedTransaction) -> None:
        with self._session() as db:
            row = db.get(TrackedTransactionRow, tracked.id)
            if row is None:
                db.add(
                    TrackedTransactionRow(
                        id=tracked.id,
                        account_key=tracked.account_key,
                        fingerprint=tracked.fingerprint,
                        first_seen_at=tracked.first_seen_at,
                        last_updated_at=tracked.last_updated_at,
                        settled=tracked.settled,
                        raw_data=tracked.raw_data,
                    )
                )
                return
            row.fingerprint = tracked.fingerprint
            row.last_updated_at = tracked.last_updated_at
            row.settled = tracked.settled
            row.raw_data = tracked.raw_data

    # --- Idempotency ledger ---

    def has_processed(self, rule_id: str, transaction_id: str, fingerprint: str) -> bool:
        with self._session() as db:
            count = (
                db.query(func.count(RuleTransactionLogRow.id))
                .filter(
                    RuleTransactionLogRow.rule_id == rule_id,
                    RuleTransactionLogRow.transaction_id == transaction_id,
                    RuleTransactionLogRow.transaction_fingerprint == fingerprint,
                )
                .scalar()
            )
            return bool(count)

    def record_processing(self, log: RuleTransactionLog) -> bool:
        session = self._session_factory()
        try:
            session.add(
                RuleTransactionLogRow(
                    id=log.id,
                    rule_id=log.rule_id,
                    transaction_id=log.transaction_id,
                    transaction_fingerprint=log.transaction_fingerprint,
                    action_taken=log.action_taken,
                    processed_at=log.processed_at,
                )
            )
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            logger.debug(
                "Ledger already holds rule %s / transaction %s / fingerprint %s",
                log.rule_id,
                log.transaction_id,
                log.transaction_fingerprint[:12],
            )
            return False
        except SQLAlchemyError as exc:
            session.rollback()
            raise RepositoryError(str(exc)) from exc
        finally:
            session.close()

    def get_processing_log(self, rule_id: str) -> List[RuleTransactionLog]:
        with self._session() as db:
            rows = (
                db.query(RuleTransactionLogRow)
                .filter(RuleTransactionLogRow.rule_id == rule_id)
                .order_by(RuleTransactionLogRow.processed_at)
                .all()
            )
            return [_log_from_row(r) for r in rows]

    # --- Execution history ---

    def record_execution(self, execution: RuleExecution) -> None:
        with self._session() as db:
            db.add(
                RuleExecutionRow(
                    id=execution.id,
                    rule_id=execution.rule_id,
                    transaction_id=execution.transaction_id,
                    transfer_payment_id=execution.transfer_payment_id,
                    amount=execution.amount,
                    from_account=execution.from_account,
                    to_account=execution.to_account,
                    status=execution.status.value,
                    error_message=execution.error_message,
                    executed_at=execution.executed_at,
                )
            )

    def get_execution(self, execution_id: str) -> Optional[RuleExecution]:
        with self._session() as db:
            row = db.get(RuleExecutionRow, execution_id)
            return _execution_from_row(row) if row is not None else None

    def list_executions(self, limit: int = 100) -> List[RuleExecution]:
        with self._session() as db:
            rows = db.query(RuleExecutionRow).order_by(RuleExecutionRow.executed_at.desc()).limit(limit).all()
            return [_execution_from_row(r) for r in rows]

    def get_rule_executions(self, rule_id: str) -> List[RuleExecution]:
        with self._session() as db:
            rows = (
                db.query(RuleExecutionRow)
                .filter(RuleExecutionRow.rule_id == rule_id)
                .order_by(RuleExecutionRow.executed_at.desc())
                .all()
            )
            return [_execution_from_row(r) for r in rows]

    def count_executions(self) -> int:
        with self._session() as db:
            return db.query(func.count(RuleExecutionRow.id)).scalar() or 0
