from common.rules_engine.amounts import Fixed
from common.rules_engine.config import EngineConfig
from common.rules_engine.conditions import TransactionType
from common.rules_engine.fingerprint import fingerprint_transaction
from common.rules_engine.models import ExecutionStatus
from common.rules_engine.rule import ByKey, Transfer, TriggerAccount
from pipelines.data_source import BankApiError
from pipelines.engine import RuleEngine
from pipelines.repository import RepositoryError
from pipelines.sql_repository import SqlRepository


def test_netflix_rule_end_to_end(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(netflix_rule())
    bank.set_transactions("checking-1", [make_transaction(id="tx-001", description="NETFLIX.COM", amount=-179.0)])

    report = engine.evaluate_all()

    [execution] = repository.list_executions()
    assert execution.status == ExecutionStatus.SUCCESS
    assert execution.amount == 179.0
    assert execution.from_account == "12345678901"
    assert execution.to_account == "12345678902"
    assert execution.transaction_id == "tx-001"
    [log] = repository.get_processing_log("netflix-sweep")
    assert log.action_taken == "executed:success"

    assert report.accounts_polled == 1
    assert report.transactions_processed == 1
    assert report.rules_matched == 1
    assert report.executions_succeeded == 1
    assert report.finished_at is not None

    tracked = repository.get_tracked_transaction("tx-001")
    assert tracked.fingerprint == fingerprint_transaction(make_transaction()).fingerprint
    assert tracked.settled is True
    assert '"NETFLIX.COM"' in tracked.raw_data


def test_second_poll_without_changes_does_nothing(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(netflix_rule())
    bank.set_transactions(
        "checking-1",
        [make_transaction(id="tx-001"), make_transaction(id="tx-003", description="REMA 1000", amount=-342.5)],
    )

    engine.evaluate_all()
    report = engine.evaluate_all()

    assert len(bank.transfer_history) == 1
    assert len(repository.list_executions()) == 1
    assert sorted(log.action_taken for log in repository.get_processing_log("netflix-sweep")) == [
        "executed:success",
        "skipped",
    ]
    assert report.transactions_skipped == 2
    assert report.transactions_processed == 0
    assert report.rules_evaluated == 0


def test_pending_then_booked_is_reprocessed(engine, bank, repository, make_rule, make_transaction):
    repository.create_rule(
        make_rule(
            id="amazon",
            conditions=[{"type": "description_matches", "pattern": "AMAZON"}],
            actions=[Transfer(from_account=TriggerAccount(), to_account=ByKey(key="savings-1"), amount=Fixed(value=10.0))],
        )
    )
    pending = make_transaction(id="tx-005", description="AMAZON.COM*123ABC", amount=-599.0, booking_status="PENDING")
    bank.set_transactions("checking-1", [pending])
    engine.evaluate_all()

    bank.replace_transaction(pending.model_copy(update={"booking_status": "BOOKED"}))
    report = engine.evaluate_all()

    assert report.transactions_processed == 1
    assert report.transactions_skipped == 0
    assert len(repository.get_rule_executions("amazon")) == 2
    assert len(repository.get_processing_log("amazon")) == 2
    tracked = repository.get_tracked_transaction("tx-005")
    assert tracked.settled is True
    assert tracked.first_seen_at <= tracked.last_updated_at


def test_missing_account_aborts_only_that_action(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(
        netflix_rule(
            actions=[
                Transfer(from_account=TriggerAccount(), to_account=ByKey(key="nonexistent"), amount=Fixed(value=5.0)),
                Transfer(from_account=TriggerAccount(), to_account=ByKey(key="savings-1"), amount=Fixed(value=7.0)),
            ]
        )
    )
    repository.create_rule(
        netflix_rule(id="other", to_account=ByKey(key="creditcard-1"))
    )
    bank.set_transactions("checking-1", [make_transaction()])

    report = engine.evaluate_all()

    assert report.actions_aborted == 1
    assert report.executions_succeeded == 2
    assert [e.amount for e in repository.get_rule_executions("netflix-sweep")] == [7.0]
    assert all(e.status == ExecutionStatus.SUCCESS for e in repository.list_executions())
    assert [r.to_account for r in bank.transfer_history] == ["12345678902", "12345678903"]


def test_all_actions_aborted_writes_no_success(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(netflix_rule(to_account=ByKey(key="nonexistent")))
    bank.set_transactions("checking-1", [make_transaction()])

    report = engine.evaluate_all()

    assert report.actions_aborted == 1
    assert repository.list_executions() == []
    assert bank.transfer_history == []


def test_failed_transfer_is_not_retried(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(netflix_rule())
    bank.set_transactions("checking-1", [make_transaction()])
    bank.queue_transfer_result(BankApiError("bank unavailable"))

    first = engine.evaluate_all()
    assert first.executions_failed == 1
    [execution] = repository.list_executions()
    assert execution.status == ExecutionStatus.FAILED
    assert "bank unavailable" in execution.error_message

    engine.evaluate_all()
    assert len(bank.transfer_history) == 1
    assert len(repository.list_executions()) == 1


def test_account_fetch_failure_does_not_abort_cycle(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(netflix_rule(trigger_account_key="creditcard-1"))
    repository.create_rule(netflix_rule(id="checking"))
    bank.fail_transactions("creditcard-1", BankApiError("timeout"))
    bank.set_transactions("checking-1", [make_transaction()])

    report = engine.evaluate_all()

    assert report.accounts_failed == 1
    assert report.accounts_polled == 1
    assert [e.rule_id for e in repository.list_executions()] == ["checking"]


def test_rule_for_unknown_account_is_isolated(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(netflix_rule(id="ghost", trigger_account_key="closed-account"))
    repository.create_rule(netflix_rule(id="live"))
    bank.set_transactions("checking-1", [make_transaction()])

    report = engine.evaluate_all()

    assert report.accounts_failed == 1
    assert [e.rule_id for e in repository.list_executions()] == ["live"]


def test_disabled_rules_are_ignored(engine, bank, repository, netflix_rule, make_transaction):
    repository.create_rule(netflix_rule(enabled=False))
    bank.set_transactions("checking-1", [make_transaction()])

    report = engine.evaluate_all()

    assert report.accounts_polled == 0
    assert bank.transfer_history == []
    assert repository.get_tracked_transaction("tx-001") is None


def test_rules_are_evaluated_per_transaction_and_rule(engine, bank, repository, netflix_rule, make_rule, make_transaction):
    repository.create_rule(netflix_rule())
    repository.create_rule(
        make_rule(
            id="salary",
            conditions=[TransactionType(type_code="SALARY")],
            actions=[Transfer(from_account=TriggerAccount(), to_account=ByKey(key="savings-1"), amount={"type": "percentage", "of_transaction": 10})],
        )
    )
    bank.set_transactions(
        "checking-1",
        [
            make_transaction(id="tx-001"),
            make_transaction(id="tx-004", description="SALARY ACME CORP", amount=45000.0, type_code="SALARY"),
        ],
    )

    report = engine.evaluate_all()

    assert report.transactions_processed == 2
    assert report.rules_evaluated == 4
    assert report.rules_matched == 2
    assert sorted(r.amount for r in bank.transfer_history) == ["179.00", "4500.00"]
    assert [log.action_taken for log in repository.get_processing_log("salary")].count("skipped") == 1


def test_pending_transactions_can_be_deferred(bank, repository, netflix_rule, make_transaction):
    engine = RuleEngine(bank, repository, config=EngineConfig(defer_pending_transactions=True))
    repository.create_rule(netflix_rule())
    pending = make_transaction(booking_status="PENDING")
    bank.set_transactions("checking-1", [pending])

    report = engine.evaluate_all()
    assert report.transactions_deferred == 1
    assert bank.transfer_history == []
    assert repository.get_tracked_transaction("tx-001") is None

    bank.replace_transaction(pending.model_copy(update={"booking_status": "BOOKED"}))
    report = engine.evaluate_all()
    assert report.transactions_processed == 1
    assert len(bank.transfer_history) == 1


class _FlakyRepository(SqlRepository):
    def __init__(self, database_url: str, *, broken_transaction_id: str):
        super().__init__(database_url)
        self._broken = broken_transaction_id

    def upsert_tracked_transaction(self, tracked):
        if tracked.id == self._broken:
            raise RepositoryError("disk I/O error")
        super().upsert_tracked_transaction(tracked)


def test_persistence_failure_is_isolated_per_transaction(tmp_path, bank, netflix_rule, make_transaction):
    repository = _FlakyRepository(f"sqlite:///{tmp_path / 'flaky.db'}", broken_transaction_id="tx-bad")
    repository.create_tables()
    repository.create_rule(netflix_rule())
    bank.set_transactions("checking-1", [make_transaction(id="tx-bad"), make_transaction(id="tx-good")])

    report = RuleEngine(bank, repository).evaluate_all()

    assert report.transactions_failed == 1
    assert [e.transaction_id for e in repository.list_executions()] == ["tx-good"]
    repository.dispose()
