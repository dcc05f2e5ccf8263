import pytest

from common.rules_engine.amounts import TransactionAmountAbs
from common.rules_engine.conditions import AmountLessThan, DescriptionMatches
from common.rules_engine.rule import (
    AccountNotFoundError,
    ByKey,
    ByNumber,
    Rule,
    Transfer,
    TriggerAccount,
    resolve_account_ref,
)
from pipelines.demo_bank import sample_accounts


@pytest.fixture
def accounts():
    return sample_accounts()


def test_resolve_trigger_account(accounts):
    assert resolve_account_ref(TriggerAccount(), "checking-1", accounts).account_number == "12345678901"


def test_resolve_by_key_and_number(accounts):
    assert resolve_account_ref(ByKey(key="savings-1"), "checking-1", accounts).account_number == "12345678902"
    assert resolve_account_ref(ByNumber(number="12345678903"), "checking-1", accounts).key == "creditcard-1"


@pytest.mark.parametrize(
    "ref,trigger,message",
    [
        (ByKey(key="nonexistent"), "checking-1", "Account with key nonexistent not found"),
        (ByNumber(number="000"), "checking-1", "Account with number 000 not found"),
        (TriggerAccount(), "gone-1", "Trigger account gone-1 not found"),
    ],
)
def test_missing_account_raises(accounts, ref, trigger, message):
    with pytest.raises(AccountNotFoundError, match=message):
        resolve_account_ref(ref, trigger, accounts)


def test_rule_matches_uses_implicit_and(make_transaction):
    rule = Rule(
        id="r1",
        name="Netflix sweep",
        trigger_account_key="checking-1",
        conditions=[DescriptionMatches(pattern="netflix", case_insensitive=True), AmountLessThan(value=0)],
        actions=[Transfer(from_account=TriggerAccount(), to_account=ByKey(key="savings-1"), amount=TransactionAmountAbs())],
    )
    assert rule.matches(make_transaction())
    assert not rule.matches(make_transaction(amount=179.0))
    assert rule.enabled
    assert rule.created_at.tzinfo is not None


def test_rule_round_trips_through_json():
    payload = {
        "id": "r1",
        "name": "Sweep",
        "trigger_account_key": "checking-1",
        "conditions": [{"type": "or", "conditions": [{"type": "is_settled"}]}],
        "actions": [
            {
                "type": "transfer",
                "from_account": {"type": "by_number", "number": "12345678901"},
                "to_account": {"type": "by_key", "key": "savings-1"},
                "amount": {"type": "fixed", "value": 10},
                "message": "hi",
            }
        ],
    }
    rule = Rule.model_validate(payload)
    again = Rule.model_validate_json(rule.model_dump_json())
    assert again == rule
    assert isinstance(again.actions[0].from_account, ByNumber)


def test_unknown_condition_type_is_rejected():
    with pytest.raises(ValueError):
        Rule.model_validate(
            {"id": "r1", "name": "x", "trigger_account_key": "a", "conditions": [{"type": "regex_magic"}]}
        )
