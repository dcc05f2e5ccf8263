import pytest

from common.rules_engine.amounts import TransactionAmountAbs
from common.rules_engine.conditions import AmountLessThan, DescriptionMatches
from common.rules_engine.rule import ByKey, Transfer, TriggerAccount
from pipelines.engine import RuleEngine


@pytest.fixture
def engine(bank, repository) -> RuleEngine:
    return RuleEngine(bank, repository)


@pytest.fixture
def netflix_rule(make_rule):
    """Sweep the absolute value of every Netflix charge on checking-1 into savings-1."""

    def _make(*, id: str = "netflix-sweep", to_account=None, **fields):
        fields.setdefault(
            "conditions",
            [DescriptionMatches(pattern="netflix", case_insensitive=True), AmountLessThan(value=0)],
        )
        fields.setdefault(
            "actions",
            [
                Transfer(
                    from_account=TriggerAccount(),
                    to_account=to_account or ByKey(key="savings-1"),
                    amount=TransactionAmountAbs(),
                )
            ],
        )
        return make_rule(id=id, name="Netflix sweep", **fields)

    return _make
