from __future__ import annotations

import re
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field

from .models import Transaction


DEFAULT_AMOUNT_TOLERANCE = 0.01


class DescriptionMatches(BaseModel):
    type: Literal["description_matches"] = "description_matches"
    pattern: str
    case_insensitive: bool = False

    def evaluate(self, tx: Transaction) -> bool:
        pattern = f"(?i){self.pattern}" if self.case_insensitive else self.pattern
        try:
            return re.search(pattern, tx.description_text) is not None
        except re.error:
            # A broken pattern must not take down the poll cycle for other rules.
            return False


class AmountGreaterThan(BaseModel):
    type: Literal["amount_greater_than"] = "amount_greater_than"
    value: float

    def evaluate(self, tx: Transaction) -> bool:
        return tx.amount > self.value


class AmountLessThan(BaseModel):
    type: Literal["amount_less_than"] = "amount_less_than"
    value: float

    def evaluate(self, tx: Transaction) -> bool:
        return tx.amount < self.value


class AmountBetween(BaseModel):
    type: Literal["amount_between"] = "amount_between"
    min: float
    max: float

    def evaluate(self, tx: Transaction) -> bool:
        return self.min <= tx.amount <= self.max


class AmountEquals(BaseModel):
    type: Literal["amount_equals"] = "amount_equals"
    value: float
    tolerance: float = DEFAULT_AMOUNT_TOLERANCE

    def evaluate(self, tx: Transaction) -> bool:
        return abs(tx.amount - self.value) <= self.tolerance


class TransactionType(BaseModel):
    type: Literal["transaction_type"] = "transaction_type"
    type_code: str

    def evaluate(self, tx: Transaction) -> bool:
        return tx.type_code == self.type_code


class IsSettled(BaseModel):
    type: Literal["is_settled"] = "is_settled"

    def evaluate(self, tx: Transaction) -> bool:
        return tx.is_settled


class And(BaseModel):
    type: Literal["and"] = "and"
    conditions: List[Condition] = Field(default_factory=list)

    def evaluate(self, tx: Transaction) -> bool:
        return all(c.evaluate(tx) for c in self.conditions)


class Or(BaseModel):
    type: Literal["or"] = "or"
    conditions: List[Condition] = Field(default_factory=list)

    def evaluate(self, tx: Transaction) -> bool:
        return any(c.evaluate(tx) for c in self.conditions)


class Not(BaseModel):
    type: Literal["not"] = "not"
    condition: Condition

    def evaluate(self, tx: Transaction) -> bool:
        return not self.condition.evaluate(tx)


Condition = Annotated[
    Union[
        DescriptionMatches,
        AmountGreaterThan,
        AmountLessThan,
        AmountBetween,
        AmountEquals,
        TransactionType,
        IsSettled,
        And,
        Or,
        Not,
    ],
    Field(discriminator="type"),
]

And.model_rebuild()
Or.model_rebuild()
Not.model_rebuild()


def evaluate_condition(condition: Condition, tx: Transaction) -> bool:
    """Evaluate a single condition tree against a transaction. Never raises."""
    return condition.evaluate(tx)


def conditions_match(conditions: List[Condition], tx: Transaction) -> bool:
    """Implicit AND across a rule's top-level condition list."""
    return all(evaluate_condition(c, tx) for c in conditions)
