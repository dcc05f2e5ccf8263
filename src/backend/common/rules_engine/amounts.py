from __future__ import annotations

from typing import Annotated, Iterable, List, Literal, Union

from pydantic import BaseModel, Field

from .models import Transaction


class Fixed(BaseModel):
    type: Literal["fixed"] = "fixed"
    value: float

    def resolve(self, tx: Transaction) -> float:
        return self.value


class TransactionAmount(BaseModel):
    type: Literal["transaction_amount"] = "transaction_amount"

    def resolve(self, tx: Transaction) -> float:
        return tx.amount


class TransactionAmountAbs(BaseModel):
    type: Literal["transaction_amount_abs"] = "transaction_amount_abs"

    def resolve(self, tx: Transaction) -> float:
        return abs(tx.amount)


class Percentage(BaseModel):
    type: Literal["percentage"] = "percentage"
    of_transaction: float

    def resolve(self, tx: Transaction) -> float:
        return abs(tx.amount) * (self.of_transaction / 100.0)


class Min(BaseModel):
    type: Literal["min"] = "min"
    specs: List[AmountSpec] = Field(default_factory=list)

    def resolve(self, tx: Transaction) -> float:
        return _pick((s.resolve(tx) for s in self.specs), prefer_lower=True)


class Max(BaseModel):
    type: Literal["max"] = "max"
    specs: List[AmountSpec] = Field(default_factory=list)

    def resolve(self, tx: Transaction) -> float:
        return _pick((s.resolve(tx) for s in self.specs), prefer_lower=False)


AmountSpec = Annotated[
    Union[Fixed, TransactionAmount, TransactionAmountAbs, Percentage, Min, Max],
    Field(discriminator="type"),
]

Min.model_rebuild()
Max.model_rebuild()


def _pick(values: Iterable[float], *, prefer_lower: bool) -> float:
    # Empty lists resolve to 0.0. NaN compares as a tie: min keeps the earlier candidate,
    # max takes the later one.
    best = None
    for value in values:
        if best is None:
            best = value
        elif prefer_lower:
            if value < best:
                best = value
        elif not best > value:
            best = value
    return 0.0 if best is None else best


def resolve_amount(spec: AmountSpec, tx: Transaction) -> float:
    """Compute the transfer amount described by `spec` for a transaction. Never raises."""
    return spec.resolve(tx)
