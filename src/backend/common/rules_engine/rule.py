from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .amounts import AmountSpec
from .conditions import Condition, conditions_match
from .models import Account, Transaction


class AccountNotFoundError(LookupError):
    pass


class TriggerAccount(BaseModel):
    type: Literal["trigger_account"] = "trigger_account"

    def describe(self, trigger_account_key: str) -> str:
        return f"Trigger account {trigger_account_key}"


class ByKey(BaseModel):
    type: Literal["by_key"] = "by_key"
    key: str

    def describe(self, trigger_account_key: str) -> str:
        return f"Account with key {self.key}"


class ByNumber(BaseModel):
    type: Literal["by_number"] = "by_number"
    number: str

    def describe(self, trigger_account_key: str) -> str:
        return f"Account with number {self.number}"


AccountRef = Annotated[Union[TriggerAccount, ByKey, ByNumber], Field(discriminator="type")]


class Transfer(BaseModel):
    type: Literal["transfer"] = "transfer"
    from_account: AccountRef
    to_account: AccountRef
    amount: AmountSpec
    message: Optional[str] = None


# Transfer is the only action today; widen this to a discriminated union when a second one lands.
Action = Transfer


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Rule(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    enabled: bool = True
    trigger_account_key: str
    conditions: List[Condition] = Field(default_factory=list)
    actions: List[Action] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def matches(self, tx: Transaction) -> bool:
        return conditions_match(self.conditions, tx)


def resolve_account_ref(
    account_ref: AccountRef,
    trigger_account_key: str,
    accounts: Sequence[Account],
) -> Account:
    """
    Resolve a late-bound account reference against the live account list.

    Raises AccountNotFoundError when nothing matches; accounts can disappear between
    rule authoring and firing.
    """
    for account in accounts:
        if isinstance(account_ref, TriggerAccount) and account.key == trigger_account_key:
            return account
        if isinstance(account_ref, ByKey) and account.key == account_ref.key:
            return account
        if isinstance(account_ref, ByNumber) and account.account_number == account_ref.number:
            return account
    raise AccountNotFoundError(f"{account_ref.describe(trigger_account_key)} not found")
