from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional

from .models import ProcessingDecision, TrackedTransaction, Transaction


ALREADY_PROCESSED_REASON = "already processed this version"
NOT_SETTLED_REASON = "transaction not settled"


@dataclass(frozen=True)
class TransactionFingerprint:
    transaction_id: str
    fingerprint: str


def fingerprint_transaction(tx: Transaction) -> TransactionFingerprint:
    """
    Derive a stable content hash for a transaction.

    Only business-relevant fields take part: id, cleaned (or raw) description, amount,
    type code and booking status. Dates and remote-account metadata are excluded so the
    hash only moves when the transaction meaningfully changes.
    """
    content = "|".join(
        [
            tx.id,
            tx.description_text,
            repr(float(tx.amount)),
            tx.type_code,
            tx.booking_status,
        ]
    )
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return TransactionFingerprint(transaction_id=tx.id, fingerprint=digest)


def decide_processing(
    tx: Transaction,
    fingerprint: TransactionFingerprint,
    tracked: Optional[TrackedTransaction],
    *,
    defer_pending: bool = False,
) -> ProcessingDecision:
    if tracked is not None and tracked.fingerprint == fingerprint.fingerprint:
        return ProcessingDecision.skip(ALREADY_PROCESSED_REASON)
    if defer_pending and not tx.is_settled:
        return ProcessingDecision.wait(NOT_SETTLED_REASON)
    return ProcessingDecision.process()
