from __future__ import annotations

from pydantic import BaseModel, Field


DEFAULT_POLL_INTERVAL_SECONDS = 300


class EngineConfig(BaseModel):
    # When true, unsettled (non-BOOKED) transactions are held back with a Wait decision
    # until the bank reports them as booked. Off by default: pending transactions are
    # processed as soon as they are seen, and reprocessed once their content changes.
    defer_pending_transactions: bool = False


class SchedulerConfig(BaseModel):
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    enabled: bool = True
