"""Balance ledger schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class LedgerOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class LedgerEntry(BaseModel):
    entry_id: str
    owner_id: str
    amount: int
    reason: str
    outcome: LedgerOutcome
    balance_after: int
    timestamp: datetime


class BalanceResponse(BaseModel):
    owner_id: str
    balance: int
    entries: list[LedgerEntry]
