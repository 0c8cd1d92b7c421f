"""Balance ledger service layer."""

from datetime import UTC, datetime
import logging
from uuid import uuid4

from matrixai.core.logging_safety import safe_log_identifier
from matrixai.errors import BalanceContentionError, InsufficientBalanceError
from matrixai.repositories.base import LedgerEntryRecord, LedgerStore
from matrixai.schemas.ledger import BalanceResponse, LedgerEntry, LedgerOutcome

logger = logging.getLogger(__name__)


class BalanceLedger:
    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def reserve(self, *, owner_id: str, amount: int, reason: str) -> int:
        """Debit ``amount`` up front and return the balance left.

        Every attempt, accepted or rejected, leaves exactly one ledger entry.
        """
        if amount <= 0:
            raise ValueError("reservation amount must be positive")

        safe_owner_id = safe_log_identifier(owner_id, prefix="oid")
        debit = await self._store.try_debit(owner_id, amount)
        outcome = LedgerOutcome.SUCCESS if debit.applied else LedgerOutcome.FAILED
        await self._store.append_entry(
            LedgerEntryRecord(
                entry_id=str(uuid4()),
                owner_id=owner_id,
                amount=amount,
                reason=reason,
                outcome=outcome,
                balance_after=debit.balance,
                timestamp=datetime.now(UTC),
            )
        )

        if debit.contended:
            logger.warning(
                "ledger.reserve_contended owner_id=%s amount=%s balance=%s reason=%s",
                safe_owner_id,
                amount,
                debit.balance,
                reason,
            )
            raise BalanceContentionError(required=amount, balance=debit.balance)

        if not debit.applied:
            logger.info(
                "ledger.reserve_rejected owner_id=%s amount=%s balance=%s reason=%s",
                safe_owner_id,
                amount,
                debit.balance,
                reason,
            )
            raise InsufficientBalanceError(required=amount, balance=debit.balance)

        logger.info(
            "ledger.reserved owner_id=%s amount=%s balance_after=%s reason=%s",
            safe_owner_id,
            amount,
            debit.balance,
            reason,
        )
        return debit.balance

    async def get_balance(self, *, owner_id: str) -> BalanceResponse:
        balance = await self._store.get_balance(owner_id)
        entries = await self._store.list_entries(owner_id)
        return BalanceResponse(
            owner_id=owner_id,
            balance=balance,
            entries=[
                LedgerEntry(
                    entry_id=entry.entry_id,
                    owner_id=entry.owner_id,
                    amount=entry.amount,
                    reason=entry.reason,
                    outcome=entry.outcome,
                    balance_after=entry.balance_after,
                    timestamp=entry.timestamp,
                )
                for entry in entries
            ],
        )
