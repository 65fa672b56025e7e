"""Store interface for the ledger core.

Services never touch a database handle directly. They receive a `LedgerStore`
and run every read-check-write sequence through `LedgerStore.atomic`, which
hands the callback a `LedgerSession` bound to one atomic unit.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar

from w2e.core.config import get_settings
from w2e.models import (
    Account,
    CheckinState,
    IdempotencyRecord,
    Referral,
    Task,
    Transaction,
    WithdrawalRequest,
)

T = TypeVar("T")


class DuplicateKeyError(Exception):
    """A write-once or unique field was written twice."""

    def __init__(self, key: str, value: object = None):
        self.key = key
        self.value = value
        super().__init__(f"duplicate {key}: {value!r}")


class LedgerSession(ABC):
    # Accounts

    @abstractmethod
    async def get_account(self, account_id: str) -> Account | None:
        ...

    @abstractmethod
    async def get_account_by_external_id(self, external_id: int) -> Account | None:
        ...

    @abstractmethod
    async def get_account_by_referral_code(self, code: str) -> Account | None:
        ...

    @abstractmethod
    async def insert_account(self, account: Account) -> None:
        """Raise DuplicateKeyError('external_id' | 'referral_code') on collision."""
        ...

    @abstractmethod
    async def update_profile(self, account_id: str, username: str | None, first_name: str | None) -> None:
        ...

    @abstractmethod
    async def apply_balance_change(
        self,
        account_id: str,
        delta: Decimal,
        earned: Decimal = Decimal("0"),
        tasks: int = 0,
    ) -> Account | None:
        """
        Add delta to balance (and earned/tasks) only if the result stays >= 0.
        Returns the updated account, or None when the condition failed.
        """
        ...

    @abstractmethod
    async def list_accounts(self, limit: int, offset: int) -> list[Account]:
        ...

    @abstractmethod
    async def count_accounts_referred_by(self, code: str) -> int:
        ...

    # Transaction log

    @abstractmethod
    async def insert_transaction(self, txn: Transaction) -> None:
        ...

    @abstractmethod
    async def list_transactions(self, account_id: str, limit: int, offset: int) -> list[Transaction]:
        """Newest first."""
        ...

    @abstractmethod
    async def sum_transactions(self, account_id: str) -> Decimal:
        ...

    # Idempotency

    @abstractmethod
    async def insert_idempotency_record(self, record: IdempotencyRecord) -> None:
        """Raise DuplicateKeyError('token') if the token was already recorded."""
        ...

    # Tasks

    @abstractmethod
    async def insert_task(self, task: Task) -> None:
        ...

    @abstractmethod
    async def get_task(self, account_id: str, token: str) -> Task | None:
        ...

    @abstractmethod
    async def complete_task(self, task_id: str, completed_at: datetime) -> Task | None:
        """pending -> completed; None if the task was not pending."""
        ...

    # Referrals

    @abstractmethod
    async def insert_referral(self, referral: Referral) -> None:
        ...

    @abstractmethod
    async def referral_totals(self, referrer_code: str) -> tuple[int, Decimal]:
        """(number of bonus payments, total bonus) for an inviter."""
        ...

    # Check-in

    @abstractmethod
    async def get_checkin(self, account_id: str) -> CheckinState | None:
        ...

    @abstractmethod
    async def save_checkin(self, state: CheckinState) -> None:
        ...

    # Withdrawals

    @abstractmethod
    async def get_withdrawal(self, withdrawal_id: str) -> WithdrawalRequest | None:
        ...

    @abstractmethod
    async def get_pending_withdrawal(self, account_id: str) -> WithdrawalRequest | None:
        ...

    @abstractmethod
    async def insert_withdrawal(self, withdrawal: WithdrawalRequest) -> None:
        """Raise DuplicateKeyError('pending_withdrawal') if one is already pending."""
        ...

    @abstractmethod
    async def mark_withdrawal_processed(
        self,
        withdrawal_id: str,
        settlement_ref: str,
        processed_at: datetime,
    ) -> WithdrawalRequest | None:
        """pending -> processed; None if missing or not pending."""
        ...

    @abstractmethod
    async def list_withdrawals(
        self,
        status: str | None = None,
        account_id: str | None = None,
        limit: int = 20,
    ) -> list[WithdrawalRequest]:
        """Newest first."""
        ...


class LedgerStore(ABC):
    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def atomic(self, fn: Callable[[LedgerSession], Awaitable[T]]) -> T:
        """
        Run fn inside one atomic unit. Everything fn writes commits together;
        any exception rolls all of it back and propagates. fn may be re-run
        on transient conflicts, so it must not have side effects outside the store.
        """
        ...


def get_store() -> LedgerStore:
    settings = get_settings()
    if settings.store_backend == "memory":
        from w2e.store.memory import InMemoryLedgerStore
        return InMemoryLedgerStore()
    from w2e.store.mongo import MongoLedgerStore
    return MongoLedgerStore(settings.mongodb_uri, settings.mongodb_db_name)
