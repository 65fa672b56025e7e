"""Single-process store. Used by tests and local development (STORE_BACKEND=memory).

One global lock serializes every unit, so units on different accounts also
wait for each other. Not for production; MongoLedgerStore only serializes
writes that touch the same documents.
"""

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar

from w2e.models import (
    Account,
    CheckinState,
    IdempotencyRecord,
    Referral,
    Task,
    Transaction,
    WithdrawalRequest,
)
from w2e.store.base import DuplicateKeyError, LedgerSession, LedgerStore

T = TypeVar("T")


@dataclass
class _State:
    accounts: dict[str, Account] = field(default_factory=dict)
    transactions: list[Transaction] = field(default_factory=list)
    idempotency: dict[str, IdempotencyRecord] = field(default_factory=dict)
    tasks: dict[str, Task] = field(default_factory=dict)
    referrals: list[Referral] = field(default_factory=list)
    checkins: dict[str, CheckinState] = field(default_factory=dict)
    withdrawals: dict[str, WithdrawalRequest] = field(default_factory=dict)


class InMemorySession(LedgerSession):
    def __init__(self, state: _State) -> None:
        self._s = state

    async def get_account(self, account_id: str) -> Account | None:
        acc = self._s.accounts.get(account_id)
        return acc.model_copy() if acc else None

    async def get_account_by_external_id(self, external_id: int) -> Account | None:
        for acc in self._s.accounts.values():
            if acc.external_id == external_id:
                return acc.model_copy()
        return None

    async def get_account_by_referral_code(self, code: str) -> Account | None:
        for acc in self._s.accounts.values():
            if acc.referral_code == code:
                return acc.model_copy()
        return None

    async def insert_account(self, account: Account) -> None:
        for acc in self._s.accounts.values():
            if acc.external_id == account.external_id:
                raise DuplicateKeyError("external_id", account.external_id)
            if acc.referral_code == account.referral_code:
                raise DuplicateKeyError("referral_code", account.referral_code)
        self._s.accounts[account.id] = account.model_copy()

    async def update_profile(self, account_id: str, username: str | None, first_name: str | None) -> None:
        acc = self._s.accounts.get(account_id)
        if acc:
            acc.username = username
            acc.first_name = first_name

    async def apply_balance_change(
        self,
        account_id: str,
        delta: Decimal,
        earned: Decimal = Decimal("0"),
        tasks: int = 0,
    ) -> Account | None:
        acc = self._s.accounts.get(account_id)
        if acc is None or acc.balance + delta < 0:
            return None
        acc.balance += delta
        acc.total_earned += earned
        acc.total_tasks += tasks
        return acc.model_copy()

    async def list_accounts(self, limit: int, offset: int) -> list[Account]:
        ordered = sorted(self._s.accounts.values(), key=lambda a: (a.created_at, a.id))
        return [a.model_copy() for a in ordered[offset:offset + limit]]

    async def count_accounts_referred_by(self, code: str) -> int:
        return sum(1 for a in self._s.accounts.values() if a.referred_by == code)

    async def insert_transaction(self, txn: Transaction) -> None:
        self._s.transactions.append(txn.model_copy())

    async def list_transactions(self, account_id: str, limit: int, offset: int) -> list[Transaction]:
        mine = [t for t in reversed(self._s.transactions) if t.account_id == account_id]
        return [t.model_copy() for t in mine[offset:offset + limit]]

    async def sum_transactions(self, account_id: str) -> Decimal:
        return sum((t.amount for t in self._s.transactions if t.account_id == account_id), Decimal("0"))

    async def insert_idempotency_record(self, record: IdempotencyRecord) -> None:
        if record.token in self._s.idempotency:
            raise DuplicateKeyError("token", record.token)
        self._s.idempotency[record.token] = record.model_copy()

    async def insert_task(self, task: Task) -> None:
        for t in self._s.tasks.values():
            if t.account_id == task.account_id and t.token == task.token:
                raise DuplicateKeyError("task_token", task.token)
        self._s.tasks[task.id] = task.model_copy()

    async def get_task(self, account_id: str, token: str) -> Task | None:
        for t in self._s.tasks.values():
            if t.account_id == account_id and t.token == token:
                return t.model_copy()
        return None

    async def complete_task(self, task_id: str, completed_at: datetime) -> Task | None:
        t = self._s.tasks.get(task_id)
        if t is None or t.status != "pending":
            return None
        t.status = "completed"
        t.completed_at = completed_at
        return t.model_copy()

    async def insert_referral(self, referral: Referral) -> None:
        self._s.referrals.append(referral.model_copy())

    async def referral_totals(self, referrer_code: str) -> tuple[int, Decimal]:
        mine = [r for r in self._s.referrals if r.referrer_code == referrer_code]
        return len(mine), sum((r.bonus for r in mine), Decimal("0"))

    async def get_checkin(self, account_id: str) -> CheckinState | None:
        st = self._s.checkins.get(account_id)
        return st.model_copy() if st else None

    async def save_checkin(self, state: CheckinState) -> None:
        self._s.checkins[state.account_id] = state.model_copy()

    async def get_withdrawal(self, withdrawal_id: str) -> WithdrawalRequest | None:
        w = self._s.withdrawals.get(withdrawal_id)
        return w.model_copy() if w else None

    async def get_pending_withdrawal(self, account_id: str) -> WithdrawalRequest | None:
        for w in self._s.withdrawals.values():
            if w.account_id == account_id and w.status == "pending":
                return w.model_copy()
        return None

    async def insert_withdrawal(self, withdrawal: WithdrawalRequest) -> None:
        if withdrawal.status == "pending" and await self.get_pending_withdrawal(withdrawal.account_id):
            raise DuplicateKeyError("pending_withdrawal", withdrawal.account_id)
        self._s.withdrawals[withdrawal.id] = withdrawal.model_copy()

    async def mark_withdrawal_processed(
        self,
        withdrawal_id: str,
        settlement_ref: str,
        processed_at: datetime,
    ) -> WithdrawalRequest | None:
        w = self._s.withdrawals.get(withdrawal_id)
        if w is None or w.status != "pending":
            return None
        w.status = "processed"
        w.settlement_ref = settlement_ref
        w.processed_at = processed_at
        return w.model_copy()

    async def list_withdrawals(
        self,
        status: str | None = None,
        account_id: str | None = None,
        limit: int = 20,
    ) -> list[WithdrawalRequest]:
        rows = [
            w for w in self._s.withdrawals.values()
            if (status is None or w.status == status) and (account_id is None or w.account_id == account_id)
        ]
        rows.sort(key=lambda w: w.created_at, reverse=True)
        return [w.model_copy() for w in rows[:limit]]


class InMemoryLedgerStore(LedgerStore):
    """
    Units are serialized by one asyncio.Lock and run against a working copy
    of the state, which replaces the committed state only if the unit succeeds.
    """

    def __init__(self) -> None:
        self._state = _State()
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def atomic(self, fn: Callable[[LedgerSession], Awaitable[T]]) -> T:
        async with self._lock:
            working = copy.deepcopy(self._state)
            result = await fn(InMemorySession(working))
            self._state = working
            return result
