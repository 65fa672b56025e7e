"""Ad tasks issued to the client and the one-time channel follow reward."""

import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from w2e.core.exceptions import BadRequestError, ConflictError, DuplicateRequest
from w2e.core.logging import get_logger
from w2e.models import Category, Task
from w2e.services import accounts as accounts_service
from w2e.services import idempotency
from w2e.services import referrals as referrals_service
from w2e.services.channel import ChannelChecker
from w2e.services.rewards import RewardPolicy, task_reward
from w2e.store.base import LedgerSession, LedgerStore

log = get_logger(__name__)

MIN_WATCH_SEC = 15
TASK_ENDPOINT = "task_complete"
FOLLOW_ENDPOINT = "follow"


@dataclass
class RewardResult:
    balance_delta: Decimal
    balance: Decimal
    total_tasks: int


def _task_token() -> str:
    return secrets.token_urlsafe(12)


async def start_task(store: LedgerStore, account_id: str, policy: RewardPolicy) -> Task:
    """Issue a pending task worth the configured per-task reward."""
    task = Task(account_id=account_id, token=_task_token(), amount=task_reward(policy))

    async def _insert(session: LedgerSession) -> Task:
        await session.insert_task(task)
        return task

    return await store.atomic(_insert)


async def complete_task(
    store: LedgerStore,
    account_id: str,
    token: str,
    policy: RewardPolicy,
    idempotency_key: str | None = None,
) -> RewardResult:
    """Client-reported completion. pending -> completed happens exactly once."""

    async def _complete(session: LedgerSession) -> RewardResult:
        task = await session.get_task(account_id, (token or "").strip())
        if task is None or task.status != "pending":
            raise BadRequestError("Task invalid", code="TASK_INVALID")
        if await session.complete_task(task.id, datetime.utcnow()) is None:
            raise BadRequestError("Task invalid", code="TASK_INVALID")
        await accounts_service.credit(
            session, account_id, task.amount, Category.TASK_CREDIT, {"task_id": task.token}
        )
        account = await accounts_service.increment_task_count(session, account_id)
        await referrals_service.cascade(
            session, account, task.amount, Category.TASK_CREDIT, policy, {"task_id": task.token}
        )
        return RewardResult(balance_delta=task.amount, balance=account.balance, total_tasks=account.total_tasks)

    accepted, result = await idempotency.run_once(store, idempotency_key, TASK_ENDPOINT, _complete)
    if not accepted:
        raise DuplicateRequest()
    log.info("task_completed", account_id=account_id, amount=str(result.balance_delta))
    return result


async def claim_follow_reward(
    store: LedgerStore,
    account_id: str,
    checker: ChannelChecker,
    policy: RewardPolicy,
) -> RewardResult:
    """Pay the follow reward once per account, after the channel confirms membership."""
    account = await accounts_service.get_account(store, account_id)
    # UnavailableError from the checker propagates: an unknown answer is never a "no".
    if not await checker.is_member(account.external_id):
        raise BadRequestError("Join the channel first", code="NOT_A_MEMBER")
    amount = policy.follow_reward
    if amount <= 0:
        raise BadRequestError("Follow reward disabled", code="NOT_AVAILABLE")

    async def _pay(session: LedgerSession) -> RewardResult:
        _, acc = await accounts_service.credit(session, account_id, amount, Category.FOLLOW_REWARD, {})
        await referrals_service.cascade(session, acc, amount, Category.FOLLOW_REWARD, policy)
        return RewardResult(balance_delta=amount, balance=acc.balance, total_tasks=acc.total_tasks)

    accepted, result = await idempotency.run_once(store, f"{FOLLOW_ENDPOINT}:{account_id}", FOLLOW_ENDPOINT, _pay)
    if not accepted:
        raise ConflictError("Follow reward already claimed", code="ALREADY_CLAIMED")
    log.info("follow_reward_paid", account_id=account_id, amount=str(amount))
    return result
