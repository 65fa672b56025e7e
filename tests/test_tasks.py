from decimal import Decimal

import pytest

from conftest import FakeChannelChecker, make_policy
from w2e.core.exceptions import BadRequestError, ConflictError, UnavailableError
from w2e.models import Category
from w2e.services import accounts as accounts_service
from w2e.services import tasks as tasks_service

pytestmark = pytest.mark.asyncio


async def test_complete_task_once(store, policy):
    acc = await accounts_service.get_or_create(store, 4001)
    task = await tasks_service.start_task(store, acc.id, policy)
    assert task.status == "pending"
    assert task.amount == Decimal("0.01")

    result = await tasks_service.complete_task(store, acc.id, task.token, policy)
    assert result.balance_delta == Decimal("0.01")
    assert result.balance == Decimal("0.01")
    assert result.total_tasks == 1

    with pytest.raises(BadRequestError) as exc:
        await tasks_service.complete_task(store, acc.id, task.token, policy)
    assert exc.value.code == "TASK_INVALID"


async def test_complete_task_rejects_foreign_token(store, policy):
    owner = await accounts_service.get_or_create(store, 4002)
    other = await accounts_service.get_or_create(store, 4003)
    task = await tasks_service.start_task(store, owner.id, policy)
    with pytest.raises(BadRequestError):
        await tasks_service.complete_task(store, other.id, task.token, policy)
    with pytest.raises(BadRequestError):
        await tasks_service.complete_task(store, owner.id, "unknown", policy)


async def test_follow_reward_paid_once(store, policy):
    acc = await accounts_service.get_or_create(store, 4004)
    checker = FakeChannelChecker(member=True)
    result = await tasks_service.claim_follow_reward(store, acc.id, checker, policy)
    assert result.balance == Decimal("0.01")
    assert checker.calls == [4004]

    with pytest.raises(ConflictError) as exc:
        await tasks_service.claim_follow_reward(store, acc.id, checker, policy)
    assert exc.value.code == "ALREADY_CLAIMED"
    entries = await accounts_service.list_transactions(store, acc.id)
    assert [e.category for e in entries] == [Category.FOLLOW_REWARD]


async def test_follow_reward_requires_membership(store, policy):
    acc = await accounts_service.get_or_create(store, 4005)
    with pytest.raises(BadRequestError) as exc:
        await tasks_service.claim_follow_reward(store, acc.id, FakeChannelChecker(member=False), policy)
    assert exc.value.code == "NOT_A_MEMBER"
    with pytest.raises(UnavailableError):
        await tasks_service.claim_follow_reward(store, acc.id, FakeChannelChecker(member=None), policy)
    # neither attempt consumed the one-time claim
    result = await tasks_service.claim_follow_reward(store, acc.id, FakeChannelChecker(member=True), policy)
    assert result.balance_delta == Decimal("0.01")


async def test_follow_reward_disabled(store):
    acc = await accounts_service.get_or_create(store, 4006)
    with pytest.raises(BadRequestError) as exc:
        await tasks_service.claim_follow_reward(
            store, acc.id, FakeChannelChecker(member=True), make_policy(follow_reward=Decimal("0"))
        )
    assert exc.value.code == "NOT_AVAILABLE"
