from datetime import date
from decimal import Decimal

from conftest import make_policy
from w2e.models import Category
from w2e.services import accounts as accounts_service
from w2e.services import checkin as checkin_service
from w2e.services import referrals as referrals_service
from w2e.services import tasks as tasks_service


async def _pair(store):
    inviter = await accounts_service.get_or_create(store, 3001)
    invitee = await accounts_service.get_or_create(store, 3002, referred_by_code=inviter.referral_code)
    return inviter, invitee


async def test_task_credit_pays_inviter_ten_percent(store):
    policy = make_policy(reward_per_task=Decimal("0.5"))
    inviter, invitee = await _pair(store)
    task = await tasks_service.start_task(store, invitee.id, policy)
    await tasks_service.complete_task(store, invitee.id, task.token, policy)

    inviter = await accounts_service.get_account(store, inviter.id)
    assert inviter.balance == Decimal("0.05")
    entries = await accounts_service.list_transactions(store, inviter.id)
    assert [e.category for e in entries] == [Category.REFERRAL_BONUS]
    assert entries[0].metadata["from_account_id"] == invitee.id
    assert entries[0].metadata["source"] == "task_credit"

    stats = await referrals_service.stats(store, inviter.id)
    assert stats.invited_count == 1
    assert stats.bonus_count == 1
    assert stats.total_bonus == Decimal("0.05")


async def test_no_inviter_no_referral(store, policy):
    acc = await accounts_service.get_or_create(store, 3003)

    async def _credit(session):
        _, a = await accounts_service.credit(session, acc.id, Decimal("1"), Category.TASK_CREDIT)
        return await referrals_service.cascade(session, a, Decimal("1"), Category.TASK_CREDIT, policy)

    assert await store.atomic(_credit) is None
    stats = await referrals_service.stats(store, acc.id)
    assert (stats.invited_count, stats.bonus_count, stats.total_bonus) == (0, 0, Decimal("0"))


async def test_category_outside_policy_does_not_cascade(store):
    policy = make_policy(referral_categories=frozenset({Category.TASK_CREDIT}))
    inviter, invitee = await _pair(store)
    await checkin_service.claim(store, invitee.id, policy, today=date(2025, 3, 1))
    assert (await accounts_service.get_account(store, inviter.id)).balance == 0


async def test_bonus_that_rounds_to_zero_is_skipped(store):
    policy = make_policy(ref_bonus_pct=Decimal("0.001"))
    inviter, invitee = await _pair(store)

    async def _credit(session):
        _, a = await accounts_service.credit(session, invitee.id, Decimal("0.01"), Category.TASK_CREDIT)
        return await referrals_service.cascade(session, a, Decimal("0.01"), Category.TASK_CREDIT, policy)

    assert await store.atomic(_credit) is None
    assert (await accounts_service.get_account(store, inviter.id)).balance == 0


async def test_referral_bonus_does_not_chain(store, policy):
    top = await accounts_service.get_or_create(store, 3010)
    middle = await accounts_service.get_or_create(store, 3011, referred_by_code=top.referral_code)
    bottom = await accounts_service.get_or_create(store, 3012, referred_by_code=middle.referral_code)

    async def _credit(session):
        _, a = await accounts_service.credit(session, bottom.id, Decimal("1"), Category.TASK_CREDIT)
        await referrals_service.cascade(session, a, Decimal("1"), Category.TASK_CREDIT, policy)

    await store.atomic(_credit)
    assert (await accounts_service.get_account(store, middle.id)).balance == Decimal("0.1")
    assert (await accounts_service.get_account(store, top.id)).balance == 0


def test_invite_link():
    assert referrals_service.invite_link("w2e_bot", "ABCDEFGH") == "https://t.me/w2e_bot?start=ABCDEFGH"
    assert referrals_service.invite_link("", "ABCDEFGH") is None
