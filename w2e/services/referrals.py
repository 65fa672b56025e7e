"""Referral cascade: inviters earn a percentage of what their invitees earn."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from w2e.core.logging import get_logger
from w2e.models import Account, Category, Referral
from w2e.services import accounts as accounts_service
from w2e.services.rewards import RewardPolicy, pays_referral, referral_bonus
from w2e.store.base import LedgerSession, LedgerStore

log = get_logger(__name__)


@dataclass
class ReferralStats:
    referral_code: str
    invited_count: int
    bonus_count: int
    total_bonus: Decimal


async def cascade(
    session: LedgerSession,
    account: Account,
    amount: Decimal,
    category: Category,
    policy: RewardPolicy,
    metadata: dict[str, Any] | None = None,
) -> Referral | None:
    """
    Pay the inviter of `account` its share of `amount`, inside the caller's atomic unit.
    Returns the Referral record, or None when nothing is owed.
    """
    if not account.referred_by or not pays_referral(policy, category):
        return None
    inviter = await session.get_account_by_referral_code(account.referred_by)
    if inviter is None or inviter.id == account.id:
        return None
    bonus = referral_bonus(amount, policy.ref_bonus_pct)
    if bonus <= 0:
        return None
    meta = {"from_account_id": account.id, "from_external_id": account.external_id, "source": category.value}
    meta.update(metadata or {})
    await accounts_service.credit(session, inviter.id, bonus, Category.REFERRAL_BONUS, meta)
    referral = Referral(
        referrer_code=inviter.referral_code,
        referred_account_id=account.id,
        bonus=bonus,
        source_category=category.value,
    )
    await session.insert_referral(referral)
    log.info(
        "referral_bonus_paid",
        inviter_id=inviter.id,
        invitee_id=account.id,
        bonus=str(bonus),
        source=category.value,
    )
    return referral


async def stats(store: LedgerStore, account_id: str) -> ReferralStats:
    """Invited users, bonus payments received and their total."""
    account = await accounts_service.get_account(store, account_id)

    async def _stats(session: LedgerSession) -> ReferralStats:
        invited = await session.count_accounts_referred_by(account.referral_code)
        count, total = await session.referral_totals(account.referral_code)
        return ReferralStats(
            referral_code=account.referral_code,
            invited_count=invited,
            bonus_count=count,
            total_bonus=total,
        )

    return await store.atomic(_stats)


def invite_link(bot_username: str, referral_code: str) -> str | None:
    if not bot_username:
        return None
    return f"https://t.me/{bot_username}?start={referral_code}"
