"""Reward amounts. Pure functions over an immutable policy."""

from dataclasses import dataclass
from decimal import Decimal

from w2e.core.config import Settings
from w2e.models.checkin import MAX_STREAK
from w2e.models.money import ZERO, quantize
from w2e.models.transaction import Category


@dataclass(frozen=True)
class RewardPolicy:
    reward_per_task: Decimal
    checkin_amounts: tuple[Decimal, ...]
    ref_bonus_pct: Decimal
    follow_reward: Decimal
    min_withdraw: Decimal
    referral_categories: frozenset[Category]

    def __post_init__(self) -> None:
        if len(self.checkin_amounts) != MAX_STREAK:
            raise ValueError(f"checkin schedule needs {MAX_STREAK} amounts, got {len(self.checkin_amounts)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RewardPolicy":
        categories = set()
        for raw in settings.referral_categories:
            try:
                categories.add(Category(raw))
            except ValueError:
                continue
        # Bonuses never cascade from bonuses or debits.
        categories -= {Category.REFERRAL_BONUS, Category.WITHDRAWAL_DEBIT}
        return cls(
            reward_per_task=quantize(settings.reward_per_task),
            checkin_amounts=tuple(quantize(a) for a in settings.checkin_amounts),
            ref_bonus_pct=Decimal(settings.ref_bonus_pct),
            follow_reward=quantize(settings.follow_reward),
            min_withdraw=quantize(settings.min_withdraw),
            referral_categories=frozenset(categories),
        )


def task_reward(policy: RewardPolicy) -> Decimal:
    return policy.reward_per_task


def checkin_reward(policy: RewardPolicy, streak_before_claim: int) -> Decimal:
    """Schedule slot for a streak value, wrapping every 7."""
    return policy.checkin_amounts[streak_before_claim % MAX_STREAK]


def next_checkin_amount(policy: RewardPolicy, streak: int) -> Decimal:
    """What the next consecutive claim pays; day 7 repeats once the cap is reached."""
    return checkin_reward(policy, min(streak, MAX_STREAK - 1))


def referral_bonus(base_amount: Decimal, pct: Decimal) -> Decimal:
    """round(base * pct / 100, 6); anything not positive pays nothing."""
    bonus = quantize(Decimal(base_amount) * Decimal(pct) / Decimal(100))
    return bonus if bonus > 0 else ZERO


def pays_referral(policy: RewardPolicy, category: Category) -> bool:
    return category in policy.referral_categories
