"""Daily check-in streak tracker."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from w2e.core.exceptions import AlreadyClaimedToday, DuplicateRequest, NotFoundError
from w2e.core.logging import get_logger
from w2e.models import Category, CheckinState
from w2e.models.checkin import MAX_STREAK
from w2e.services import accounts as accounts_service
from w2e.services import idempotency
from w2e.services import referrals as referrals_service
from w2e.services.rewards import RewardPolicy, checkin_reward, next_checkin_amount
from w2e.store.base import LedgerSession, LedgerStore

log = get_logger(__name__)

ENDPOINT = "checkin"


@dataclass
class CheckinResult:
    balance_delta: Decimal
    balance: Decimal
    streak: int
    next_amount: Decimal


@dataclass
class CheckinStatus:
    streak: int
    can_claim: bool
    next_amount: Decimal
    last_claim: date | None


def today_utc() -> date:
    return datetime.utcnow().date()


def advance_streak(state: CheckinState, today: date) -> int:
    """New streak after a claim on `today`. Raises AlreadyClaimedToday for a same-day repeat."""
    if state.last_claim == today:
        raise AlreadyClaimedToday()
    if state.last_claim is not None and state.last_claim == today - timedelta(days=1):
        return min(state.streak + 1, MAX_STREAK)
    return 1


async def claim(
    store: LedgerStore,
    account_id: str,
    policy: RewardPolicy,
    today: date | None = None,
    idempotency_key: str | None = None,
) -> CheckinResult:
    """Claim today's check-in: streak check, credit, state update and cascade in one unit."""
    today = today or today_utc()

    async def _claim(session: LedgerSession) -> CheckinResult:
        state = await session.get_checkin(account_id) or CheckinState(account_id=account_id)
        streak_before = state.streak
        new_streak = advance_streak(state, today)
        amount = checkin_reward(policy, new_streak - 1)
        account = await session.get_account(account_id)
        if account is None:
            raise NotFoundError("Account not found")
        if amount > 0:
            _, account = await accounts_service.credit(
                session,
                account_id,
                amount,
                Category.CHECKIN,
                {"streak_before": streak_before, "streak": new_streak, "day": today.isoformat()},
            )
            await referrals_service.cascade(session, account, amount, Category.CHECKIN, policy)
        await session.save_checkin(CheckinState(account_id=account_id, streak=new_streak, last_claim=today))
        return CheckinResult(
            balance_delta=amount,
            balance=account.balance,
            streak=new_streak,
            next_amount=next_checkin_amount(policy, new_streak),
        )

    accepted, result = await idempotency.run_once(store, idempotency_key, ENDPOINT, _claim)
    if not accepted:
        raise DuplicateRequest()
    log.info("checkin_claimed", account_id=account_id, streak=result.streak, amount=str(result.balance_delta))
    return result


async def status(
    store: LedgerStore,
    account_id: str,
    policy: RewardPolicy,
    today: date | None = None,
) -> CheckinStatus:
    today = today or today_utc()

    async def _get(session: LedgerSession) -> CheckinState:
        return await session.get_checkin(account_id) or CheckinState(account_id=account_id)

    state = await store.atomic(_get)
    can_claim = state.last_claim != today
    alive = state.last_claim is not None and state.last_claim >= today - timedelta(days=1)
    next_amount = next_checkin_amount(policy, state.streak) if alive else checkin_reward(policy, 0)
    return CheckinStatus(
        streak=state.streak if alive else 0,
        can_claim=can_claim,
        next_amount=next_amount,
        last_claim=state.last_claim,
    )
