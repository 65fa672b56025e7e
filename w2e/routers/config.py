from fastapi import APIRouter, Depends

from w2e.core.config import get_settings
from w2e.deps import get_current_account, get_policy
from w2e.models import Account
from w2e.services.rewards import RewardPolicy

router = APIRouter()


@router.get("")
async def client_config(
    account: Account = Depends(get_current_account),
    policy: RewardPolicy = Depends(get_policy),
):
    """Reward settings the mini app renders, plus the caller's balance."""
    return {
        "ok": True,
        "vast_tag": get_settings().vast_tag,
        "reward": policy.reward_per_task,
        "min_withdraw": policy.min_withdraw,
        "ref_bonus_pct": policy.ref_bonus_pct,
        "follow_reward": policy.follow_reward,
        "checkin_amounts": list(policy.checkin_amounts),
        "balance": account.balance,
        "total_tasks": account.total_tasks,
        "referral_code": account.referral_code,
    }
