from fastapi import APIRouter, Depends

from w2e.deps import get_channel_checker, get_current_account, get_ledger_store, get_policy
from w2e.models import Account
from w2e.services import tasks as tasks_service
from w2e.services.channel import ChannelChecker
from w2e.services.rewards import RewardPolicy
from w2e.store.base import LedgerStore

router = APIRouter()


@router.post("/claim")
async def follow_claim(
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
    policy: RewardPolicy = Depends(get_policy),
    checker: ChannelChecker = Depends(get_channel_checker),
):
    """One-time reward for joining the channel. 503 if membership can't be checked right now."""
    result = await tasks_service.claim_follow_reward(store, account.id, checker, policy)
    return {
        "ok": True,
        "balance_delta": result.balance_delta,
        "balance": result.balance,
        "total_tasks": result.total_tasks,
    }
