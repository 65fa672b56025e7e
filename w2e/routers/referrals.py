from fastapi import APIRouter, Depends

from w2e.core.config import get_settings
from w2e.deps import get_current_account, get_ledger_store
from w2e.models import Account
from w2e.services import referrals as referrals_service
from w2e.store.base import LedgerStore

router = APIRouter()


@router.get("/me")
async def referral_me(
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
):
    """My referral code, invite link and bonus stats."""
    stats = await referrals_service.stats(store, account.id)
    return {
        "referral_code": stats.referral_code,
        "invite_link": referrals_service.invite_link(get_settings().bot_username, stats.referral_code),
        "invited_count": stats.invited_count,
        "bonus_count": stats.bonus_count,
        "total_bonus": stats.total_bonus,
        "referred_by": account.referred_by,
    }
