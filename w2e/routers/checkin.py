from fastapi import APIRouter, Depends, Header

from w2e.core.security import scoped_idempotency_key
from w2e.deps import get_current_account, get_ledger_store, get_policy
from w2e.models import Account
from w2e.services import checkin as checkin_service
from w2e.services.rewards import RewardPolicy
from w2e.store.base import LedgerStore

router = APIRouter()


@router.get("/status")
async def checkin_status(
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
    policy: RewardPolicy = Depends(get_policy),
):
    """Current streak, whether today is still claimable, and what the next claim pays."""
    st = await checkin_service.status(store, account.id, policy)
    return {
        "streak": st.streak,
        "can_claim": st.can_claim,
        "next_amount": st.next_amount,
        "last_claim": st.last_claim.isoformat() if st.last_claim else None,
    }


@router.post("/claim")
async def checkin_claim(
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
    policy: RewardPolicy = Depends(get_policy),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
):
    """Claim today's check-in (UTC day). A second claim the same day is a 409."""
    key = scoped_idempotency_key(checkin_service.ENDPOINT, account.id, idempotency_key)
    result = await checkin_service.claim(store, account.id, policy, idempotency_key=key)
    return {
        "ok": True,
        "balance_delta": result.balance_delta,
        "balance": result.balance,
        "streak": result.streak,
        "next_amount": result.next_amount,
    }
