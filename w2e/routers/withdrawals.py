from decimal import Decimal

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel

from w2e.core.security import scoped_idempotency_key
from w2e.deps import get_current_account, get_ledger_store, get_policy
from w2e.models import Account, WithdrawalRequest
from w2e.services import withdrawals as withdrawals_service
from w2e.services.rewards import RewardPolicy
from w2e.store.base import LedgerStore

router = APIRouter()


def withdrawal_out(w: WithdrawalRequest) -> dict:
    return {
        "id": w.id,
        "account_id": w.account_id,
        "amount": w.amount,
        "address": w.address,
        "network": w.network,
        "status": w.status,
        "created_at": w.created_at.isoformat(),
        "processed_at": w.processed_at.isoformat() if w.processed_at else None,
        "settlement_ref": w.settlement_ref,
    }


class WithdrawRequest(BaseModel):
    address: str
    network: str = "BSC"
    amount: Decimal | None = None  # None = whole balance


@router.post("")
async def withdraw(
    body: WithdrawRequest,
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
    policy: RewardPolicy = Depends(get_policy),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
):
    """Request a withdrawal; the amount is debited immediately and held as pending."""
    key = scoped_idempotency_key(withdrawals_service.ENDPOINT, account.id, idempotency_key)
    result = await withdrawals_service.request(
        store,
        account.id,
        body.address,
        policy,
        network=body.network,
        amount=body.amount,
        idempotency_key=key,
    )
    w = result.withdrawal
    return {
        "ok": True,
        "withdrawal_id": w.id,
        "amount": w.amount,
        "balance_delta": -w.amount,
        "balance": result.balance,
        "status": w.status,
    }


@router.get("")
async def my_withdrawals(
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
):
    """My withdrawal requests, newest first."""
    rows = await withdrawals_service.list_for_account(store, account.id)
    return {"items": [withdrawal_out(w) for w in rows]}
