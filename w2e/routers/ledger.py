from fastapi import APIRouter, Depends, Query

from w2e.core.pagination import paginate
from w2e.deps import get_current_account, get_ledger_store
from w2e.models import Account
from w2e.services import accounts as accounts_service
from w2e.store.base import LedgerStore

router = APIRouter()


@router.get("/balance")
async def ledger_balance(account: Account = Depends(get_current_account)):
    """Return current balance and lifetime counters."""
    return {
        "balance": account.balance,
        "total_earned": account.total_earned,
        "total_tasks": account.total_tasks,
    }


@router.get("/transactions")
async def ledger_transactions(
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Return transaction log entries for current account (newest first)."""
    limit, offset = paginate(limit, offset)
    entries = await accounts_service.list_transactions(store, account.id, limit=limit, offset=offset)
    out = [
        {
            "id": e.id,
            "amount": e.amount,
            "category": e.category.value,
            "metadata": e.metadata,
            "created_at": e.created_at.isoformat(),
        }
        for e in entries
    ]
    return {"entries": out, "limit": limit, "offset": offset}
