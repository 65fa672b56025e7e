from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from w2e.deps import get_ledger_store, require_admin
from w2e.routers.withdrawals import withdrawal_out
from w2e.services import reconciliation as reconciliation_service
from w2e.services import withdrawals as withdrawals_service
from w2e.store.base import LedgerStore

router = APIRouter(dependencies=[Depends(require_admin)])


class MarkProcessedRequest(BaseModel):
    settlement_ref: str


@router.get("/withdrawals/pending")
async def admin_pending_withdrawals(
    store: LedgerStore = Depends(get_ledger_store),
    limit: int = Query(20, ge=1, le=200),
):
    """Admin: pending withdrawals, newest first."""
    rows = await withdrawals_service.list_pending(store, limit=limit)
    return {"items": [withdrawal_out(w) for w in rows]}


@router.post("/withdrawals/{withdrawal_id}/processed")
async def admin_mark_processed(
    withdrawal_id: str,
    body: MarkProcessedRequest,
    store: LedgerStore = Depends(get_ledger_store),
):
    """Admin: confirm a payout was sent."""
    w = await withdrawals_service.mark_processed(store, withdrawal_id, body.settlement_ref)
    return withdrawal_out(w)


@router.get("/reconcile")
async def admin_reconcile(store: LedgerStore = Depends(get_ledger_store)):
    """Admin: compare every balance with its transaction log."""
    report = await reconciliation_service.reconcile(store)
    return {
        "ok": report.ok,
        "checked": report.checked,
        "drifts": [
            {"account_id": d.account_id, "balance": d.balance, "ledger_sum": d.ledger_sum}
            for d in report.drifts
        ],
    }
