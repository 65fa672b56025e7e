from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel

from w2e.core.config import get_settings
from w2e.core.exceptions import NotFoundError
from w2e.core.security import scoped_idempotency_key
from w2e.deps import get_current_account, get_ledger_store, get_policy
from w2e.models import Account
from w2e.services import tasks as tasks_service
from w2e.services.rewards import RewardPolicy
from w2e.store.base import LedgerStore

router = APIRouter()


class CompleteTaskRequest(BaseModel):
    task_id: str


@router.post("/start")
async def task_start(
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
    policy: RewardPolicy = Depends(get_policy),
):
    """Issue an ad task. It is paid by the ad network postback (or the client fallback)."""
    task = await tasks_service.start_task(store, account.id, policy)
    return {"ok": True, "task_id": task.token, "amount": task.amount, "min_watch_sec": tasks_service.MIN_WATCH_SEC}


@router.post("/complete")
async def task_complete(
    body: CompleteTaskRequest,
    account: Account = Depends(get_current_account),
    store: LedgerStore = Depends(get_ledger_store),
    policy: RewardPolicy = Depends(get_policy),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
):
    """Client-side completion; only enabled with ALLOW_CLIENT_FALLBACK (never in production)."""
    if not get_settings().allow_client_fallback:
        raise NotFoundError("Client completion disabled", code="DISABLED_IN_PROD")
    key = scoped_idempotency_key(tasks_service.TASK_ENDPOINT, account.id, idempotency_key)
    result = await tasks_service.complete_task(store, account.id, body.task_id, policy, idempotency_key=key)
    return {
        "ok": True,
        "balance_delta": result.balance_delta,
        "balance": result.balance,
        "total_tasks": result.total_tasks,
    }
