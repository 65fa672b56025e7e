from fastapi import APIRouter, Depends, Request

from w2e.core.config import get_settings
from w2e.deps import get_ledger_store, get_policy
from w2e.services import postbacks as postbacks_service
from w2e.services.rewards import RewardPolicy
from w2e.store.base import LedgerStore

router = APIRouter()


@router.get("/monetag")
async def monetag_postback(
    request: Request,
    store: LedgerStore = Depends(get_ledger_store),
    policy: RewardPolicy = Depends(get_policy),
):
    """Monetag S2S postback: credit paid impressions once per reqid (replays answer 200)."""
    result = await postbacks_service.handle_query(
        store, request.query_params, policy, get_settings().postback_token
    )
    return {"status": result.status}
