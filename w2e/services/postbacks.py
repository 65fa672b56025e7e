"""Ad-network (Monetag) server-to-server postbacks.

Networks retry until they get a 200, so a replayed event id is answered with
success and changes nothing.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError, field_validator

from w2e.core.exceptions import BadRequestError, UnauthorizedError
from w2e.core.logging import get_logger
from w2e.core.security import secrets_match
from w2e.models import Category
from w2e.models.money import ZERO, AmountOutOfRange, quantize
from w2e.services import accounts as accounts_service
from w2e.services import idempotency
from w2e.services import referrals as referrals_service
from w2e.services.rewards import RewardPolicy
from w2e.store.base import LedgerSession, LedgerStore

log = get_logger(__name__)

ENDPOINT = "postback"
SOURCE = "monetag"
PAID_VALUES = frozenset({"1", "yes", "true"})


class PostbackEvent(BaseModel):
    """Typed view of the postback query string."""

    token: str = ""
    event_id: str
    external_id: int
    amount: Decimal = ZERO
    paid: bool = False
    raw: dict[str, str] = {}

    @field_validator("event_id")
    @classmethod
    def _event_id(cls, v: str) -> str:
        v = v.strip()
        if not v or len(v) > 256:
            raise ValueError("event id required")
        return v

    @field_validator("external_id")
    @classmethod
    def _external_id(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("telegram_id must be positive")
        return v

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "PostbackEvent":
        """Normalize raw query params; malformed input is rejected before any ledger work."""
        raw = {str(k): str(v) for k, v in params.items()}
        price = raw.get("estimated_price", "0").strip() or "0"
        try:
            amount = Decimal(price)
        except InvalidOperation:
            amount = ZERO
        if amount.is_nan() or amount < 0:
            amount = ZERO
        try:
            amount = quantize(amount)
        except AmountOutOfRange as e:
            raise BadRequestError(
                "Bad estimated_price",
                code="INVALID_POSTBACK",
                details={"fields": ["estimated_price"]},
            ) from e
        paid_flag = raw.get("is_paid") or raw.get("reward_event_type") or "0"
        try:
            external_id = int(raw.get("telegram_id", "").strip() or 0)
        except ValueError:
            external_id = 0
        try:
            return cls(
                token=raw.get("token", ""),
                event_id=raw.get("reqid", ""),
                external_id=external_id,
                amount=amount,
                paid=paid_flag.strip().lower() in PAID_VALUES,
                raw={k: v for k, v in raw.items() if k != "token"},
            )
        except ValidationError as e:
            raise BadRequestError(
                "Missing params",
                code="INVALID_POSTBACK",
                details={"fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()]},
            ) from e


@dataclass
class PostbackResult:
    status: str  # credited | recorded | duplicate
    amount: Decimal = ZERO


def check_token(token: str | None, secret: str) -> None:
    if not secrets_match(token, secret):
        raise UnauthorizedError("Bad postback token")


async def handle_query(
    store: LedgerStore,
    params: Mapping[str, Any],
    policy: RewardPolicy,
    secret: str,
) -> PostbackResult:
    """Shared secret first, then parsing, then the ledger."""
    check_token(params.get("token"), secret)
    return await ingest(store, PostbackEvent.from_query(params), policy, secret)


async def ingest(
    store: LedgerStore,
    event: PostbackEvent,
    policy: RewardPolicy,
    secret: str,
) -> PostbackResult:
    check_token(event.token, secret)

    # Unpaid events never touch accounts.
    account = await accounts_service.get_or_create(store, event.external_id) if event.paid else None
    credit_amount = event.amount if event.amount > 0 else policy.reward_per_task

    async def _apply(session: LedgerSession) -> PostbackResult:
        if account is None:
            return PostbackResult(status="recorded")
        meta = {"source": SOURCE, "reqid": event.event_id}
        await accounts_service.credit(session, account.id, credit_amount, Category.EXTERNAL_POSTBACK, meta)
        acc = await accounts_service.increment_task_count(session, account.id)
        await referrals_service.cascade(session, acc, credit_amount, Category.EXTERNAL_POSTBACK, policy, meta)
        return PostbackResult(status="credited", amount=credit_amount)

    accepted, result = await idempotency.run_once(
        store,
        f"{ENDPOINT}:{event.event_id}",
        ENDPOINT,
        _apply,
        metadata={
            "external_id": event.external_id,
            "paid": event.paid,
            "amount": str(event.amount),
            "raw": event.raw,
        },
    )
    if not accepted:
        log.info("postback_duplicate", reqid=event.event_id, external_id=event.external_id)
        return PostbackResult(status="duplicate")
    log.info(
        "postback_handled",
        reqid=event.event_id,
        external_id=event.external_id,
        status=result.status,
        amount=str(result.amount),
    )
    return result
