"""Idempotency guard for inbound events.

The guard row and the business effect are written in the same atomic unit:
a duplicate token aborts the unit, and a failure in the effect rolls the
guard row back with it so a legitimate retry is not lost.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from w2e.core.logging import get_logger
from w2e.models import IdempotencyRecord
from w2e.store.base import DuplicateKeyError, LedgerSession, LedgerStore

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ClaimResult:
    accepted: bool


async def claim_in_session(
    session: LedgerSession,
    token: str,
    endpoint: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Insert the guard row; DuplicateKeyError propagates so the enclosing unit aborts."""
    await session.insert_idempotency_record(
        IdempotencyRecord(token=token, endpoint=endpoint, metadata=metadata or {})
    )


async def claim(
    store: LedgerStore,
    token: str,
    endpoint: str,
    metadata: dict[str, Any] | None = None,
) -> ClaimResult:
    """Record token as handled. accepted=False means it was seen before (not an error)."""

    async def _claim(session: LedgerSession) -> None:
        await claim_in_session(session, token, endpoint, metadata)

    try:
        await store.atomic(_claim)
    except DuplicateKeyError as e:
        if e.key != "token":
            raise
        return ClaimResult(accepted=False)
    return ClaimResult(accepted=True)


async def run_once(
    store: LedgerStore,
    token: str | None,
    endpoint: str,
    fn: Callable[[LedgerSession], Awaitable[T]],
    metadata: dict[str, Any] | None = None,
) -> tuple[bool, T | None]:
    """
    Apply fn at most once per token. Returns (accepted, result); (False, None) for a replay.
    token=None runs fn unguarded.
    """

    async def _guarded(session: LedgerSession) -> T:
        if token is not None:
            await claim_in_session(session, token, endpoint, metadata)
        return await fn(session)

    try:
        result = await store.atomic(_guarded)
    except DuplicateKeyError as e:
        if e.key != "token":
            raise
        log.info("idempotent_replay", endpoint=endpoint, token=token)
        return False, None
    return True, result
