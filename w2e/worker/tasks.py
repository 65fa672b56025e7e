"""ARQ job definitions."""

import uuid
from typing import Any

from arq.connections import RedisSettings

from w2e.core.config import get_settings
from w2e.core.logging import configure_logging, get_logger
from w2e.services.reconciliation import reconcile
from w2e.store.base import get_store

log = get_logger(__name__)


async def _run_logged(job_name: str, job_id: str | None, coro) -> Any:
    """Run coroutine; log failures with the job id then re-raise so ARQ retries."""
    try:
        return await coro
    except Exception as e:
        log.exception("job_failed", job=job_name, job_id=job_id or str(uuid.uuid4()), reason=str(e)[:2000])
        raise


async def reconcile_ledger(ctx: dict[str, Any]) -> dict[str, Any]:
    """Cron job: compare each balance with the sum of its transactions."""
    job_id = ctx.get("job_id") if isinstance(ctx.get("job_id"), str) else None

    async def _run() -> dict[str, Any]:
        log.info("job_start", job="reconcile_ledger")
        report = await reconcile(ctx["store"])
        log.info("job_done", job="reconcile_ledger", checked=report.checked, drifts=len(report.drifts))
        return {"checked": report.checked, "drifts": [d.account_id for d in report.drifts]}

    return await _run_logged("reconcile_ledger", job_id, _run())


async def startup(ctx: dict) -> None:
    configure_logging(debug=get_settings().debug, service="w2e-worker")
    store = get_store()
    await store.connect()
    ctx["store"] = store


async def shutdown(ctx: dict) -> None:
    store = ctx.get("store")
    if store is not None:
        await store.close()


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )
