import time
import uuid

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from w2e.core.config import get_settings
from w2e.core.exceptions import (
    AppError,
    app_exception_handler,
    generic_exception_handler,
    validation_exception_handler,
)
from w2e.core.logging import bind_request_id, configure_logging, get_logger
from w2e.deps import get_ledger_store
from w2e.routers import admin, checkin, config, follow, ledger, postbacks, referrals, tasks, withdrawals

settings = get_settings()
configure_logging(debug=settings.debug, service="w2e-api")
log = get_logger(__name__)

app = FastAPI(
    title="Watch-to-Earn API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_id(request_id)
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    log.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Routers
app.include_router(config.router, prefix="/v1/config", tags=["config"])
app.include_router(checkin.router, prefix="/v1/checkin", tags=["checkin"])
app.include_router(tasks.router, prefix="/v1/tasks", tags=["tasks"])
app.include_router(follow.router, prefix="/v1/follow", tags=["follow"])
app.include_router(withdrawals.router, prefix="/v1/withdrawals", tags=["withdrawals"])
app.include_router(ledger.router, prefix="/v1/ledger", tags=["ledger"])
app.include_router(referrals.router, prefix="/v1/referrals", tags=["referrals"])
app.include_router(postbacks.router, prefix="/v1/postbacks", tags=["postbacks"])
app.include_router(admin.router, prefix="/v1/admin", tags=["admin"])


@app.on_event("startup")
async def startup():
    if settings.sentry_dsn:
        import sentry_sdk
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.1)
        log.info("startup", msg="Sentry enabled")
    await get_ledger_store().connect()
    log.info("startup", msg="Store connected", backend=settings.store_backend)


@app.on_event("shutdown")
async def shutdown():
    await get_ledger_store().close()


@app.get("/health")
async def health():
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}
