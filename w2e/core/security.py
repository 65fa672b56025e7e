import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from urllib.parse import parse_qsl

from w2e.core.config import get_settings
from w2e.core.exceptions import BadRequestError, UnauthorizedError

DEV_IDENTITY_ID = 999


@dataclass(frozen=True)
class TelegramIdentity:
    """Verified caller identity extracted from Telegram WebApp initData."""

    id: int
    username: str | None = None
    first_name: str | None = None
    start_param: str | None = None


def _webapp_secret(bot_token: str) -> bytes:
    return hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()


def sign_init_data(fields: dict[str, str], bot_token: str) -> str:
    """Return the initData hash for fields (without `hash`). Mirrors what Telegram computes."""
    data_check_string = "\n".join(f"{k}={v}" for k, v in sorted(fields.items()))
    return hmac.new(_webapp_secret(bot_token), data_check_string.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_init_data(
    init_data: str | None,
    bot_token: str,
    ttl_seconds: int = 86400,
    now: float | None = None,
) -> TelegramIdentity:
    """Verify signed initData; raise UnauthorizedError on stale or forged payloads."""
    if not init_data:
        raise UnauthorizedError("Missing initData")
    if not bot_token:
        raise UnauthorizedError("Identity verification not configured")
    fields = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = fields.pop("hash", "")
    try:
        auth_date = int(fields.get("auth_date") or 0)
    except ValueError:
        auth_date = 0
    now = time.time() if now is None else now
    if not auth_date or (now - auth_date) > ttl_seconds:
        raise UnauthorizedError("Stale initData")
    expected = sign_init_data(fields, bot_token)
    if not hmac.compare_digest(expected, received_hash):
        raise UnauthorizedError("Bad initData signature")
    try:
        user = json.loads(fields.get("user") or "{}")
    except ValueError as e:
        raise UnauthorizedError("Malformed initData user") from e
    user_id = user.get("id") if isinstance(user, dict) else None
    if not isinstance(user_id, int) or user_id <= 0:
        raise UnauthorizedError("initData has no user")
    return TelegramIdentity(
        id=user_id,
        username=user.get("username"),
        first_name=user.get("first_name"),
        start_param=fields.get("start_param") or None,
    )


def identity_from_init_data(init_data: str | None) -> TelegramIdentity:
    """Settings-aware wrapper: dev mode short-circuits to a fixed local user."""
    settings = get_settings()
    if settings.dev_mode:
        return TelegramIdentity(id=DEV_IDENTITY_ID, username="dev")
    return verify_init_data(init_data, settings.bot_token, settings.init_data_ttl_seconds)


def secrets_match(provided: str | None, expected: str) -> bool:
    """Constant-time shared-secret compare; an unset secret never matches."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def scoped_idempotency_key(endpoint: str, account_id: str, key: str | None) -> str | None:
    """Namespace a client Idempotency-Key by endpoint and account. None means not enforced."""
    if key is None:
        return None
    key = key.strip()
    if not key:
        return None
    if len(key) > 128:
        raise BadRequestError("Idempotency-Key too long")
    return f"{endpoint}:{account_id}:{key}"
