"""Shared FastAPI dependencies."""

from functools import lru_cache

from fastapi import Depends, Header

from w2e.core.config import get_settings
from w2e.core.exceptions import ForbiddenError
from w2e.core.logging import bind_account
from w2e.core.security import identity_from_init_data, secrets_match
from w2e.models import Account
from w2e.services import accounts as accounts_service
from w2e.services.channel import ChannelChecker, TelegramChannelChecker
from w2e.services.rewards import RewardPolicy
from w2e.store.base import LedgerStore, get_store

INIT_DATA_HEADER = "X-Telegram-Init-Data"
ADMIN_TOKEN_HEADER = "X-Admin-Token"


@lru_cache
def get_ledger_store() -> LedgerStore:
    """Process-wide store; tests override this dependency."""
    return get_store()


@lru_cache
def get_policy() -> RewardPolicy:
    return RewardPolicy.from_settings(get_settings())


def get_channel_checker() -> ChannelChecker:
    return TelegramChannelChecker.from_settings(get_settings())


async def get_current_account(
    init_data: str | None = Header(None, alias=INIT_DATA_HEADER),
    store: LedgerStore = Depends(get_ledger_store),
) -> Account:
    """Dependency: verify Telegram initData and return (or create) the caller's account."""
    identity = identity_from_init_data(init_data)
    account = await accounts_service.get_or_create(
        store,
        identity.id,
        username=identity.username,
        first_name=identity.first_name,
        referred_by_code=identity.start_param,
    )
    bind_account(account.id, account.external_id)
    return account


async def require_admin(admin_token: str | None = Header(None, alias=ADMIN_TOKEN_HEADER)) -> None:
    """Dependency: operator endpoints need the shared admin token."""
    if not secrets_match(admin_token, get_settings().admin_token):
        raise ForbiddenError("Admin only")
