import json
import os
import time
from decimal import Decimal
from typing import AsyncGenerator
from urllib.parse import urlencode

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-memory store and fixed secrets
os.environ["STORE_BACKEND"] = "memory"
os.environ["DEV_MODE"] = "false"
os.environ["ALLOW_CLIENT_FALLBACK"] = "true"
os.environ["BOT_TOKEN"] = "123456:test-bot-token"
os.environ["BOT_USERNAME"] = "w2e_test_bot"
os.environ["POSTBACK_TOKEN"] = "postback-secret"
os.environ["ADMIN_TOKEN"] = "admin-secret"
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/?replicaSet=rs0&serverSelectionTimeoutMS=2000")
os.environ.setdefault("MONGODB_DB_NAME", "w2e_test")

from w2e.core.exceptions import UnavailableError  # noqa: E402
from w2e.core.security import sign_init_data  # noqa: E402
from w2e.models import Category  # noqa: E402
from w2e.services.rewards import RewardPolicy  # noqa: E402
from w2e.store.memory import InMemoryLedgerStore  # noqa: E402

BOT_TOKEN = os.environ["BOT_TOKEN"]
SCHEDULE = tuple(Decimal(a) for a in ("0.02", "0.04", "0.06", "0.08", "0.10", "0.12", "0.15"))


def make_policy(**overrides) -> RewardPolicy:
    values = {
        "reward_per_task": Decimal("0.01"),
        "checkin_amounts": SCHEDULE,
        "ref_bonus_pct": Decimal("10"),
        "follow_reward": Decimal("0.01"),
        "min_withdraw": Decimal("1"),
        "referral_categories": frozenset(
            {Category.TASK_CREDIT, Category.EXTERNAL_POSTBACK, Category.CHECKIN, Category.FOLLOW_REWARD}
        ),
    }
    values.update(overrides)
    return RewardPolicy(**values)


def make_init_data(
    user_id: int,
    username: str = "alice",
    start_param: str | None = None,
    auth_date: int | None = None,
    bot_token: str = BOT_TOKEN,
) -> str:
    """Build initData the way the Telegram client would send it."""
    fields = {
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "query_id": "AAE-test",
        "user": json.dumps({"id": user_id, "username": username, "first_name": username.title()}),
    }
    if start_param:
        fields["start_param"] = start_param
    fields["hash"] = sign_init_data(fields, bot_token)
    return urlencode(fields)


def auth_headers(user_id: int, **kwargs) -> dict[str, str]:
    return {"X-Telegram-Init-Data": make_init_data(user_id, **kwargs)}


class FakeChannelChecker:
    def __init__(self, member: bool | None = True):
        self.member = member
        self.calls: list[int] = []

    async def is_member(self, external_id: int) -> bool:
        self.calls.append(external_id)
        if self.member is None:
            raise UnavailableError("Channel check failed, try again")
        return self.member


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def policy() -> RewardPolicy:
    return make_policy()


@pytest.fixture
def channel_checker() -> FakeChannelChecker:
    return FakeChannelChecker()


@pytest_asyncio.fixture
async def client(store, policy, channel_checker) -> AsyncGenerator[AsyncClient, None]:
    from w2e.deps import get_channel_checker, get_ledger_store, get_policy
    from w2e.main import app

    app.dependency_overrides[get_ledger_store] = lambda: store
    app.dependency_overrides[get_policy] = lambda: policy
    app.dependency_overrides[get_channel_checker] = lambda: channel_checker
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
