"""MongoStore against a live server. Transactions need a replica set; skipped without one."""

import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from conftest import make_policy
from w2e.core.config import get_settings
from w2e.core.exceptions import AlreadyClaimedToday, DuplicatePending, InsufficientBalanceError
from w2e.db.documents import DOCUMENT_MODELS
from w2e.models import Account, Category, WithdrawalRequest
from w2e.services import accounts as accounts_service
from w2e.services import checkin as checkin_service
from w2e.services import postbacks as postbacks_service
from w2e.services import withdrawals as withdrawals_service
from w2e.services.checkin import CheckinResult
from w2e.services.postbacks import PostbackEvent
from w2e.services.reconciliation import reconcile
from w2e.services.withdrawals import WithdrawalResult
from w2e.store.base import DuplicateKeyError
from w2e.store.mongo import MongoLedgerStore

pytestmark = pytest.mark.asyncio

ADDRESS = "0x" + "ef" * 20
SECRET = "postback-secret"


@pytest_asyncio.fixture
async def mongo_store():
    settings = get_settings()
    store = MongoLedgerStore(settings.mongodb_uri, settings.mongodb_db_name)
    try:
        await asyncio.wait_for(store.connect(), 10)
        hello = await store._client.admin.command("hello")
    except Exception as e:
        await store.close()
        pytest.skip(f"MongoDB not reachable: {e}")
    if "setName" not in hello:
        await store.close()
        pytest.skip("MongoDB is not a replica set")
    for model in DOCUMENT_MODELS:
        await model.get_motor_collection().delete_many({})
    yield store
    await store.close()


async def _funded(store, external_id, amount):
    acc = await accounts_service.get_or_create(store, external_id)
    await store.atomic(
        lambda s: accounts_service.credit(s, acc.id, Decimal(amount), Category.EXTERNAL_POSTBACK)
    )
    return acc


async def test_concurrent_full_balance_withdrawals(mongo_store):
    policy = make_policy()
    acc = await _funded(mongo_store, 7001, "5")

    results = await asyncio.gather(
        *(withdrawals_service.request(mongo_store, acc.id, ADDRESS, policy) for _ in range(4)),
        return_exceptions=True,
    )

    wins = [r for r in results if isinstance(r, WithdrawalResult)]
    assert len(wins) == 1
    assert wins[0].withdrawal.amount == Decimal("5")
    for r in results:
        if r is not wins[0]:
            assert isinstance(r, (DuplicatePending, InsufficientBalanceError))
    assert (await accounts_service.get_account(mongo_store, acc.id)).balance == 0
    assert len(await withdrawals_service.list_pending(mongo_store)) == 1
    assert (await reconcile(mongo_store)).ok


async def test_concurrent_same_day_checkin(mongo_store):
    policy = make_policy()
    acc = await accounts_service.get_or_create(mongo_store, 7002)
    day = date(2026, 3, 1)

    results = await asyncio.gather(
        checkin_service.claim(mongo_store, acc.id, policy, today=day),
        checkin_service.claim(mongo_store, acc.id, policy, today=day),
        return_exceptions=True,
    )

    assert sum(isinstance(r, CheckinResult) for r in results) == 1
    assert sum(isinstance(r, AlreadyClaimedToday) for r in results) == 1
    assert (await accounts_service.get_account(mongo_store, acc.id)).balance == Decimal("0.02")
    entries = await accounts_service.list_transactions(mongo_store, acc.id)
    assert [e.category for e in entries] == [Category.CHECKIN]


async def test_duplicate_postback_credits_once(mongo_store):
    policy = make_policy()
    params = {"token": SECRET, "telegram_id": "7003", "reqid": "mongo-req-1", "estimated_price": "0.5", "is_paid": "1"}

    first = await postbacks_service.handle_query(mongo_store, params, policy, SECRET)
    again = await postbacks_service.ingest(mongo_store, PostbackEvent.from_query(params), policy, SECRET)
    racing = await asyncio.gather(
        *(postbacks_service.handle_query(mongo_store, {**params, "reqid": "mongo-req-2"}, policy, SECRET) for _ in range(3))
    )

    assert first.status == "credited"
    assert again.status == "duplicate"
    assert sorted(r.status for r in racing) == ["credited", "duplicate", "duplicate"]
    acc = await accounts_service.get_or_create(mongo_store, 7003)
    assert acc.balance == Decimal("1")
    assert acc.total_tasks == 2


async def test_pending_withdrawal_unique_index(mongo_store):
    acc = await _funded(mongo_store, 7004, "3")
    first = WithdrawalRequest(account_id=acc.id, amount=Decimal("1"), address=ADDRESS)
    await mongo_store.atomic(lambda s: s.insert_withdrawal(first))

    with pytest.raises(DuplicateKeyError) as exc:
        await mongo_store.atomic(
            lambda s: s.insert_withdrawal(WithdrawalRequest(account_id=acc.id, amount=Decimal("1"), address=ADDRESS))
        )
    assert exc.value.key == "pending_withdrawal"

    # processed requests leave the partial index
    await mongo_store.atomic(lambda s: s.mark_withdrawal_processed(first.id, "0xabc", datetime.utcnow()))
    await mongo_store.atomic(
        lambda s: s.insert_withdrawal(WithdrawalRequest(account_id=acc.id, amount=Decimal("1"), address=ADDRESS))
    )
    assert len(await withdrawals_service.list_for_account(mongo_store, acc.id)) == 2


async def test_duplicate_account_fields_map_to_index(mongo_store):
    acc = await accounts_service.get_or_create(mongo_store, 7005)

    with pytest.raises(DuplicateKeyError) as exc:
        await mongo_store.atomic(lambda s: s.insert_account(Account(external_id=7005, referral_code="FRESHCDE")))
    assert exc.value.key == "external_id"

    with pytest.raises(DuplicateKeyError) as exc:
        await mongo_store.atomic(lambda s: s.insert_account(Account(external_id=7006, referral_code=acc.referral_code)))
    assert exc.value.key == "referral_code"


async def test_concurrent_get_or_create_returns_one_account(mongo_store):
    accounts = await asyncio.gather(*(accounts_service.get_or_create(mongo_store, 7007) for _ in range(3)))
    assert len({a.id for a in accounts}) == 1


async def test_insufficient_debit_writes_nothing(mongo_store):
    acc = await _funded(mongo_store, 7008, "0.1")
    with pytest.raises(InsufficientBalanceError):
        await mongo_store.atomic(lambda s: accounts_service.debit(s, acc.id, Decimal("0.2")))
    assert (await accounts_service.get_account(mongo_store, acc.id)).balance == Decimal("0.1")
    assert len(await accounts_service.list_transactions(mongo_store, acc.id)) == 1


async def test_failed_unit_rolls_back(mongo_store):
    acc = await accounts_service.get_or_create(mongo_store, 7009)

    async def _credit_then_fail(session):
        await accounts_service.credit(session, acc.id, Decimal("1"), Category.TASK_CREDIT)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await mongo_store.atomic(_credit_then_fail)
    assert (await accounts_service.get_account(mongo_store, acc.id)).balance == 0
    assert await accounts_service.list_transactions(mongo_store, acc.id) == []


async def test_units_on_different_accounts_run_concurrently(mongo_store):
    a = await accounts_service.get_or_create(mongo_store, 7010)
    b = await accounts_service.get_or_create(mongo_store, 7011)
    entered = asyncio.Event()
    release = asyncio.Event()

    async def _slow(session):
        await accounts_service.credit(session, a.id, Decimal("1"), Category.TASK_CREDIT)
        entered.set()
        await release.wait()

    slow = asyncio.create_task(mongo_store.atomic(_slow))
    await asyncio.wait_for(entered.wait(), 5)
    # B commits while A's transaction is still open
    await asyncio.wait_for(
        mongo_store.atomic(lambda s: accounts_service.credit(s, b.id, Decimal("2"), Category.TASK_CREDIT)), 5
    )
    assert not slow.done()
    release.set()
    await slow

    assert (await accounts_service.get_account(mongo_store, a.id)).balance == Decimal("1")
    assert (await accounts_service.get_account(mongo_store, b.id)).balance == Decimal("2")
