import asyncio
from decimal import Decimal

import pytest

from w2e.core.exceptions import (
    BadRequestError,
    BelowMinimum,
    DuplicatePending,
    InsufficientBalanceError,
    InvalidAddress,
    InvalidAmount,
    NotFoundOrNotPending,
)
from w2e.models import Category
from w2e.services import accounts as accounts_service
from w2e.services import withdrawals as withdrawals_service
from w2e.services.reconciliation import reconcile

pytestmark = pytest.mark.asyncio

ADDRESS = "0x" + "ab" * 20


async def _funded(store, external_id, amount):
    acc = await accounts_service.get_or_create(store, external_id)
    await store.atomic(
        lambda s: accounts_service.credit(s, acc.id, Decimal(amount), Category.EXTERNAL_POSTBACK)
    )
    return acc


async def test_below_minimum(store, policy):
    acc = await _funded(store, 5001, "0.005")
    with pytest.raises(BelowMinimum):
        await withdrawals_service.request(store, acc.id, ADDRESS, policy)
    assert (await accounts_service.get_account(store, acc.id)).balance == Decimal("0.005")


async def test_full_balance_withdrawal(store, policy):
    acc = await _funded(store, 5002, "1.2")
    result = await withdrawals_service.request(store, acc.id, ADDRESS, policy)
    assert result.balance == 0
    assert result.withdrawal.amount == Decimal("1.2")
    assert result.withdrawal.status == "pending"
    assert result.withdrawal.network == "BSC"

    pending = await withdrawals_service.list_pending(store)
    assert [w.id for w in pending] == [result.withdrawal.id]
    entries = await accounts_service.list_transactions(store, acc.id)
    assert entries[0].amount == Decimal("-1.2")
    assert entries[0].category is Category.WITHDRAWAL_DEBIT
    assert (await reconcile(store)).ok


async def test_partial_amount(store, policy):
    acc = await _funded(store, 5003, "1.5")
    result = await withdrawals_service.request(store, acc.id, ADDRESS, policy, amount=Decimal("1"))
    assert result.balance == Decimal("0.5")


async def test_amount_above_balance(store, policy):
    acc = await _funded(store, 5004, "1.5")
    with pytest.raises(InsufficientBalanceError):
        await withdrawals_service.request(store, acc.id, ADDRESS, policy, amount=Decimal("2"))
    assert await withdrawals_service.list_pending(store) == []


async def test_one_pending_per_account(store, policy):
    acc = await _funded(store, 5005, "3")
    await withdrawals_service.request(store, acc.id, ADDRESS, policy, amount=Decimal("1"))
    with pytest.raises(DuplicatePending):
        await withdrawals_service.request(store, acc.id, ADDRESS, policy, amount=Decimal("1"))
    assert (await accounts_service.get_account(store, acc.id)).balance == Decimal("2")


async def test_concurrent_full_balance_requests(store, policy):
    acc = await _funded(store, 5006, "1.2")
    results = await asyncio.gather(
        *[withdrawals_service.request(store, acc.id, ADDRESS, policy) for _ in range(5)],
        return_exceptions=True,
    )
    ok = [r for r in results if isinstance(r, withdrawals_service.WithdrawalResult)]
    failed = [r for r in results if isinstance(r, (DuplicatePending, InsufficientBalanceError))]
    assert len(ok) == 1
    assert len(failed) == 4
    assert (await accounts_service.get_account(store, acc.id)).balance == 0
    assert len(await withdrawals_service.list_pending(store)) == 1
    assert (await reconcile(store)).ok


async def test_address_validation(store, policy):
    acc = await _funded(store, 5007, "2")
    with pytest.raises(InvalidAddress):
        await withdrawals_service.request(store, acc.id, "0x123", policy)
    with pytest.raises(BadRequestError) as exc:
        await withdrawals_service.request(store, acc.id, ADDRESS, policy, network="DOGE")
    assert exc.value.code == "UNSUPPORTED_NETWORK"
    result = await withdrawals_service.request(store, acc.id, f"  {ADDRESS} ", policy, network="polygon")
    assert result.withdrawal.address == ADDRESS
    assert result.withdrawal.network == "POLYGON"


async def test_mark_processed(store, policy):
    acc = await _funded(store, 5008, "2.5")
    first = await withdrawals_service.request(store, acc.id, ADDRESS, policy, amount=Decimal("1"))
    done = await withdrawals_service.mark_processed(store, first.withdrawal.id, "0xfeed")
    assert done.status == "processed"
    assert done.settlement_ref == "0xfeed"
    assert done.processed_at is not None

    with pytest.raises(NotFoundOrNotPending):
        await withdrawals_service.mark_processed(store, first.withdrawal.id, "0xfeed")
    with pytest.raises(NotFoundOrNotPending):
        await withdrawals_service.mark_processed(store, "missing", "0xfeed")

    # processed requests don't block a new one
    second = await withdrawals_service.request(store, acc.id, ADDRESS, policy)
    assert second.balance == 0
    mine = await withdrawals_service.list_for_account(store, acc.id)
    assert {w.status for w in mine} == {"pending", "processed"}


async def test_mark_processed_requires_reference(store):
    with pytest.raises(BadRequestError):
        await withdrawals_service.mark_processed(store, "any", "  ")


@pytest.mark.parametrize("amount", [Decimal("1e25"), Decimal("Infinity")])
async def test_out_of_range_amount_is_invalid(store, policy, amount):
    acc = await _funded(store, 4020, "5")
    with pytest.raises(InvalidAmount):
        await withdrawals_service.request(store, acc.id, ADDRESS, policy, amount=amount)
    assert (await accounts_service.get_account(store, acc.id)).balance == Decimal("5")
