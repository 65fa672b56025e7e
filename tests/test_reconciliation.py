from decimal import Decimal

import pytest

from w2e.models import Category
from w2e.services import accounts as accounts_service
from w2e.services.reconciliation import reconcile

pytestmark = pytest.mark.asyncio


async def test_reconcile_clean_ledger(store):
    for ext in range(7001, 7006):
        acc = await accounts_service.get_or_create(store, ext)
        await store.atomic(lambda s, a=acc: accounts_service.credit(s, a.id, Decimal("0.1"), Category.CHECKIN))
    report = await reconcile(store, batch_size=2)
    assert report.checked == 5
    assert report.ok


async def test_reconcile_reports_drift(store):
    acc = await accounts_service.get_or_create(store, 7010)
    await store.atomic(lambda s: accounts_service.credit(s, acc.id, Decimal("0.1"), Category.CHECKIN))
    # simulate a write that bypassed the transaction log
    store._state.accounts[acc.id].balance += Decimal("1")
    report = await reconcile(store)
    assert not report.ok
    assert [(d.account_id, d.balance, d.ledger_sum) for d in report.drifts] == [
        (acc.id, Decimal("1.1"), Decimal("0.1"))
    ]
