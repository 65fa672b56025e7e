"""Ledger reconciliation: every balance must equal the sum of its transactions."""

from dataclasses import dataclass, field
from decimal import Decimal

from w2e.core.logging import get_logger
from w2e.store.base import LedgerSession, LedgerStore

log = get_logger(__name__)

BATCH_SIZE = 200


@dataclass
class Drift:
    account_id: str
    balance: Decimal
    ledger_sum: Decimal


@dataclass
class ReconciliationReport:
    checked: int = 0
    drifts: list[Drift] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.drifts


async def reconcile(store: LedgerStore, batch_size: int = BATCH_SIZE) -> ReconciliationReport:
    """Walk all accounts in batches; each batch is read in one unit so balance and log agree."""
    report = ReconciliationReport()
    offset = 0
    while True:

        async def _batch(session: LedgerSession) -> list[Drift | None]:
            out: list[Drift | None] = []
            for acc in await session.list_accounts(batch_size, offset):
                total = await session.sum_transactions(acc.id)
                out.append(None if total == acc.balance else Drift(acc.id, acc.balance, total))
            return out

        rows = await store.atomic(_batch)
        report.checked += len(rows)
        for drift in rows:
            if drift is not None:
                report.drifts.append(drift)
                log.error(
                    "ledger_drift",
                    account_id=drift.account_id,
                    balance=str(drift.balance),
                    ledger_sum=str(drift.ledger_sum),
                )
        if len(rows) < batch_size:
            break
        offset += batch_size
    log.info("reconcile_done", checked=report.checked, drifts=len(report.drifts))
    return report
