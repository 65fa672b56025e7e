"""MongoDB store: beanie documents, one motor transaction per atomic unit."""

from datetime import date, datetime
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar

from beanie import UpdateResponse
from bson.decimal128 import Decimal128
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

from w2e.core.logging import get_logger
from w2e.db.documents import (
    AccountDocument,
    CheckinDocument,
    IdempotencyDocument,
    ReferralDocument,
    TaskDocument,
    TransactionDocument,
    WithdrawalDocument,
)
from w2e.db.init import init_db
from w2e.models import (
    Account,
    CheckinState,
    IdempotencyRecord,
    Referral,
    Task,
    Transaction,
    WithdrawalRequest,
)
from w2e.store.base import DuplicateKeyError, LedgerSession, LedgerStore

T = TypeVar("T")

log = get_logger(__name__)


def _d128(value: Decimal) -> Decimal128:
    return Decimal128(str(value))


def _dup_key(exc: MongoDuplicateKeyError) -> str:
    pattern = (exc.details or {}).get("keyPattern") or {}
    return next(iter(pattern), "unknown")


class MongoSession(LedgerSession):
    def __init__(self, session: AsyncIOMotorClientSession) -> None:
        self._s = session

    async def get_account(self, account_id: str) -> Account | None:
        return await AccountDocument.get(account_id, session=self._s)

    async def get_account_by_external_id(self, external_id: int) -> Account | None:
        return await AccountDocument.find_one(AccountDocument.external_id == external_id, session=self._s)

    async def get_account_by_referral_code(self, code: str) -> Account | None:
        return await AccountDocument.find_one(AccountDocument.referral_code == code, session=self._s)

    async def insert_account(self, account: Account) -> None:
        try:
            await AccountDocument(**account.model_dump()).insert(session=self._s)
        except MongoDuplicateKeyError as e:
            raise DuplicateKeyError(_dup_key(e), account.external_id) from e

    async def update_profile(self, account_id: str, username: str | None, first_name: str | None) -> None:
        await AccountDocument.find_one(AccountDocument.id == account_id, session=self._s).update(
            {"$set": {"username": username, "first_name": first_name}},
            session=self._s,
        )

    async def apply_balance_change(
        self,
        account_id: str,
        delta: Decimal,
        earned: Decimal = Decimal("0"),
        tasks: int = 0,
    ) -> Account | None:
        query: dict = {"_id": account_id}
        if delta < 0:
            # Compare-and-swap: the debit only matches while funds suffice.
            query["balance"] = {"$gte": _d128(-delta)}
        return await AccountDocument.find_one(query, session=self._s).update(
            {"$inc": {"balance": _d128(delta), "total_earned": _d128(earned), "total_tasks": tasks}},
            session=self._s,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )

    async def list_accounts(self, limit: int, offset: int) -> list[Account]:
        return await (
            AccountDocument.find_all(session=self._s)
            .sort(+AccountDocument.created_at, +AccountDocument.id)
            .skip(offset)
            .limit(limit)
            .to_list()
        )

    async def count_accounts_referred_by(self, code: str) -> int:
        return await AccountDocument.find(AccountDocument.referred_by == code, session=self._s).count()

    async def insert_transaction(self, txn: Transaction) -> None:
        await TransactionDocument(**txn.model_dump()).insert(session=self._s)

    async def list_transactions(self, account_id: str, limit: int, offset: int) -> list[Transaction]:
        return await (
            TransactionDocument.find(TransactionDocument.account_id == account_id, session=self._s)
            .sort(-TransactionDocument.created_at)
            .skip(offset)
            .limit(limit)
            .to_list()
        )

    async def sum_transactions(self, account_id: str) -> Decimal:
        cursor = TransactionDocument.get_motor_collection().aggregate(
            [
                {"$match": {"account_id": account_id}},
                {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
            ],
            session=self._s,
        )
        async for row in cursor:
            total = row.get("total")
            return total.to_decimal() if isinstance(total, Decimal128) else Decimal(str(total or 0))
        return Decimal("0")

    async def insert_idempotency_record(self, record: IdempotencyRecord) -> None:
        try:
            await IdempotencyDocument(**record.model_dump()).insert(session=self._s)
        except MongoDuplicateKeyError as e:
            raise DuplicateKeyError("token", record.token) from e

    async def insert_task(self, task: Task) -> None:
        try:
            await TaskDocument(**task.model_dump()).insert(session=self._s)
        except MongoDuplicateKeyError as e:
            raise DuplicateKeyError("task_token", task.token) from e

    async def get_task(self, account_id: str, token: str) -> Task | None:
        return await TaskDocument.find_one(
            TaskDocument.account_id == account_id,
            TaskDocument.token == token,
            session=self._s,
        )

    async def complete_task(self, task_id: str, completed_at: datetime) -> Task | None:
        return await TaskDocument.find_one({"_id": task_id, "status": "pending"}, session=self._s).update(
            {"$set": {"status": "completed", "completed_at": completed_at}},
            session=self._s,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )

    async def insert_referral(self, referral: Referral) -> None:
        await ReferralDocument(**referral.model_dump()).insert(session=self._s)

    async def referral_totals(self, referrer_code: str) -> tuple[int, Decimal]:
        cursor = ReferralDocument.get_motor_collection().aggregate(
            [
                {"$match": {"referrer_code": referrer_code}},
                {"$group": {"_id": None, "count": {"$sum": 1}, "total": {"$sum": "$bonus"}}},
            ],
            session=self._s,
        )
        async for row in cursor:
            total = row.get("total")
            total = total.to_decimal() if isinstance(total, Decimal128) else Decimal(str(total or 0))
            return int(row.get("count", 0)), total
        return 0, Decimal("0")

    async def get_checkin(self, account_id: str) -> CheckinState | None:
        doc = await CheckinDocument.get(account_id, session=self._s)
        if doc is None:
            return None
        return CheckinState(
            account_id=doc.id,
            streak=doc.streak,
            last_claim=date.fromisoformat(doc.last_claim) if doc.last_claim else None,
        )

    async def save_checkin(self, state: CheckinState) -> None:
        doc = CheckinDocument(
            id=state.account_id,
            streak=state.streak,
            last_claim=state.last_claim.isoformat() if state.last_claim else None,
        )
        await doc.save(session=self._s)

    async def get_withdrawal(self, withdrawal_id: str) -> WithdrawalRequest | None:
        return await WithdrawalDocument.get(withdrawal_id, session=self._s)

    async def get_pending_withdrawal(self, account_id: str) -> WithdrawalRequest | None:
        return await WithdrawalDocument.find_one(
            WithdrawalDocument.account_id == account_id,
            WithdrawalDocument.status == "pending",
            session=self._s,
        )

    async def insert_withdrawal(self, withdrawal: WithdrawalRequest) -> None:
        try:
            await WithdrawalDocument(**withdrawal.model_dump()).insert(session=self._s)
        except MongoDuplicateKeyError as e:
            raise DuplicateKeyError("pending_withdrawal", withdrawal.account_id) from e

    async def mark_withdrawal_processed(
        self,
        withdrawal_id: str,
        settlement_ref: str,
        processed_at: datetime,
    ) -> WithdrawalRequest | None:
        return await WithdrawalDocument.find_one({"_id": withdrawal_id, "status": "pending"}, session=self._s).update(
            {"$set": {"status": "processed", "settlement_ref": settlement_ref, "processed_at": processed_at}},
            session=self._s,
            response_type=UpdateResponse.NEW_DOCUMENT,
        )

    async def list_withdrawals(
        self,
        status: str | None = None,
        account_id: str | None = None,
        limit: int = 20,
    ) -> list[WithdrawalRequest]:
        query: dict = {}
        if status is not None:
            query["status"] = status
        if account_id is not None:
            query["account_id"] = account_id
        return await (
            WithdrawalDocument.find(query, session=self._s)
            .sort(-WithdrawalDocument.created_at)
            .limit(limit)
            .to_list()
        )


class MongoLedgerStore(LedgerStore):
    def __init__(self, mongodb_uri: str, db_name: str) -> None:
        self._uri = mongodb_uri
        self._db_name = db_name
        self._client: AsyncIOMotorClient | None = None

    async def connect(self) -> None:
        if self._client is None:
            self._client = await init_db(self._uri, self._db_name)
            log.info("store_connected", backend="mongo", db=self._db_name)

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def atomic(self, fn: Callable[[LedgerSession], Awaitable[T]]) -> T:
        if self._client is None:
            await self.connect()

        async def _callback(session: AsyncIOMotorClientSession) -> T:
            return await fn(MongoSession(session))

        # with_transaction retries TransientTransactionError (write conflicts on the same account).
        async with await self._client.start_session() as session:
            return await session.with_transaction(_callback)
