"""Beanie documents backing the Mongo store.

Each document extends its domain model, so a loaded document can be handed
to the services as-is.
"""

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, DESCENDING, IndexModel

from w2e.models import Account, IdempotencyRecord, Referral, Task, Transaction, WithdrawalRequest
from w2e.models.common import new_id


class AccountDocument(Account, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "accounts"
        indexes = [
            IndexModel([("external_id", ASCENDING)], unique=True, name="uniq_external_id"),
            IndexModel([("referral_code", ASCENDING)], unique=True, name="uniq_referral_code"),
            IndexModel([("referred_by", ASCENDING)], name="referred_by"),
            IndexModel([("created_at", ASCENDING), ("_id", ASCENDING)], name="created_at"),
        ]


class TransactionDocument(Transaction, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "transactions"
        indexes = [
            IndexModel([("account_id", ASCENDING), ("created_at", DESCENDING)], name="account_created"),
            IndexModel([("category", ASCENDING)], name="category"),
        ]


class IdempotencyDocument(IdempotencyRecord, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "idempotency_records"
        indexes = [IndexModel([("token", ASCENDING)], unique=True, name="uniq_token")]


class TaskDocument(Task, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "tasks"
        indexes = [
            IndexModel([("account_id", ASCENDING), ("token", ASCENDING)], unique=True, name="uniq_account_token"),
        ]


class ReferralDocument(Referral, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "referrals"
        indexes = [IndexModel([("referrer_code", ASCENDING), ("created_at", DESCENDING)], name="referrer")]


class CheckinDocument(Document):
    """Streak row keyed by account id; the day is kept as YYYY-MM-DD since BSON has no date type."""

    id: str
    streak: int = 0
    last_claim: str | None = None

    class Settings:
        name = "checkins"


class WithdrawalDocument(WithdrawalRequest, Document):
    id: str = Field(default_factory=new_id)

    class Settings:
        name = "withdrawals"
        indexes = [
            # At most one pending request per account.
            IndexModel(
                [("account_id", ASCENDING)],
                unique=True,
                partialFilterExpression={"status": "pending"},
                name="uniq_pending_per_account",
            ),
            IndexModel([("status", ASCENDING), ("created_at", DESCENDING)], name="status_created"),
        ]


DOCUMENT_MODELS = [
    AccountDocument,
    TransactionDocument,
    IdempotencyDocument,
    TaskDocument,
    ReferralDocument,
    CheckinDocument,
    WithdrawalDocument,
]
