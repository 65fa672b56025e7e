from w2e.models.account import Account
from w2e.models.checkin import CheckinState
from w2e.models.idempotency import IdempotencyRecord
from w2e.models.referral import Referral
from w2e.models.task import Task
from w2e.models.transaction import Category, Transaction
from w2e.models.withdrawal import WithdrawalRequest

__all__ = [
    "Account",
    "Category",
    "CheckinState",
    "IdempotencyRecord",
    "Referral",
    "Task",
    "Transaction",
    "WithdrawalRequest",
]
