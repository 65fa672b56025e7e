from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from w2e.models.common import new_id
from w2e.models.money import Money


class Category(str, Enum):
    TASK_CREDIT = "task_credit"
    CHECKIN = "checkin"
    REFERRAL_BONUS = "referral_bonus"
    FOLLOW_REWARD = "follow_reward"
    WITHDRAWAL_DEBIT = "withdrawal_debit"
    EXTERNAL_POSTBACK = "external_postback"


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    account_id: str
    amount: Money  # positive = credit, negative = debit
    category: Category
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
