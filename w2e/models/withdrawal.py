from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from w2e.models.common import new_id
from w2e.models.money import Money


class WithdrawalRequest(BaseModel):
    id: str = Field(default_factory=new_id)
    account_id: str
    amount: Money
    address: str
    network: str = "BSC"
    status: Literal["pending", "processed"] = "pending"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    processed_at: datetime | None = None
    settlement_ref: str | None = None  # e.g. on-chain tx hash
