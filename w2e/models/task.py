from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from w2e.models.common import new_id
from w2e.models.money import Money


class Task(BaseModel):
    id: str = Field(default_factory=new_id)
    account_id: str
    token: str
    amount: Money
    status: Literal["pending", "completed"] = "pending"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None
