from datetime import datetime

from pydantic import BaseModel, Field

from w2e.models.common import new_id
from w2e.models.money import ZERO, Money


class Account(BaseModel):
    """Ledger identity of one Telegram user. Never deleted."""

    id: str = Field(default_factory=new_id)
    external_id: int
    username: str | None = None
    first_name: str | None = None
    referral_code: str
    referred_by: str | None = None  # inviter's referral_code, immutable once set
    balance: Money = ZERO
    total_earned: Money = ZERO
    total_tasks: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
