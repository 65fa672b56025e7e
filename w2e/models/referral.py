from datetime import datetime

from pydantic import BaseModel, Field

from w2e.models.common import new_id
from w2e.models.money import Money


class Referral(BaseModel):
    """One paid referral bonus (not one per invite relationship)."""

    id: str = Field(default_factory=new_id)
    referrer_code: str
    referred_account_id: str
    bonus: Money
    source_category: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
