from datetime import date

from pydantic import BaseModel, Field

MAX_STREAK = 7


class CheckinState(BaseModel):
    account_id: str
    streak: int = Field(default=0, ge=0, le=MAX_STREAK)
    last_claim: date | None = None  # UTC calendar day
