from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class IdempotencyRecord(BaseModel):
    """Write-once marker that an inbound event was handled."""

    token: str
    endpoint: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
