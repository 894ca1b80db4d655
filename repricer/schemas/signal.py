import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from repricer.services.pricing.constants import SignalType


class SignalCreate(BaseModel):
    sku_id: uuid.UUID
    type: SignalType
    data: dict[str, Any] = Field(default_factory=dict)
    process_now: bool = False


class SignalResponse(BaseModel):
    id: uuid.UUID
    sku_id: uuid.UUID
    type: str
    data: dict[str, Any]
    priority: int
    processed: bool
    decision: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SignalDecisionOut(BaseModel):
    signal_id: uuid.UUID
    accepted: bool
    code: str
    message: str


class SweepRequest(BaseModel):
    limit: int = Field(default=50, ge=1, le=1000)
