import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from repricer.settings import settings


class SkuCreate(BaseModel):
    user_id: uuid.UUID
    external_sku_id: str
    name: Optional[str] = None
    current_price: Optional[float] = Field(default=None, gt=0)
    cost_price: float = Field(ge=0)
    commission_pct: float = Field(default=15.0, ge=0, le=100)
    logistics: float = Field(default=0.0, ge=0)
    storage: float = Field(default=0.0, ge=0)
    spp_pct: float = Field(default=0.0, ge=0, le=100)
    tax_pct: float = Field(default=6.0, ge=0, le=100)
    currency: str = settings.currency
    position: Optional[int] = Field(default=None, ge=1)
    stock: Optional[int] = Field(default=None, ge=0)
    active: bool = True


class SkuResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    external_sku_id: str
    name: Optional[str] = None
    current_price: Optional[float] = None
    cost_price: float
    commission_pct: float
    logistics: float
    storage: float
    spp_pct: float
    tax_pct: float
    currency: str
    position: Optional[int] = None
    stock: Optional[int] = None
    active: bool
    version: int

    model_config = ConfigDict(from_attributes=True)


class SkuEconomicsResponse(BaseModel):
    sku_id: uuid.UUID
    price: float
    profit: float
    margin: Optional[float] = None
    breakeven: float
    min_allowed_price: float


class ValidationIssueOut(BaseModel):
    kind: str
    message: str
    critical: bool
    suggested_price: Optional[float] = None


class RepriceResultOut(BaseModel):
    success: bool
    sku_id: uuid.UUID
    old_price: float
    new_price: Optional[float] = None
    changed: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: bool = False
    validation_errors: list[ValidationIssueOut] = []
    suggested_price: Optional[float] = None
    min_allowed_price: Optional[float] = None
    timestamp: datetime
    duration_ms: int = 0
