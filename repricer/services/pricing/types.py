from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from repricer.services.pricing.constants import SignalDecisionCode, ValidationKind


@dataclass(frozen=True)
class UnitEconomics:
    """SKU 비용 입력값의 불변 스냅샷 (평가 주기마다 SKU에서 새로 생성)"""
    cost_price: float
    commission_pct: float
    logistics: float
    storage: float
    spp_pct: float
    tax_pct: float
    currency: str = "RUB"

    @property
    def fixed_costs(self) -> float:
        return self.cost_price + self.logistics + self.storage

    @property
    def variable_rate(self) -> float:
        return (self.commission_pct + self.spp_pct + self.tax_pct) / 100


@dataclass(frozen=True)
class Competitor:
    price: float
    discounted_price: Optional[float] = None
    in_stock: bool = True

    @property
    def effective_price(self) -> float:
        return self.discounted_price if self.discounted_price is not None else self.price


@dataclass(frozen=True)
class MarketSnapshot:
    min_price: float = 0.0
    max_price: float = 0.0
    median_price: float = 0.0
    competitors: tuple[Competitor, ...] = ()
    fetched_at: Optional[datetime] = None

    @property
    def competitor_count(self) -> int:
        return len(self.competitors)

    @property
    def is_empty(self) -> bool:
        return not self.competitors and self.min_price <= 0 and self.median_price <= 0

    @classmethod
    def empty(cls) -> "MarketSnapshot":
        return cls()


@dataclass(frozen=True)
class SkuState:
    id: uuid.UUID
    current_price: float
    position: Optional[int]
    economics: UnitEconomics
    stock: Optional[int] = None


@dataclass(frozen=True)
class EvaluationContext:
    sku: SkuState
    market: MarketSnapshot
    strategy_activated_at: Optional[datetime] = None
    now: Optional[datetime] = None


@dataclass(frozen=True)
class PriceProposal:
    price: float
    reason: str
    confidence: float = 0.5  # 참고용 (0~1)


@dataclass(frozen=True)
class StrategyOutcome:
    proposal: Optional[PriceProposal] = None
    stop_triggered: bool = False
    skip_reason: Optional[str] = None


@dataclass(frozen=True)
class ValidationIssue:
    kind: ValidationKind
    message: str
    critical: bool = True
    suggested_price: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "critical": self.critical,
            "suggested_price": self.suggested_price,
        }


@dataclass(frozen=True)
class PriceValidationResult:
    valid: bool
    errors: list[ValidationIssue]
    profit: float
    margin: float
    breakeven: float
    suggested_price: Optional[float] = None
    min_allowed_price: Optional[float] = None

    @property
    def only_non_critical(self) -> bool:
        return bool(self.errors) and all(not e.critical for e in self.errors)


@dataclass
class RepriceResult:
    success: bool
    sku_id: uuid.UUID
    old_price: float
    timestamp: datetime
    duration_ms: int = 0
    new_price: Optional[float] = None
    changed: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: bool = False
    validation_errors: list[ValidationIssue] = field(default_factory=list)
    suggested_price: Optional[float] = None
    min_allowed_price: Optional[float] = None
    history_id: Optional[uuid.UUID] = None
    strategy_id: Optional[uuid.UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "sku_id": str(self.sku_id),
            "old_price": self.old_price,
            "new_price": self.new_price,
            "changed": self.changed,
            "reason": self.reason,
            "error": self.error,
            "error_kind": self.error_kind,
            "retryable": self.retryable,
            "validation_errors": [e.to_dict() for e in self.validation_errors],
            "suggested_price": self.suggested_price,
            "min_allowed_price": self.min_allowed_price,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class SignalDecision:
    signal_id: uuid.UUID
    accepted: bool
    code: SignalDecisionCode
    message: str
