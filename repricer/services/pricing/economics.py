"""
단위 경제성 엔진.

이익/마진/손익분기점 계산과 가격 제약(constraint) 검증을 담당하는 순수 함수 모음입니다.
I/O가 없으며 동일 입력에 대해 항상 동일한 결과를 반환합니다.
"""
from __future__ import annotations

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from repricer.schemas.strategy import ConstraintSchema
from repricer.services.pricing.constants import ConstraintType, ValidationKind
from repricer.services.pricing.exceptions import CostModelError, InvalidPriceError
from repricer.services.pricing.types import PriceValidationResult, UnitEconomics, ValidationIssue

logger = logging.getLogger(__name__)


def round_money(value: float) -> float:
    """통화 최소 단위(소수 2자리)로 반올림 (half-up)"""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _ceil_money(value: float) -> float:
    # 부동소수 오차로 1076.0000000001 -> 1077 이 되지 않도록 먼저 정리
    return float(math.ceil(round(value, 6)))


def economics_from_sku(sku: Any) -> UnitEconomics:
    """ORM Sku(또는 동일 속성을 가진 객체)에서 경제성 스냅샷을 생성합니다."""
    return UnitEconomics(
        cost_price=float(sku.cost_price or 0),
        commission_pct=float(sku.commission_pct or 0),
        logistics=float(sku.logistics or 0),
        storage=float(sku.storage or 0),
        spp_pct=float(sku.spp_pct or 0),
        tax_pct=float(sku.tax_pct or 0),
        currency=getattr(sku, "currency", None) or "RUB",
    )


def profit(price: float, economics: UnitEconomics) -> float:
    """
    단위당 이익.

    after_discount = price * (1 - spp/100)
    profit = after_discount - 원가 - 수수료 - 물류비 - 보관비 - 세금
    """
    after_discount = price * (1 - economics.spp_pct / 100)
    commission = after_discount * economics.commission_pct / 100
    tax = after_discount * economics.tax_pct / 100
    value = after_discount - economics.cost_price - commission - economics.logistics - economics.storage - tax
    return round_money(value)


def margin(price: float, economics: UnitEconomics) -> float:
    """마진율(%) = profit / price * 100. price <= 0 이면 InvalidPriceError."""
    if price <= 0:
        raise InvalidPriceError(f"Cannot compute margin for non-positive price {price}", price=price)
    return round_money(profit(price, economics) / price * 100)


def breakeven(economics: UnitEconomics) -> float:
    """손익분기 가격. 다음 정수 통화 단위로 올림."""
    variable_rate = economics.variable_rate
    if variable_rate >= 1:
        raise CostModelError(
            f"Variable costs are {variable_rate * 100:.2f}% of price (>= 100%), breakeven is undefined",
            variable_rate=variable_rate,
        )
    return _ceil_money(economics.fixed_costs / (1 - variable_rate))


def price_for_profit(economics: UnitEconomics, target_profit: float) -> float:
    variable_rate = economics.variable_rate
    if variable_rate >= 1:
        raise CostModelError("Variable costs >= 100%, no price yields the target profit", variable_rate=variable_rate)
    return (target_profit + economics.fixed_costs) / (1 - variable_rate)


def price_for_margin(economics: UnitEconomics, target_margin: float) -> float:
    """
    목표 마진율을 만족하는 가격.

    price * margin/100 = price * (1 - variable_rate) - fixed_costs
    => price = fixed_costs / (1 - variable_rate - margin/100)
    """
    denominator = 1 - economics.variable_rate - target_margin / 100
    if denominator <= 0:
        raise CostModelError(
            f"Target margin {target_margin}% is unreachable with the current cost structure",
            variable_rate=economics.variable_rate,
            target_margin=target_margin,
        )
    return economics.fixed_costs / denominator


def min_allowed_price(economics: UnitEconomics, constraints: Iterable[ConstraintSchema]) -> float:
    """손익분기점과 활성화된 하한 제약(min_profit/min_margin/min_price)을 모두 만족하는 최소 가격"""
    floor = breakeven(economics)
    for constraint in constraints:
        if not constraint.enabled:
            continue
        if constraint.type == ConstraintType.MIN_PROFIT:
            floor = max(floor, price_for_profit(economics, constraint.value))
        elif constraint.type == ConstraintType.MIN_MARGIN:
            floor = max(floor, price_for_margin(economics, constraint.value))
        elif constraint.type == ConstraintType.MIN_PRICE:
            floor = max(floor, constraint.value)
    return _ceil_money(floor)


def validate_price(
    price: float,
    economics: UnitEconomics,
    constraints: Iterable[ConstraintSchema],
    current_price: Optional[float] = None,
) -> PriceValidationResult:
    """
    제안 가격을 검증합니다.

    - 활성화(enabled)된 제약만 평가
    - 손익분기점 하한은 제약 유무와 관계없이 항상 검사
    - max_price 위반만 non-critical (상한으로 캡핑 가능)
    - 오류가 있으면 min_allowed_price / suggested_price 계산
    """
    constraints = [c for c in constraints if c.enabled]
    be = breakeven(economics)
    prof = profit(price, economics)
    errors: list[ValidationIssue] = []

    if price <= 0:
        mar = 0.0
        errors.append(ValidationIssue(
            kind=ValidationKind.INVALID_PRICE,
            message=f"Price {price} must be positive",
            critical=True,
        ))
    else:
        mar = margin(price, economics)
        for constraint in constraints:
            issue = _check_constraint(constraint, price, prof, mar, economics, current_price)
            if issue:
                errors.append(issue)

    if price < be and not any(e.kind == ValidationKind.BELOW_BREAKEVEN for e in errors):
        errors.append(ValidationIssue(
            kind=ValidationKind.BELOW_BREAKEVEN,
            message=f"Price {price} is below breakeven {be}",
            critical=True,
            suggested_price=be,
        ))

    suggested: Optional[float] = None
    min_allowed: Optional[float] = None
    if errors:
        min_allowed = min_allowed_price(economics, constraints)
        caps = [e.suggested_price for e in errors if not e.critical and e.suggested_price is not None]
        if caps and all(not e.critical for e in errors):
            suggested = min(caps)
        else:
            suggested = min_allowed

    result = PriceValidationResult(
        valid=not errors,
        errors=errors,
        profit=prof,
        margin=mar,
        breakeven=be,
        suggested_price=suggested,
        min_allowed_price=min_allowed,
    )
    logger.debug(f"[Economics] validate price={price} valid={result.valid} errors={[e.kind.value for e in errors]}")
    return result


def _check_constraint(
    constraint: ConstraintSchema,
    price: float,
    prof: float,
    mar: float,
    economics: UnitEconomics,
    current_price: Optional[float],
) -> Optional[ValidationIssue]:
    ctype = constraint.type
    value = constraint.value

    if ctype == ConstraintType.MIN_PROFIT:
        if prof < value:
            return ValidationIssue(
                kind=ValidationKind.MIN_PROFIT_VIOLATED,
                message=f"Profit {prof:.2f} is below minimum {value}",
                critical=True,
                suggested_price=_ceil_money(price_for_profit(economics, value)),
            )
    elif ctype == ConstraintType.MIN_MARGIN:
        if mar < value:
            return ValidationIssue(
                kind=ValidationKind.MIN_MARGIN_VIOLATED,
                message=f"Margin {mar:.2f}% is below minimum {value}%",
                critical=True,
            )
    elif ctype == ConstraintType.MIN_PRICE:
        if price < value:
            return ValidationIssue(
                kind=ValidationKind.MIN_PRICE_VIOLATED,
                message=f"Price {price} is below minimum {value}",
                critical=True,
                suggested_price=value,
            )
    elif ctype == ConstraintType.MAX_PRICE:
        if price > value:
            return ValidationIssue(
                kind=ValidationKind.MAX_PRICE_EXCEEDED,
                message=f"Price {price} exceeds maximum {value}",
                critical=False,
                suggested_price=value,
            )
    elif ctype == ConstraintType.MAX_DELTA_PER_STEP:
        if not current_price or current_price <= 0:
            logger.warning(f"[Economics] max_delta_per_step skipped: no current price to compare against (price={price})")
            return None
        delta_pct = abs(price - current_price) / current_price * 100
        if delta_pct > value:
            step = current_price * value / 100
            clamped = current_price + step if price > current_price else current_price - step
            return ValidationIssue(
                kind=ValidationKind.DELTA_TOO_LARGE,
                message=f"Price change {delta_pct:.2f}% exceeds max step {value}% of current price {current_price}",
                critical=True,
                suggested_price=round_money(clamped),
            )
    # max_changes_per_day 는 가격 검증이 아니라 시그널 처리기의 일일 한도 게이트에서 적용
    return None
