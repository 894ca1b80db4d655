"""
Price Autopsy / 전략 건강도

현재 가격이 왜 이 값인지(경제성, 제약 충족 여부, 최근 거절 이력)와
전략이 최근 얼마나 건강하게 동작했는지 설명하는 진단 리포트를 만듭니다.
"""
import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from pydantic import ValidationError

from repricer.schemas.strategy import StrategyConfig
from repricer.services.pricing import economics
from repricer.services.pricing.constants import ConstraintType
from repricer.services.pricing.exceptions import NotFoundError
from repricer.services.pricing.repository import PricingRepository

logger = logging.getLogger(__name__)

LOW_PROFIT_THRESHOLD = 50.0
HEALTH_WINDOW_DAYS = 7


def build_price_autopsy(repository: PricingRepository, sku_id: uuid.UUID) -> Dict[str, Any]:
    sku = repository.get_sku(sku_id)
    if sku is None:
        raise NotFoundError(f"SKU {sku_id} not found", entity="sku", entity_id=sku_id)

    attachment = repository.get_active_attachment(sku_id)
    strategy: Optional[StrategyConfig] = None
    strategy_invalid = False
    active_strategy: Optional[Dict[str, Any]] = None
    if attachment is not None:
        try:
            strategy = StrategyConfig.model_validate(attachment.strategy)
            active_strategy = {"id": str(strategy.id), "name": strategy.name, "type": strategy.type.value}
        except ValidationError as e:
            strategy_invalid = True
            active_strategy = {"id": str(attachment.strategy_id), "error": "invalid strategy configuration"}
            logger.error(f"[Autopsy] SKU {sku_id}: active strategy has invalid configuration: {e}")

    unit = economics.economics_from_sku(sku)
    current_price = float(sku.current_price or 0)
    constraints = strategy.enabled_constraints() if strategy is not None else []

    profit = economics.profit(current_price, unit)
    margin = economics.margin(current_price, unit) if current_price > 0 else None
    breakeven = economics.breakeven(unit)
    min_allowed = economics.min_allowed_price(unit, constraints)

    last_signal = repository.get_last_processed_signal(sku_id)
    last_change = repository.get_last_applied_change(sku_id)
    rejections = repository.get_recent_rejections(sku_id, limit=5)

    autopsy: Dict[str, Any] = {
        "sku_id": str(sku.id),
        "external_sku_id": sku.external_sku_id,
        "name": sku.name,
        "current_price": current_price,
        "currency": unit.currency,
        "active_strategy": active_strategy,
        "last_signal": {
            "type": last_signal.type,
            "decision": last_signal.decision,
            "created_at": last_signal.created_at,
            "data": last_signal.data,
        } if last_signal is not None else None,
        "economics": {
            "current_profit": profit,
            "current_margin": margin,
            "breakeven": breakeven,
            "cost_price": unit.cost_price,
            "min_allowed_price": min_allowed,
        },
        "last_price_change": {
            "created_at": last_change.created_at,
            "old_price": last_change.old_price,
            "new_price": last_change.new_price,
            "reason": last_change.reason,
            "strategy_id": str(last_change.strategy_id) if last_change.strategy_id else None,
            "signal_type": last_change.signal_type,
        } if last_change is not None else None,
        "recent_rejections": [
            {
                "proposed_price": r.proposed_price,
                "reason": r.reason,
                "errors": r.validation_errors,
                "suggested_price": r.suggested_price,
                "min_allowed_price": r.min_allowed_price,
                "created_at": r.created_at,
            }
            for r in rejections
        ],
        "constraints_status": [_constraint_status(c.type, c.value, current_price, profit, margin) for c in constraints],
        "recommendations": [],
    }

    recommendations = autopsy["recommendations"]
    if profit < 0:
        recommendations.append("손실 판매 중입니다. 가격을 올리거나 비용을 줄여야 합니다.")
    elif profit < LOW_PROFIT_THRESHOLD:
        recommendations.append("이익이 낮습니다. 가격 인상을 검토하세요.")
    if current_price < breakeven:
        recommendations.append(f"현재 가격이 손익분기점({breakeven:g})보다 낮습니다.")
    if strategy_invalid:
        recommendations.append("활성 전략 설정이 올바르지 않습니다. 전략을 다시 저장하세요.")
    elif strategy is None:
        recommendations.append("활성 전략이 없습니다. 자동 가격 관리를 위해 전략을 연결하세요.")
    if rejections:
        recommendations.append(f"최근 거절된 가격 변경이 {len(rejections)}건 있습니다. 제약 조건을 점검하세요.")

    return autopsy


def _constraint_status(
    ctype: ConstraintType,
    value: float,
    price: float,
    profit: float,
    margin: Optional[float],
) -> Dict[str, Any]:
    if ctype == ConstraintType.MIN_PROFIT:
        satisfied = profit >= value
        message = f"profit {profit:.2f} {'>=' if satisfied else '<'} min {value:g}"
    elif ctype == ConstraintType.MIN_MARGIN:
        satisfied = margin is not None and margin >= value
        message = f"margin {margin if margin is not None else 0:.2f}% {'>=' if satisfied else '<'} min {value:g}%"
    elif ctype == ConstraintType.MIN_PRICE:
        satisfied = price >= value
        message = f"price {price:g} {'>=' if satisfied else '<'} min {value:g}"
    elif ctype == ConstraintType.MAX_PRICE:
        satisfied = price <= value
        message = f"price {price:g} {'<=' if satisfied else '>'} max {value:g}"
    else:
        # 단계/횟수 제약은 현재 가격만으로 판단할 수 없음
        satisfied = True
        message = f"{ctype.value} {value:g} is enforced per change"
    return {"type": ctype.value, "value": value, "satisfied": satisfied, "message": message}


def build_strategy_health(repository: PricingRepository, strategy_id: uuid.UUID) -> Dict[str, Any]:
    """최근 7일 가격 변경/거절 통계로 전략 건강도를 평가합니다."""
    strategy = repository.get_strategy(strategy_id)
    if strategy is None:
        raise NotFoundError(f"Strategy {strategy_id} not found", entity="strategy", entity_id=strategy_id)

    since = repository.now() - timedelta(days=HEALTH_WINDOW_DAYS)
    active_skus = repository.count_strategy_attachments(strategy_id)
    changes = repository.get_applied_changes_for_strategy(strategy_id, since)
    rejections = repository.count_rejections_for_strategy(strategy_id, since)

    total = len(changes)
    avg_changes_per_sku = total / active_skus if active_skus else 0.0
    avg_profit = sum(c.profit or 0 for c in changes) / max(total, 1)
    avg_margin = sum(c.margin or 0 for c in changes) / max(total, 1)
    rejection_rate = rejections / max(total + rejections, 1) * 100

    score = 100
    issues: list[str] = []
    recommendations: list[str] = []
    if rejection_rate > 30:
        score -= 30
        issues.append("거절 비율이 높습니다 (> 30%)")
        recommendations.append("제약 조건 완화를 검토하세요")
    if total and avg_margin < 10:
        score -= 20
        issues.append("평균 마진이 낮습니다 (< 10%)")
        recommendations.append("전략이 너무 공격적입니다")
    if avg_changes_per_sku > 5:
        score -= 15
        issues.append("가격 변경이 너무 잦습니다")
        recommendations.append("cooldown을 늘리거나 max_changes_per_day를 줄이세요")

    if score >= 80:
        verdict = "healthy"
    elif score >= 50:
        verdict = "overheated"
    else:
        verdict = "harmful"

    return {
        "strategy_id": str(strategy.id),
        "strategy_name": strategy.name,
        "active_sku_count": active_skus,
        "total_price_changes": total,
        "avg_changes_per_sku": round(avg_changes_per_sku, 2),
        "avg_profit": economics.round_money(avg_profit),
        "avg_margin": economics.round_money(avg_margin),
        "rejection_rate": economics.round_money(rejection_rate),
        "health_score": score,
        "verdict": verdict,
        "issues": issues,
        "recommendations": recommendations,
    }
