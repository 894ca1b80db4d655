import logging
from typing import Any, Callable, Dict, Optional

from repricer.schemas.strategy import ConditionSchema
from repricer.services.pricing import economics
from repricer.services.pricing.constants import ConditionOperator, Metric
from repricer.services.pricing.types import EvaluationContext

logger = logging.getLogger(__name__)


def _margin(ctx: EvaluationContext) -> Optional[float]:
    if ctx.sku.current_price <= 0:
        return None
    return economics.margin(ctx.sku.current_price, ctx.sku.economics)


# 지표 이름 -> 컨텍스트 접근자
METRIC_REGISTRY: Dict[Metric, Callable[[EvaluationContext], Any]] = {
    Metric.POSITION: lambda ctx: ctx.sku.position,
    Metric.CURRENT_PRICE: lambda ctx: ctx.sku.current_price,
    Metric.MY_PRICE: lambda ctx: ctx.sku.current_price,
    Metric.COMPETITOR_MIN_PRICE: lambda ctx: ctx.market.min_price,
    Metric.COMPETITOR_MEDIAN_PRICE: lambda ctx: ctx.market.median_price,
    Metric.COMPETITOR_MAX_PRICE: lambda ctx: ctx.market.max_price,
    Metric.COMPETITOR_COUNT: lambda ctx: ctx.market.competitor_count,
    Metric.MARGIN: _margin,
    Metric.PROFIT: lambda ctx: economics.profit(ctx.sku.current_price, ctx.sku.economics),
}


class ConditionEvaluator:
    """
    SKU/시장 컨텍스트에 대한 조건 트리 평가기.

    결과 = 기본 비교 AND (and[] 전부 참) AND (or[]가 있으면 하나 이상 참)
    """

    def evaluate(self, condition: ConditionSchema, context: EvaluationContext) -> bool:
        actual = self.resolve_metric(condition.metric, context)
        if actual is None:
            return False

        if not self.compare(actual, condition.operator, condition.value):
            return False

        for sub in condition.and_:
            if not self.evaluate(sub, context):
                return False

        if condition.or_ and not any(self.evaluate(sub, context) for sub in condition.or_):
            return False

        return True

    def evaluate_all(self, conditions: list[ConditionSchema], context: EvaluationContext) -> bool:
        """최상위 조건 목록은 AND"""
        return all(self.evaluate(c, context) for c in conditions)

    def resolve_metric(self, metric: Any, context: EvaluationContext) -> Any:
        try:
            accessor = METRIC_REGISTRY[Metric(metric)]
        except (ValueError, KeyError):
            logger.warning(f"[ConditionEvaluator] Unknown metric '{metric}', condition evaluates to false")
            return None
        return accessor(context)

    @staticmethod
    def compare(actual: Any, operator: ConditionOperator, expected: Any) -> bool:
        try:
            if operator == ConditionOperator.EQ:
                return actual == expected
            if operator == ConditionOperator.NEQ:
                return actual != expected
            if operator == ConditionOperator.GT:
                return actual > expected
            if operator == ConditionOperator.GTE:
                return actual >= expected
            if operator == ConditionOperator.LT:
                return actual < expected
            if operator == ConditionOperator.LTE:
                return actual <= expected
            if operator == ConditionOperator.IN:
                return isinstance(expected, list) and actual in expected
            if operator == ConditionOperator.NOT_IN:
                return isinstance(expected, list) and actual not in expected
        except TypeError:
            # 숫자 지표와 문자열 기대값 비교 등
            logger.warning(f"[ConditionEvaluator] Cannot compare {actual!r} {operator} {expected!r}")
            return False
        return False
