import logging
from datetime import datetime, timezone
from typing import Optional

from repricer.schemas.strategy import StopConditionSchema, StrategyConfig
from repricer.services.pricing.actions import ActionExecutor
from repricer.services.pricing.algorithms import get_algorithm
from repricer.services.pricing.conditions import ConditionEvaluator
from repricer.services.pricing.constants import StopConditionType
from repricer.services.pricing.types import EvaluationContext, StrategyOutcome

logger = logging.getLogger(__name__)


class StrategyEngine:
    """
    전략 평가 상태 머신 (호출 간 상태 없음).

    1. 비활성 전략 -> 제안 없음
    2. 정지 조건 충족 -> 제안 없음 + stop_triggered (비활성화는 호출자가 수행)
    3. 조건 게이트 (최상위 AND)
    4. 액션이 있으면 첫 액션 실행, 없으면 전략 유형별 내장 알고리즘
    """

    def __init__(
        self,
        evaluator: Optional[ConditionEvaluator] = None,
        executor: Optional[ActionExecutor] = None,
    ):
        self.evaluator = evaluator or ConditionEvaluator()
        self.executor = executor or ActionExecutor()

    def evaluate(self, context: EvaluationContext, strategy: StrategyConfig) -> StrategyOutcome:
        sku_id = context.sku.id

        if not strategy.active:
            logger.info(f"[StrategyEngine] SKU {sku_id}: strategy '{strategy.name}' is inactive")
            return StrategyOutcome(skip_reason="strategy inactive")

        for stop in strategy.stop_conditions:
            if self.stop_condition_met(stop, context):
                logger.info(
                    f"[StrategyEngine] SKU {sku_id}: stop condition {stop.type.value}={stop.value:g} met "
                    f"for strategy '{strategy.name}'"
                )
                return StrategyOutcome(stop_triggered=True, skip_reason=f"stop condition {stop.type.value} met")

        if strategy.conditions and not self.evaluator.evaluate_all(strategy.conditions, context):
            logger.debug(f"[StrategyEngine] SKU {sku_id}: conditions not met for strategy '{strategy.name}'")
            return StrategyOutcome(skip_reason="conditions not met")

        if strategy.actions:
            proposal = self.executor.execute(strategy.actions[0], context)
        else:
            proposal = get_algorithm(strategy).propose(context)

        logger.info(
            f"[StrategyEngine] SKU {sku_id}: '{strategy.name}' proposes {proposal.price} "
            f"(confidence={proposal.confidence}) - {proposal.reason}"
        )
        return StrategyOutcome(proposal=proposal)

    @staticmethod
    def stop_condition_met(stop: StopConditionSchema, context: EvaluationContext) -> bool:
        """데이터가 없으면 충족되지 않은 것으로 봅니다."""
        sku = context.sku
        if stop.type == StopConditionType.PRICE_REACHED:
            return sku.current_price <= stop.value
        if stop.type == StopConditionType.POSITION_REACHED:
            return sku.position is not None and sku.position <= stop.value
        if stop.type == StopConditionType.STOCK_LEVEL:
            return sku.stock is not None and sku.stock <= stop.value
        if stop.type == StopConditionType.TIME_ELAPSED:
            if context.strategy_activated_at is None:
                return False
            now = context.now or datetime.now(timezone.utc)
            elapsed_minutes = (now - context.strategy_activated_at).total_seconds() / 60
            return elapsed_minutes >= stop.value
        return False
