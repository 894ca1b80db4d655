import logging

from repricer.schemas.strategy import ActionSchema
from repricer.services.pricing import economics
from repricer.services.pricing.constants import LOW_CONFIDENCE, ActionMode, ActionType
from repricer.services.pricing.exceptions import ActionConfigurationError
from repricer.services.pricing.types import EvaluationContext, PriceProposal

logger = logging.getLogger(__name__)


class ActionExecutor:
    """
    전략 액션 1개를 가격 제안으로 변환합니다.
    전략당 첫 번째 액션만 실행하며 액션 체인은 지원하지 않습니다.
    """

    def execute(self, action: ActionSchema, context: EvaluationContext) -> PriceProposal:
        handlers = {
            ActionType.SET_PRICE: self._set_price,
            ActionType.INCREASE_PRICE: self._increase_price,
            ActionType.DECREASE_PRICE: self._decrease_price,
            ActionType.FOLLOW_COMPETITOR: self._follow_competitor,
            ActionType.SET_TO_MEDIAN: self._set_to_median,
            ActionType.SET_TO_BREAKEVEN: self._set_to_breakeven,
        }
        handler = handlers.get(action.type)
        if handler is None:
            raise ActionConfigurationError(f"Unknown action type: {action.type}", action_type=str(action.type))
        return handler(action, context)

    def _require_value(self, action: ActionSchema) -> float:
        if action.value is None:
            raise ActionConfigurationError(
                f"Action '{action.type.value}' requires a value", action_type=action.type.value
            )
        return action.value

    def _delta(self, action: ActionSchema, base: float) -> float:
        value = self._require_value(action)
        if action.mode == ActionMode.PERCENTAGE:
            return base * value / 100
        return value

    @staticmethod
    def _describe(action: ActionSchema) -> str:
        suffix = "%" if action.mode == ActionMode.PERCENTAGE else ""
        return f"{action.value:g}{suffix}"

    def _set_price(self, action: ActionSchema, context: EvaluationContext) -> PriceProposal:
        value = self._require_value(action)
        return PriceProposal(price=economics.round_money(value), reason=f"Set price to {value:g}", confidence=1.0)

    def _increase_price(self, action: ActionSchema, context: EvaluationContext) -> PriceProposal:
        current = context.sku.current_price
        new_price = current + self._delta(action, current)
        return PriceProposal(
            price=economics.round_money(new_price),
            reason=f"Increase price by {self._describe(action)}",
            confidence=0.8,
        )

    def _decrease_price(self, action: ActionSchema, context: EvaluationContext) -> PriceProposal:
        current = context.sku.current_price
        new_price = current - self._delta(action, current)
        return PriceProposal(
            price=economics.round_money(new_price),
            reason=f"Decrease price by {self._describe(action)}",
            confidence=0.8,
        )

    def _follow_competitor(self, action: ActionSchema, context: EvaluationContext) -> PriceProposal:
        target = context.market.min_price
        if target <= 0:
            return self._hold(context, "Follow competitor: no competitor price available, holding price")

        offset = action.value or 0
        if action.mode == ActionMode.PERCENTAGE:
            new_price = target * (1 - offset / 100)
        else:
            new_price = target - offset
        return PriceProposal(
            price=economics.round_money(new_price),
            reason=f"Follow competitor: min price {target:g} minus {offset:g}{'%' if action.mode == ActionMode.PERCENTAGE else ''}",
            confidence=0.7,
        )

    def _set_to_median(self, action: ActionSchema, context: EvaluationContext) -> PriceProposal:
        median = context.market.median_price
        if median <= 0:
            return self._hold(context, "Set to median: no competitor median available, holding price")
        return PriceProposal(
            price=economics.round_money(median),
            reason=f"Set to competitor median ({median:g})",
            confidence=0.7,
        )

    def _set_to_breakeven(self, action: ActionSchema, context: EvaluationContext) -> PriceProposal:
        be = economics.breakeven(context.sku.economics)
        return PriceProposal(price=be, reason=f"Set to breakeven ({be:g})", confidence=0.9)

    @staticmethod
    def _hold(context: EvaluationContext, reason: str) -> PriceProposal:
        logger.info(f"[ActionExecutor] SKU {context.sku.id}: {reason}")
        return PriceProposal(price=context.sku.current_price, reason=reason, confidence=LOW_CONFIDENCE)
