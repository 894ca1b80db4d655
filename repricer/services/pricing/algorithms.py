import math
import statistics
from abc import ABC, abstractmethod
from typing import Dict, Type

from repricer.schemas.strategy import StrategyConfig
from repricer.services.pricing.constants import (
    DUMPER_TRIM_RATIO,
    LEADER_MAX_STEP_DOWN,
    LEADER_TOP_POSITION,
    LEADER_UNDERCUT,
    LOW_CONFIDENCE,
    MAXIMIZER_MEDIAN_CAP,
    MAXIMIZER_STEP_UP,
    MAXIMIZER_STRONG_POSITION,
    NOISE_THRESHOLD,
    StrategyType,
)
from repricer.services.pricing.economics import round_money
from repricer.services.pricing.exceptions import StrategyConfigurationError
from repricer.services.pricing.types import EvaluationContext, PriceProposal


class PricingAlgorithm(ABC):
    """
    전략 유형별 내장 가격 알고리즘의 기본 인터페이스.
    """
    def __init__(self, strategy: StrategyConfig):
        self.strategy = strategy

    @abstractmethod
    def propose(self, context: EvaluationContext) -> PriceProposal:
        """가격 제안 산출"""
        pass

    @staticmethod
    def hold(context: EvaluationContext, reason: str, confidence: float) -> PriceProposal:
        return PriceProposal(price=context.sku.current_price, reason=reason, confidence=confidence)


def trim_lowest(prices: list[float], ratio: float) -> list[float]:
    """하위 ratio 비율을 제거합니다. 최소 1개는 남깁니다."""
    ordered = sorted(prices)
    remove = min(math.ceil(len(ordered) * ratio), len(ordered) - 1)
    return ordered[max(remove, 0):]


class CompetitiveHoldAlgorithm(PricingAlgorithm):
    """
    Competitive Hold: 최저가가 아니라 경쟁 가격대 중앙에 머무릅니다.
    재고 있는 경쟁사 할인가 기준, 하위 20%(덤핑) 제외 후 중앙값.
    """

    def propose(self, context: EvaluationContext) -> PriceProposal:
        prices = [c.effective_price for c in context.market.competitors if c.in_stock and c.effective_price > 0]
        current = context.sku.current_price
        if not prices:
            return self.hold(context, "Competitive Hold - no in-stock competitor prices, holding price", LOW_CONFIDENCE)

        target = statistics.median(trim_lowest(prices, DUMPER_TRIM_RATIO))
        if current > 0 and abs(target - current) / current < NOISE_THRESHOLD:
            return self.hold(
                context,
                f"Competitive Hold - median {target:.2f} within {NOISE_THRESHOLD:.0%} of current price, holding",
                0.6,
            )

        return PriceProposal(
            price=float(round(target)),
            reason=f"Competitive Hold - median of {len(prices)} competitors without dumpers ({target:.2f})",
            confidence=0.8,
        )


class PriceLeaderAlgorithm(PricingAlgorithm):
    """
    Price Leader: 최저 경쟁가보다 2% 낮게. 이미 Top-3이면 유지.
    1회 인하폭은 현재가의 10%로 제한합니다.
    """

    def propose(self, context: EvaluationContext) -> PriceProposal:
        sku = context.sku
        if sku.position is not None and sku.position <= LEADER_TOP_POSITION:
            return self.hold(context, f"Price Leader - already in top-{LEADER_TOP_POSITION} (position {sku.position}), holding", 0.9)

        min_price = context.market.min_price
        if min_price <= 0:
            return self.hold(context, "Price Leader - no competitor min price, holding price", LOW_CONFIDENCE)

        target = min_price * LEADER_UNDERCUT
        floor = sku.current_price - sku.current_price * LEADER_MAX_STEP_DOWN
        price = max(target, floor)
        return PriceProposal(
            price=round_money(price),
            reason=f"Price Leader - undercut competitor min {min_price:g} by {1 - LEADER_UNDERCUT:.0%}",
            confidence=0.7,
        )


class MarginMaximizerAlgorithm(PricingAlgorithm):
    """
    Margin Maximizer: 포지션이 강할 때(<=5) 2%씩 인상, 경쟁 중앙값 +10%가 상한.
    포지션이 약하거나 알 수 없으면 유지.
    """

    def propose(self, context: EvaluationContext) -> PriceProposal:
        sku = context.sku
        if sku.position is None or sku.position > MAXIMIZER_STRONG_POSITION:
            return self.hold(context, "Margin Maximizer - position not strong enough, holding price", 0.6)

        median = context.market.median_price
        if median <= 0:
            return self.hold(context, "Margin Maximizer - no competitor median to cap the raise, holding price", LOW_CONFIDENCE)

        target = sku.current_price * (1 + MAXIMIZER_STEP_UP)
        cap = median * MAXIMIZER_MEDIAN_CAP
        return PriceProposal(
            price=round_money(min(target, cap)),
            reason=f"Margin Maximizer - strong position ({sku.position}), raising by {MAXIMIZER_STEP_UP:.0%}",
            confidence=0.8,
        )


# 닫힌 핸들러 테이블. inventory_driven / clearance 는 actions로만 동작.
ALGORITHMS: Dict[StrategyType, Type[PricingAlgorithm]] = {
    StrategyType.COMPETITIVE_HOLD: CompetitiveHoldAlgorithm,
    StrategyType.PRICE_LEADER: PriceLeaderAlgorithm,
    StrategyType.MARGIN_MAXIMIZER: MarginMaximizerAlgorithm,
}


def get_algorithm(strategy: StrategyConfig) -> PricingAlgorithm:
    algorithm_cls = ALGORITHMS.get(strategy.type)
    if algorithm_cls is None:
        raise StrategyConfigurationError(
            f"Strategy type '{strategy.type.value}' has no built-in algorithm; define actions instead",
            strategy_type=strategy.type.value,
        )
    return algorithm_cls(strategy)
