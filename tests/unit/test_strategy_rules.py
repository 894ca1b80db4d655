"""
Unit tests for condition trees, actions and built-in pricing algorithms.

DB 없이 EvaluationContext만으로 전략 평가 규칙을 검증합니다.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from repricer.schemas.strategy import (
    ActionSchema,
    ConditionSchema,
    StopConditionSchema,
    StrategyConfig,
)
from repricer.services.pricing.actions import ActionExecutor
from repricer.services.pricing.algorithms import (
    CompetitiveHoldAlgorithm,
    MarginMaximizerAlgorithm,
    PriceLeaderAlgorithm,
    get_algorithm,
    trim_lowest,
)
from repricer.services.pricing.conditions import ConditionEvaluator
from repricer.services.pricing.constants import LOW_CONFIDENCE, StrategyType
from repricer.services.pricing.exceptions import ActionConfigurationError, StrategyConfigurationError
from repricer.services.pricing.strategy_engine import StrategyEngine
from repricer.services.pricing.types import (
    Competitor,
    EvaluationContext,
    MarketSnapshot,
    SkuState,
    UnitEconomics,
)

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

UNIT = UnitEconomics(cost_price=800, commission_pct=15, logistics=50, storage=0, spp_pct=0, tax_pct=6)


def make_context(price=1200.0, position=None, stock=None, competitors=None, market=None, activated_at=None):
    if market is None:
        if competitors:
            prices = sorted(c.effective_price for c in competitors if c.in_stock)
            mid = len(prices) // 2
            median = prices[mid] if len(prices) % 2 else (prices[mid - 1] + prices[mid]) / 2
            market = MarketSnapshot(
                min_price=prices[0],
                max_price=prices[-1],
                median_price=median,
                competitors=tuple(competitors),
            )
        else:
            market = MarketSnapshot.empty()
    return EvaluationContext(
        sku=SkuState(id=uuid.uuid4(), current_price=price, position=position, economics=UNIT, stock=stock),
        market=market,
        strategy_activated_at=activated_at,
        now=NOW,
    )


def strategy(**overrides) -> StrategyConfig:
    data = {"name": "test", "type": "competitive_hold"}
    data.update(overrides)
    return StrategyConfig.model_validate(data)


def condition(data) -> ConditionSchema:
    return ConditionSchema.model_validate(data)


@pytest.mark.unit
class TestConditionEvaluator:
    """조건 트리: 기본 비교 AND and[] AND any(or[])"""

    def setup_method(self):
        self.evaluator = ConditionEvaluator()
        self.ctx = make_context(
            price=1200,
            position=4,
            market=MarketSnapshot(min_price=1000, max_price=1300, median_price=1100),
        )

    def test_simple_comparison(self):
        assert self.evaluator.evaluate(condition({"metric": "position", "operator": "lte", "value": 5}), self.ctx)
        assert not self.evaluator.evaluate(condition({"metric": "position", "operator": "gt", "value": 5}), self.ctx)

    def test_and_children_must_all_hold(self):
        tree = condition({
            "metric": "position", "operator": "lte", "value": 5,
            "and": [{"metric": "current_price", "operator": "gt", "value": 2000}],
        })
        assert not self.evaluator.evaluate(tree, self.ctx)

    def test_false_base_is_not_rescued_by_or(self):
        tree = condition({
            "metric": "position", "operator": "gt", "value": 10,
            "or": [{"metric": "current_price", "operator": "gt", "value": 1000}],
        })
        assert not self.evaluator.evaluate(tree, self.ctx)

    def test_or_needs_one_true_child(self):
        tree = condition({
            "metric": "position", "operator": "lte", "value": 5,
            "or": [
                {"metric": "current_price", "operator": "gt", "value": 5000},
                {"metric": "competitor_min_price", "operator": "lt", "value": 1200},
            ],
        })
        assert self.evaluator.evaluate(tree, self.ctx)

        tree = condition({
            "metric": "position", "operator": "lte", "value": 5,
            "or": [{"metric": "current_price", "operator": "gt", "value": 5000}],
        })
        assert not self.evaluator.evaluate(tree, self.ctx)

    def test_in_operator(self):
        assert self.evaluator.evaluate(condition({"metric": "position", "operator": "in", "value": [3, 4]}), self.ctx)
        assert self.evaluator.evaluate(
            condition({"metric": "position", "operator": "not_in", "value": [1, 2]}), self.ctx
        )

    def test_in_operator_requires_list(self):
        with pytest.raises(ValidationError):
            condition({"metric": "position", "operator": "in", "value": 3})

    def test_unknown_metric_is_rejected_at_validation(self):
        with pytest.raises(ValidationError):
            condition({"metric": "moon_phase", "operator": "eq", "value": 1})

    def test_unknown_metric_resolves_to_none(self):
        assert self.evaluator.resolve_metric("moon_phase", self.ctx) is None

    def test_missing_position_evaluates_false(self):
        ctx = make_context(position=None)
        assert not self.evaluator.evaluate(condition({"metric": "position", "operator": "lte", "value": 5}), ctx)

    def test_incomparable_values_evaluate_false(self):
        assert not self.evaluator.evaluate(
            condition({"metric": "current_price", "operator": "gt", "value": "abc"}), self.ctx
        )

    def test_margin_metric_with_zero_price(self):
        ctx = make_context(price=0)
        assert not self.evaluator.evaluate(condition({"metric": "margin", "operator": "lt", "value": 50}), ctx)

    def test_depth_limit(self):
        node = {"metric": "position", "operator": "gt", "value": 0}
        for _ in range(5):
            node = {"metric": "position", "operator": "gt", "value": 0, "and": [node]}
        with pytest.raises(ValidationError):
            condition(node)


@pytest.mark.unit
class TestActionExecutor:
    """액션 -> 가격 제안"""

    def setup_method(self):
        self.executor = ActionExecutor()
        self.ctx = make_context(
            price=1200,
            market=MarketSnapshot(min_price=1000, max_price=1300, median_price=1100),
        )

    def run(self, data, ctx=None):
        return self.executor.execute(ActionSchema.model_validate(data), ctx or self.ctx)

    def test_set_price(self):
        assert self.run({"type": "set_price", "value": 1500}).price == 1500

    def test_increase_by_percentage(self):
        assert self.run({"type": "increase_price", "value": 10, "mode": "percentage"}).price == 1320

    def test_decrease_by_absolute(self):
        assert self.run({"type": "decrease_price", "value": 100}).price == 1100

    def test_follow_competitor(self):
        assert self.run({"type": "follow_competitor", "value": 5, "mode": "percentage"}).price == 950
        assert self.run({"type": "follow_competitor", "value": 10}).price == 990

    def test_follow_competitor_holds_without_data(self):
        proposal = self.run({"type": "follow_competitor", "value": 10}, make_context(price=1200))
        assert proposal.price == 1200
        assert proposal.confidence == LOW_CONFIDENCE

    def test_set_to_median(self):
        assert self.run({"type": "set_to_median"}).price == 1100

    def test_set_to_breakeven(self):
        assert self.run({"type": "set_to_breakeven"}).price == 1076

    def test_missing_value_is_configuration_error(self):
        with pytest.raises(ActionConfigurationError):
            self.run({"type": "set_price"})


@pytest.mark.unit
class TestPricingAlgorithms:
    """내장 알고리즘"""

    def test_trim_lowest_keeps_at_least_one(self):
        assert trim_lowest([5, 1, 3, 4, 2], 0.2) == [2, 3, 4, 5]
        assert trim_lowest([7], 0.2) == [7]

    def test_competitive_hold_ignores_dumpers(self):
        ctx = make_context(
            price=1200,
            competitors=[Competitor(500), Competitor(1000), Competitor(1050), Competitor(1100), Competitor(1150)],
        )
        proposal = CompetitiveHoldAlgorithm(strategy()).propose(ctx)
        # 500 제외 후 중앙값 (1050 + 1100) / 2
        assert proposal.price == 1075
        assert proposal.confidence == 0.8

    def test_competitive_hold_uses_discounted_in_stock_prices(self):
        ctx = make_context(
            price=1200,
            competitors=[
                Competitor(1500, discounted_price=1300),
                Competitor(1400, discounted_price=1350),
                Competitor(1000, in_stock=False),
            ],
        )
        proposal = CompetitiveHoldAlgorithm(strategy()).propose(ctx)
        # 재고 있는 [1300, 1350] -> 하위 1개 제외 -> 1350
        assert proposal.price == 1350

    def test_competitive_hold_treats_small_moves_as_noise(self):
        ctx = make_context(price=1200, competitors=[Competitor(1190), Competitor(1200), Competitor(1210)])
        proposal = CompetitiveHoldAlgorithm(strategy()).propose(ctx)
        assert proposal.price == 1200
        assert proposal.confidence == 0.6

    def test_competitive_hold_without_competitors(self):
        proposal = CompetitiveHoldAlgorithm(strategy()).propose(make_context(price=1200))
        assert proposal.price == 1200
        assert proposal.confidence == LOW_CONFIDENCE

    def test_price_leader_holds_in_top_three(self):
        ctx = make_context(price=1200, position=2, market=MarketSnapshot(min_price=1000, median_price=1100))
        proposal = PriceLeaderAlgorithm(strategy(type="price_leader")).propose(ctx)
        assert proposal.price == 1200
        assert proposal.confidence == 0.9

    def test_price_leader_step_is_capped(self):
        ctx = make_context(price=1200, position=10, market=MarketSnapshot(min_price=1000, median_price=1100))
        # 목표 980, 1회 인하 한도 1200 * 0.9 = 1080
        assert PriceLeaderAlgorithm(strategy(type="price_leader")).propose(ctx).price == 1080

        ctx = make_context(price=1050, position=10, market=MarketSnapshot(min_price=1000, median_price=1100))
        assert PriceLeaderAlgorithm(strategy(type="price_leader")).propose(ctx).price == 980

    def test_margin_maximizer_raises_on_strong_position(self):
        ctx = make_context(price=1100, position=3, market=MarketSnapshot(min_price=1000, median_price=1200))
        assert MarginMaximizerAlgorithm(strategy(type="margin_maximizer")).propose(ctx).price == 1122

    def test_margin_maximizer_is_capped_by_median(self):
        ctx = make_context(price=1100, position=3, market=MarketSnapshot(min_price=900, median_price=1000))
        assert MarginMaximizerAlgorithm(strategy(type="margin_maximizer")).propose(ctx).price == 1100

    def test_margin_maximizer_holds_on_weak_position(self):
        ctx = make_context(price=1100, position=8, market=MarketSnapshot(min_price=1000, median_price=1200))
        proposal = MarginMaximizerAlgorithm(strategy(type="margin_maximizer")).propose(ctx)
        assert proposal.price == 1100
        assert proposal.confidence == 0.6

    def test_types_without_algorithm(self):
        config = StrategyConfig.model_construct(name="clear", type=StrategyType.CLEARANCE)
        with pytest.raises(StrategyConfigurationError):
            get_algorithm(config)

    def test_action_less_clearance_is_rejected_at_validation(self):
        with pytest.raises(ValidationError):
            strategy(type="clearance")


@pytest.mark.unit
class TestStrategyEngine:
    """전략 평가 순서: 비활성 -> 정지 조건 -> 조건 게이트 -> 액션/알고리즘"""

    def setup_method(self):
        self.engine = StrategyEngine()

    def test_inactive_strategy(self):
        outcome = self.engine.evaluate(make_context(), strategy(active=False))
        assert outcome.proposal is None
        assert outcome.skip_reason == "strategy inactive"

    def test_stop_condition_price_reached(self):
        config = strategy(stop_conditions=[{"type": "price_reached", "value": 1300}])
        outcome = self.engine.evaluate(make_context(price=1200), config)
        assert outcome.stop_triggered
        assert outcome.proposal is None

    def test_conditions_not_met(self):
        config = strategy(conditions=[{"metric": "position", "operator": "lte", "value": 3}])
        outcome = self.engine.evaluate(make_context(position=10), config)
        assert outcome.proposal is None
        assert outcome.skip_reason == "conditions not met"

    def test_first_action_wins_over_algorithm(self):
        config = strategy(actions=[
            {"type": "set_price", "value": 1500},
            {"type": "set_price", "value": 900},
        ])
        outcome = self.engine.evaluate(make_context(), config)
        assert outcome.proposal.price == 1500

    @pytest.mark.parametrize("stype", ["competitive_hold", "price_leader", "margin_maximizer"])
    def test_builtins_hold_on_empty_market(self, stype):
        outcome = self.engine.evaluate(make_context(price=1200), strategy(type=stype))
        assert outcome.proposal.price == 1200


@pytest.mark.unit
class TestStopConditions:
    """데이터가 없으면 정지 조건은 충족되지 않음"""

    def check(self, data, ctx):
        return StrategyEngine.stop_condition_met(StopConditionSchema.model_validate(data), ctx)

    def test_position_reached(self):
        assert self.check({"type": "position_reached", "value": 3}, make_context(position=2))
        assert not self.check({"type": "position_reached", "value": 3}, make_context(position=None))

    def test_stock_level(self):
        assert self.check({"type": "stock_level", "value": 5}, make_context(stock=5))
        assert not self.check({"type": "stock_level", "value": 5}, make_context(stock=None))

    def test_time_elapsed(self):
        ctx = make_context(activated_at=NOW - timedelta(hours=2))
        assert self.check({"type": "time_elapsed", "value": 60}, ctx)
        assert not self.check({"type": "time_elapsed", "value": 180}, ctx)
        assert not self.check({"type": "time_elapsed", "value": 60}, make_context(activated_at=None))
