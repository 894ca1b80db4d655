from enum import Enum


class SignalType(str, Enum):
    # 시장 시그널
    COMPETITOR_PRICE_DROP = "competitor_price_drop"
    COMPETITOR_PRICE_RISE = "competitor_price_rise"
    COMPETITOR_OOS = "competitor_oos"
    NEW_COMPETITOR = "new_competitor"
    COMPETITOR_COUNT_CHANGE = "competitor_count_change"

    # 내부 시그널
    POSITION_DROP = "position_drop"
    POSITION_RISE = "position_rise"
    SALES_DROP = "sales_drop"
    SALES_SPIKE = "sales_spike"
    LOW_STOCK = "low_stock"
    HIGH_STOCK = "high_stock"
    MARGIN_DROP = "margin_drop"

    # 시간 기반
    TIME_INTERVAL = "time_interval"
    STRATEGY_TIMEOUT = "strategy_timeout"

    # 경제성
    BELOW_BREAKEVEN = "below_breakeven"
    COST_CHANGE = "cost_change"

    MANUAL = "manual"


class StrategyType(str, Enum):
    COMPETITIVE_HOLD = "competitive_hold"
    PRICE_LEADER = "price_leader"
    MARGIN_MAXIMIZER = "margin_maximizer"
    INVENTORY_DRIVEN = "inventory_driven"
    CLEARANCE = "clearance"


class ConditionOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"


class Metric(str, Enum):
    POSITION = "position"
    CURRENT_PRICE = "current_price"
    MY_PRICE = "my_price"
    COMPETITOR_MIN_PRICE = "competitor_min_price"
    COMPETITOR_MEDIAN_PRICE = "competitor_median_price"
    COMPETITOR_MAX_PRICE = "competitor_max_price"
    COMPETITOR_COUNT = "competitor_count"
    MARGIN = "margin"
    PROFIT = "profit"


class ActionType(str, Enum):
    SET_PRICE = "set_price"
    INCREASE_PRICE = "increase_price"
    DECREASE_PRICE = "decrease_price"
    FOLLOW_COMPETITOR = "follow_competitor"
    SET_TO_MEDIAN = "set_to_median"
    SET_TO_BREAKEVEN = "set_to_breakeven"


class ActionMode(str, Enum):
    PERCENTAGE = "percentage"
    ABSOLUTE = "absolute"


class ConstraintType(str, Enum):
    MIN_PRICE = "min_price"
    MAX_PRICE = "max_price"
    MIN_PROFIT = "min_profit"
    MIN_MARGIN = "min_margin"
    MAX_DELTA_PER_STEP = "max_delta_per_step"
    MAX_CHANGES_PER_DAY = "max_changes_per_day"


class StopConditionType(str, Enum):
    PRICE_REACHED = "price_reached"
    POSITION_REACHED = "position_reached"
    TIME_ELAPSED = "time_elapsed"
    STOCK_LEVEL = "stock_level"


class ValidationKind(str, Enum):
    MIN_PROFIT_VIOLATED = "min_profit_violated"
    MIN_MARGIN_VIOLATED = "min_margin_violated"
    MIN_PRICE_VIOLATED = "min_price_violated"
    MAX_PRICE_EXCEEDED = "max_price_exceeded"
    BELOW_BREAKEVEN = "below_breakeven"
    DELTA_TOO_LARGE = "delta_too_large"
    INVALID_PRICE = "invalid_price"


class SignalDecisionCode(str, Enum):
    ACCEPTED = "accepted"
    REJECTED_COOLDOWN = "rejected_cooldown"
    REJECTED_SKU_MISSING = "rejected_sku_missing"
    REJECTED_SKU_INACTIVE = "rejected_sku_inactive"
    REJECTED_NO_STRATEGY = "rejected_no_strategy"
    REJECTED_IGNORED = "rejected_ignored"
    REJECTED_NOT_ALLOWED = "rejected_not_allowed"
    REJECTED_RATE_LIMIT = "rejected_rate_limit"
    FAILED = "failed"


class PriceChangeStatus(str, Enum):
    APPLIED = "APPLIED"
    ROLLED_BACK = "ROLLED_BACK"


SIGNAL_PRIORITIES: dict[SignalType, int] = {
    SignalType.COMPETITOR_OOS: 10,
    SignalType.LOW_STOCK: 9,
    SignalType.BELOW_BREAKEVEN: 9,
    SignalType.COMPETITOR_PRICE_DROP: 8,
    SignalType.POSITION_DROP: 7,
    SignalType.COST_CHANGE: 7,
    SignalType.SALES_DROP: 6,
    SignalType.MARGIN_DROP: 6,
    SignalType.COMPETITOR_PRICE_RISE: 5,
    SignalType.POSITION_RISE: 5,
    SignalType.SALES_SPIKE: 4,
    SignalType.NEW_COMPETITOR: 4,
    SignalType.COMPETITOR_COUNT_CHANGE: 3,
    SignalType.HIGH_STOCK: 3,
    SignalType.TIME_INTERVAL: 1,
    SignalType.STRATEGY_TIMEOUT: 1,
}

# 내장 알고리즘 파라미터
DUMPER_TRIM_RATIO = 0.2  # 하위 20% 덤핑 가격 제외
NOISE_THRESHOLD = 0.02  # 2% 미만 변동은 노이즈
LEADER_TOP_POSITION = 3
LEADER_UNDERCUT = 0.98
LEADER_MAX_STEP_DOWN = 0.10
MAXIMIZER_STRONG_POSITION = 5
MAXIMIZER_STEP_UP = 0.02
MAXIMIZER_MEDIAN_CAP = 1.10

LOW_CONFIDENCE = 0.3
