import logging
import uuid
from typing import Any, Dict, Union

from repricer.models import SkuStrategy, Strategy
from repricer.schemas.strategy import StrategyConfig
from repricer.services.pricing.exceptions import NotFoundError
from repricer.services.pricing.repository import PricingRepository

logger = logging.getLogger(__name__)


def create_strategy(
    repository: PricingRepository,
    owner_id: uuid.UUID,
    payload: Union[StrategyConfig, Dict[str, Any]],
) -> Strategy:
    """
    전략을 검증 후 저장합니다.
    알 수 없는 지표/전략 유형, 액션 없는 비내장 전략은 pydantic ValidationError로 거절됩니다.
    """
    config = payload if isinstance(payload, StrategyConfig) else StrategyConfig.model_validate(payload)
    data = config.to_storage()
    strategy = Strategy(
        user_id=owner_id,
        name=data["name"],
        type=data["type"],
        active=data["active"],
        conditions=data["conditions"],
        actions=data["actions"],
        constraints=data["constraints"],
        stop_conditions=data["stop_conditions"],
        allowed_signals=data["allowed_signals"],
        ignored_signals=data["ignored_signals"],
        cooldown_minutes=data["cooldown_minutes"],
        max_changes_per_day=data["max_changes_per_day"],
    )
    repository.add_strategy(strategy)
    logger.info(f"[StrategyService] Strategy '{strategy.name}' ({strategy.type}) created: {strategy.id}")
    return strategy


def get_strategy_config(repository: PricingRepository, strategy_id: uuid.UUID) -> StrategyConfig:
    strategy = repository.get_strategy(strategy_id)
    if strategy is None:
        raise NotFoundError(f"Strategy {strategy_id} not found", entity="strategy", entity_id=strategy_id)
    return StrategyConfig.model_validate(strategy)


def activate_strategy(repository: PricingRepository, sku_id: uuid.UUID, strategy_id: uuid.UUID) -> SkuStrategy:
    """SKU당 활성 전략은 하나. 기존 활성 연결은 모두 비활성화됩니다."""
    return repository.activate_strategy(sku_id, strategy_id)
