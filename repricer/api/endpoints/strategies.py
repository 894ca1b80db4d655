import uuid

from fastapi import APIRouter, Depends

from repricer.api.deps import get_pipeline
from repricer.api.errors import to_http_exception
from repricer.schemas.strategy import StrategyCreate, StrategyResponse
from repricer.services.pricing.autopsy import build_strategy_health
from repricer.services.pricing.exceptions import RepricerError
from repricer.services.pricing.pipeline import RepricePipeline
from repricer.services.pricing.strategy_service import create_strategy, get_strategy_config

router = APIRouter()


@router.post("", response_model=StrategyResponse, status_code=201)
def create_strategy_endpoint(payload: StrategyCreate, pipeline: RepricePipeline = Depends(get_pipeline)):
    """
    전략 생성. 조건의 지표/연산자, 액션 필수값, 전략 유형은 스키마 단계에서 검증됩니다 (422).
    """
    config_data = payload.model_dump(exclude={"user_id"}, by_alias=True)
    strategy = create_strategy(pipeline.repository, payload.user_id, config_data)
    return StrategyResponse.model_validate(strategy)


@router.get("/{strategy_id}", response_model=StrategyResponse)
def get_strategy(strategy_id: uuid.UUID, pipeline: RepricePipeline = Depends(get_pipeline)):
    try:
        get_strategy_config(pipeline.repository, strategy_id)
    except RepricerError as e:
        raise to_http_exception(e)
    return StrategyResponse.model_validate(pipeline.repository.get_strategy(strategy_id))


@router.get("/{strategy_id}/health")
def get_strategy_health(strategy_id: uuid.UUID, pipeline: RepricePipeline = Depends(get_pipeline)):
    """최근 7일 기준 전략 건강도"""
    try:
        return {"health": build_strategy_health(pipeline.repository, strategy_id)}
    except RepricerError as e:
        raise to_http_exception(e)
