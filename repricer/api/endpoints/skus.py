import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError

from repricer.api.deps import get_pipeline
from repricer.api.errors import to_http_exception
from repricer.models import Sku
from repricer.schemas.sku import RepriceResultOut, SkuCreate, SkuEconomicsResponse, SkuResponse
from repricer.schemas.strategy import StrategyActivateResponse, StrategyConfig
from repricer.services.pricing import economics
from repricer.services.pricing.autopsy import build_price_autopsy
from repricer.services.pricing.exceptions import RepricerError
from repricer.services.pricing.jobs import RepriceJob
from repricer.services.pricing.market_data import record_snapshot
from repricer.services.pricing.pipeline import RepricePipeline
from repricer.services.pricing.strategy_service import activate_strategy
from repricer.services.pricing.types import Competitor

router = APIRouter()

logger = logging.getLogger(__name__)


class CompetitorIn(BaseModel):
    price: float = Field(gt=0)
    discounted_price: Optional[float] = Field(default=None, gt=0)
    in_stock: bool = True


class MarketSnapshotIn(BaseModel):
    competitors: list[CompetitorIn] = Field(default_factory=list)
    position: Optional[int] = Field(default=None, ge=1)


def _get_sku_or_404(pipeline: RepricePipeline, sku_id: uuid.UUID) -> Sku:
    sku = pipeline.repository.get_sku(sku_id)
    if sku is None:
        raise HTTPException(status_code=404, detail="SKU not found")
    return sku


@router.post("", response_model=SkuResponse, status_code=201)
def create_sku(payload: SkuCreate, pipeline: RepricePipeline = Depends(get_pipeline)):
    session = pipeline.repository.session
    sku = Sku(**payload.model_dump())
    session.add(sku)
    session.commit()
    logger.info(f"SKU created: {sku.id} ({sku.external_sku_id})")
    return sku


@router.get("/{sku_id}", response_model=SkuResponse)
def get_sku(sku_id: uuid.UUID, pipeline: RepricePipeline = Depends(get_pipeline)):
    return _get_sku_or_404(pipeline, sku_id)


@router.get("/{sku_id}/economics", response_model=SkuEconomicsResponse)
def get_sku_economics(
    sku_id: uuid.UUID,
    price: Optional[float] = Query(default=None, gt=0),
    pipeline: RepricePipeline = Depends(get_pipeline),
):
    """
    지정 가격(없으면 현재가)의 이익/마진/손익분기점과 활성 전략 제약 기준 최소 허용가를 계산합니다.
    """
    sku = _get_sku_or_404(pipeline, sku_id)
    unit = economics.economics_from_sku(sku)
    target = price if price is not None else float(sku.current_price or 0)

    attachment = pipeline.repository.get_active_attachment(sku_id)
    constraints = []
    if attachment is not None:
        try:
            constraints = StrategyConfig.model_validate(attachment.strategy).enabled_constraints()
        except ValidationError as e:
            logger.error(f"SKU {sku_id}: active strategy has invalid configuration: {e}")
            raise HTTPException(status_code=422, detail="Active strategy has invalid configuration")

    try:
        return SkuEconomicsResponse(
            sku_id=sku.id,
            price=target,
            profit=economics.profit(target, unit),
            margin=economics.margin(target, unit) if target > 0 else None,
            breakeven=economics.breakeven(unit),
            min_allowed_price=economics.min_allowed_price(unit, constraints),
        )
    except RepricerError as e:
        raise to_http_exception(e)


@router.get("/{sku_id}/autopsy")
def get_price_autopsy(sku_id: uuid.UUID, pipeline: RepricePipeline = Depends(get_pipeline)):
    """현재 가격에 대한 진단 리포트 (Price Autopsy)"""
    try:
        return {"autopsy": build_price_autopsy(pipeline.repository, sku_id)}
    except RepricerError as e:
        raise to_http_exception(e)


@router.post("/{sku_id}/reprice", response_model=RepriceResultOut)
def trigger_reprice(sku_id: uuid.UUID, pipeline: RepricePipeline = Depends(get_pipeline)):
    """수동 리프라이싱. 시그널 게이트(쿨다운/한도)를 거치지 않고 파이프라인을 바로 실행합니다."""
    _get_sku_or_404(pipeline, sku_id)
    try:
        result = pipeline.worker.handle(RepriceJob(sku_id=sku_id, force=True))
    except RepricerError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.post("/{sku_id}/strategies/{strategy_id}/activate", response_model=StrategyActivateResponse)
def activate_sku_strategy(
    sku_id: uuid.UUID,
    strategy_id: uuid.UUID,
    pipeline: RepricePipeline = Depends(get_pipeline),
):
    try:
        return activate_strategy(pipeline.repository, sku_id, strategy_id)
    except RepricerError as e:
        raise to_http_exception(e)


@router.post("/{sku_id}/snapshots", status_code=201)
def ingest_market_snapshot(
    sku_id: uuid.UUID,
    payload: MarketSnapshotIn,
    pipeline: RepricePipeline = Depends(get_pipeline),
):
    _get_sku_or_404(pipeline, sku_id)
    record = record_snapshot(
        pipeline.repository,
        sku_id,
        [Competitor(price=c.price, discounted_price=c.discounted_price, in_stock=c.in_stock) for c in payload.competitors],
        position=payload.position,
    )
    return {
        "id": str(record.id),
        "min_price": record.min_price,
        "max_price": record.max_price,
        "median_price": record.median_price,
        "position": record.position,
    }
