import logging
import statistics
import uuid
from typing import Iterable, Optional, Protocol

from repricer.models import MarketSnapshotRecord
from repricer.services.pricing.repository import PricingRepository, as_utc
from repricer.services.pricing.types import Competitor, MarketSnapshot

logger = logging.getLogger(__name__)


class MarketDataProvider(Protocol):
    def get_snapshot(self, sku_id: uuid.UUID) -> Optional[MarketSnapshot]:
        ...


def snapshot_from_record(record: MarketSnapshotRecord) -> MarketSnapshot:
    competitors = tuple(
        Competitor(
            price=float(c.get("price") or 0),
            discounted_price=float(c["discounted_price"]) if c.get("discounted_price") is not None else None,
            in_stock=bool(c.get("in_stock", True)),
        )
        for c in (record.competitors or [])
        if isinstance(c, dict)
    )
    return MarketSnapshot(
        min_price=float(record.min_price or 0),
        max_price=float(record.max_price or 0),
        median_price=float(record.median_price or 0),
        competitors=competitors,
        fetched_at=as_utc(record.fetched_at),
    )


class StoredMarketDataProvider:
    """수집기가 저장해 둔 최신 스냅샷을 읽는 기본 제공자"""

    def __init__(self, repository: PricingRepository):
        self.repository = repository

    def get_snapshot(self, sku_id: uuid.UUID) -> Optional[MarketSnapshot]:
        record = self.repository.get_latest_snapshot(sku_id)
        if record is None:
            return None
        return snapshot_from_record(record)


def record_snapshot(
    repository: PricingRepository,
    sku_id: uuid.UUID,
    competitors: Iterable[Competitor],
    position: Optional[int] = None,
) -> MarketSnapshotRecord:
    """
    수집 결과를 저장합니다. min/max/median은 재고 있는 경쟁사의 실판매가 기준으로 계산합니다.
    position이 주어지면 SKU의 현재 노출 순위도 갱신합니다.
    """
    competitors = list(competitors)
    prices = [c.effective_price for c in competitors if c.in_stock and c.effective_price > 0]
    record = MarketSnapshotRecord(
        sku_id=sku_id,
        min_price=min(prices) if prices else 0.0,
        max_price=max(prices) if prices else 0.0,
        median_price=float(statistics.median(prices)) if prices else 0.0,
        position=position,
        competitors=[
            {"price": c.price, "discounted_price": c.discounted_price, "in_stock": c.in_stock}
            for c in competitors
        ],
    )
    if position is not None:
        sku = repository.get_sku(sku_id)
        if sku is not None:
            sku.position = position
    repository.add_snapshot(record)
    logger.info(f"[MarketData] SKU {sku_id}: snapshot stored ({len(prices)} priced competitors, position={position})")
    return record
