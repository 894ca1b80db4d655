"""
리프라이싱 파이프라인의 영속성 계층.

오케스트레이터/시그널 처리기는 Session을 직접 다루지 않고 이 저장소를 통해서만 읽고 씁니다.
원자적으로 묶여야 하는 작업(가격 커밋 + 이력 추가, 전략 활성화 전환)은 메서드 하나가 트랜잭션 하나입니다.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, joinedload

from repricer.models import (
    MarketSnapshotRecord,
    PriceHistory,
    PriceRejection,
    Signal,
    Sku,
    SkuStrategy,
    Strategy,
    utcnow,
)
from repricer.services.pricing.constants import PriceChangeStatus
from repricer.services.pricing.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite는 tz 정보 없이 돌려주므로 UTC로 간주합니다."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PricingRepository:
    def __init__(self, session: Session, now: Callable[[], datetime] = utcnow):
        self.session = session
        self.now = now

    # ------------------------------------------------------------------
    # SKU
    # ------------------------------------------------------------------
    def get_sku(self, sku_id: uuid.UUID) -> Optional[Sku]:
        return self.session.get(Sku, sku_id)

    def get_active_skus_with_strategy(self) -> list[Sku]:
        stmt = (
            select(Sku)
            .join(SkuStrategy, SkuStrategy.sku_id == Sku.id)
            .where(Sku.active.is_(True), SkuStrategy.active.is_(True))
            .order_by(Sku.created_at)
        )
        return list(self.session.scalars(stmt).unique())

    # ------------------------------------------------------------------
    # Strategy / attachment
    # ------------------------------------------------------------------
    def get_strategy(self, strategy_id: uuid.UUID) -> Optional[Strategy]:
        return self.session.get(Strategy, strategy_id)

    def add_strategy(self, strategy: Strategy) -> Strategy:
        self.session.add(strategy)
        self.session.commit()
        return strategy

    def get_active_attachment(self, sku_id: uuid.UUID) -> Optional[SkuStrategy]:
        stmt = (
            select(SkuStrategy)
            .options(joinedload(SkuStrategy.strategy))
            .where(SkuStrategy.sku_id == sku_id, SkuStrategy.active.is_(True))
            .order_by(SkuStrategy.activated_at.desc())
        )
        attachments = list(self.session.scalars(stmt).unique())
        if len(attachments) > 1:
            # 불변식 위반. 가장 최근 활성화된 연결을 사용
            logger.error(f"[PricingRepository] SKU {sku_id} has {len(attachments)} active strategies")
        return attachments[0] if attachments else None

    def count_active_attachments(self, sku_id: uuid.UUID) -> int:
        stmt = select(func.count(SkuStrategy.id)).where(SkuStrategy.sku_id == sku_id, SkuStrategy.active.is_(True))
        return self.session.scalar(stmt) or 0

    def count_strategy_attachments(self, strategy_id: uuid.UUID) -> int:
        stmt = select(func.count(SkuStrategy.id)).where(
            SkuStrategy.strategy_id == strategy_id, SkuStrategy.active.is_(True)
        )
        return self.session.scalar(stmt) or 0

    def activate_strategy(self, sku_id: uuid.UUID, strategy_id: uuid.UUID) -> SkuStrategy:
        """
        SKU의 모든 전략 연결을 비활성화한 뒤 지정한 연결 하나만 활성화합니다 (단일 트랜잭션).
        연결이 없으면 새로 만듭니다.
        """
        if self.get_sku(sku_id) is None:
            raise NotFoundError(f"SKU {sku_id} not found", entity="sku", entity_id=sku_id)
        if self.get_strategy(strategy_id) is None:
            raise NotFoundError(f"Strategy {strategy_id} not found", entity="strategy", entity_id=strategy_id)

        now = self.now()
        try:
            self.session.execute(
                update(SkuStrategy)
                .where(SkuStrategy.sku_id == sku_id, SkuStrategy.active.is_(True))
                .values(active=False, deactivated_at=now)
                .execution_options(synchronize_session="fetch")
            )
            attachment = self.session.scalars(
                select(SkuStrategy).where(SkuStrategy.sku_id == sku_id, SkuStrategy.strategy_id == strategy_id)
            ).first()
            if attachment is None:
                attachment = SkuStrategy(sku_id=sku_id, strategy_id=strategy_id, attached_at=now)
                self.session.add(attachment)
            attachment.active = True
            attachment.activated_at = now
            attachment.deactivated_at = None
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"[PricingRepository] SKU {sku_id}: strategy {strategy_id} activated")
        return attachment

    def deactivate_attachment(self, attachment: SkuStrategy) -> None:
        attachment.active = False
        attachment.deactivated_at = self.now()
        self.session.commit()

    # ------------------------------------------------------------------
    # Market snapshot
    # ------------------------------------------------------------------
    def get_latest_snapshot(self, sku_id: uuid.UUID) -> Optional[MarketSnapshotRecord]:
        stmt = (
            select(MarketSnapshotRecord)
            .where(MarketSnapshotRecord.sku_id == sku_id)
            .order_by(MarketSnapshotRecord.fetched_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def add_snapshot(self, record: MarketSnapshotRecord) -> MarketSnapshotRecord:
        if record.fetched_at is None:
            record.fetched_at = self.now()
        self.session.add(record)
        self.session.commit()
        return record

    # ------------------------------------------------------------------
    # Price history / rejection
    # ------------------------------------------------------------------
    def commit_price_change(
        self,
        sku: Sku,
        new_price: float,
        reason: str,
        strategy_id: Optional[uuid.UUID] = None,
        signal: Optional[Signal] = None,
        profit: Optional[float] = None,
        margin: Optional[float] = None,
    ) -> PriceHistory:
        """SKU 가격 갱신과 APPLIED 이력 추가를 한 트랜잭션으로 커밋합니다."""
        entry = PriceHistory(
            sku_id=sku.id,
            old_price=sku.current_price,
            new_price=new_price,
            strategy_id=strategy_id,
            signal_id=signal.id if signal is not None else None,
            signal_type=signal.type if signal is not None else None,
            reason=reason,
            profit=profit,
            margin=margin,
            status=PriceChangeStatus.APPLIED.value,
            created_at=self.now(),
        )
        try:
            sku.current_price = new_price
            sku.version = (sku.version or 0) + 1
            self.session.add(entry)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return entry

    def rollback_price_change(self, history_id: uuid.UUID, error: str) -> Optional[PriceHistory]:
        """보상 트랜잭션: SKU 가격을 old_price로 되돌리고 이력을 ROLLED_BACK으로 표시"""
        entry = self.session.get(PriceHistory, history_id)
        if entry is None:
            return None
        sku = self.session.get(Sku, entry.sku_id)
        try:
            if sku is not None:
                sku.current_price = entry.old_price
                sku.version = (sku.version or 0) + 1
            entry.status = PriceChangeStatus.ROLLED_BACK.value
            entry.error_msg = error
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return entry

    def add_rejection(self, rejection: PriceRejection) -> PriceRejection:
        rejection.created_at = self.now()
        try:
            self.session.add(rejection)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return rejection

    def get_last_applied_change(self, sku_id: uuid.UUID) -> Optional[PriceHistory]:
        stmt = (
            select(PriceHistory)
            .where(PriceHistory.sku_id == sku_id, PriceHistory.status == PriceChangeStatus.APPLIED.value)
            .order_by(PriceHistory.created_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def count_applied_changes_since(self, sku_id: uuid.UUID, since: datetime) -> int:
        stmt = select(func.count(PriceHistory.id)).where(
            PriceHistory.sku_id == sku_id,
            PriceHistory.status == PriceChangeStatus.APPLIED.value,
            PriceHistory.created_at >= since,
        )
        return self.session.scalar(stmt) or 0

    def get_change_for_signal(self, signal_id: uuid.UUID) -> Optional[PriceHistory]:
        stmt = (
            select(PriceHistory)
            .where(PriceHistory.signal_id == signal_id, PriceHistory.status == PriceChangeStatus.APPLIED.value)
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def get_recent_rejections(self, sku_id: uuid.UUID, limit: int = 5) -> list[PriceRejection]:
        stmt = (
            select(PriceRejection)
            .where(PriceRejection.sku_id == sku_id)
            .order_by(PriceRejection.created_at.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def get_applied_changes_for_strategy(self, strategy_id: uuid.UUID, since: datetime) -> list[PriceHistory]:
        stmt = select(PriceHistory).where(
            PriceHistory.strategy_id == strategy_id,
            PriceHistory.status == PriceChangeStatus.APPLIED.value,
            PriceHistory.created_at >= since,
        )
        return list(self.session.scalars(stmt))

    def count_rejections_for_strategy(self, strategy_id: uuid.UUID, since: datetime) -> int:
        stmt = select(func.count(PriceRejection.id)).where(
            PriceRejection.strategy_id == strategy_id,
            PriceRejection.created_at >= since,
        )
        return self.session.scalar(stmt) or 0

    # ------------------------------------------------------------------
    # Signal
    # ------------------------------------------------------------------
    def add_signal(self, signal: Signal) -> Signal:
        if signal.created_at is None:
            signal.created_at = self.now()
        self.session.add(signal)
        self.session.commit()
        return signal

    def get_signal(self, signal_id: uuid.UUID) -> Optional[Signal]:
        return self.session.get(Signal, signal_id)

    def mark_signal_processed(self, signal: Signal, decision: str) -> None:
        signal.processed = True
        signal.decision = decision
        signal.processed_at = self.now()
        self.session.commit()

    def get_unprocessed_signals(self, limit: int = 50) -> list[Signal]:
        stmt = (
            select(Signal)
            .where(Signal.processed.is_(False))
            .order_by(Signal.priority.desc(), Signal.created_at.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def get_last_processed_signal(self, sku_id: uuid.UUID) -> Optional[Signal]:
        stmt = (
            select(Signal)
            .where(Signal.sku_id == sku_id, Signal.processed.is_(True))
            .order_by(Signal.processed_at.desc())
            .limit(1)
        )
        return self.session.scalars(stmt).first()
