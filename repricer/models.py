from datetime import datetime, timezone
import uuid

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepricerBase(DeclarativeBase):
    pass


class User(RepricerBase):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    marketplace_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Sku(RepricerBase):
    """
    가격 자동화 대상 상품(SKU).
    단위 경제성 입력값(원가, 수수료율 등)을 함께 보관하며, 리프라이싱 성공 시 current_price가 갱신됩니다.
    """
    __tablename__ = "skus"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    external_sku_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)  # 마켓 상품 ID (nmId)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)

    current_price: Mapped[float | None] = mapped_column(Float, nullable=True)

    # 단위 경제성 입력값 (퍼센트 값은 0~100)
    cost_price: Mapped[float] = mapped_column(Float, nullable=False)
    commission_pct: Mapped[float] = mapped_column(Float, nullable=False, default=15.0)
    logistics: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    storage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    spp_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)  # 셀러 부담 할인
    tax_pct: Mapped[float] = mapped_column(Float, nullable=False, default=6.0)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="RUB")

    position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stock: Mapped[int | None] = mapped_column(Integer, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    attachments: Mapped[list["SkuStrategy"]] = relationship(back_populates="sku")


class Strategy(RepricerBase):
    """
    사용자가 설정한 가격 전략.
    conditions/actions/constraints/stop_conditions는 JSON으로 저장되며 StrategyConfig 스키마로 검증됩니다.
    """
    __tablename__ = "strategies"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)  # competitive_hold, price_leader, ...
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    conditions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    actions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    constraints: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    stop_conditions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    allowed_signals: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    ignored_signals: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)

    cooldown_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=360)
    max_changes_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SkuStrategy(RepricerBase):
    """
    SKU-전략 연결. SKU당 active=True인 연결은 최대 1개여야 합니다.
    """
    __tablename__ = "sku_strategies"
    __table_args__ = (
        Index("ix_sku_strategies_sku_active", "sku_id", "active"),
        Index(
            "uq_sku_strategies_one_active",
            "sku_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("skus.id"), nullable=False)
    strategy_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("strategies.id"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sku: Mapped[Sku] = relationship(back_populates="attachments")
    strategy: Mapped[Strategy] = relationship()


class Signal(RepricerBase):
    """
    리프라이싱 트리거가 될 수 있는 시장/내부 이벤트.
    삭제하지 않고 processed 플래그와 decision으로 감사 이력을 남깁니다.
    """
    __tablename__ = "signals"
    __table_args__ = (
        Index("ix_signals_unprocessed", "processed", "priority", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("skus.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    decision: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class MarketSnapshotRecord(RepricerBase):
    """경쟁사 가격 수집 결과 (수집 주기당 1건)"""
    __tablename__ = "market_snapshots"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("skus.id"), nullable=False, index=True)
    min_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    median_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # [{"price": 1000, "discounted_price": 950, "in_stock": true}, ...]
    competitors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class PriceHistory(RepricerBase):
    """
    확정된 가격 변경 이력 (append-only 감사 로그).
    status가 APPLIED인 행만 쿨다운/일일 변경 횟수 계산에 포함됩니다.
    """
    __tablename__ = "price_history"
    __table_args__ = (
        Index("ix_price_history_sku_created", "sku_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("skus.id"), nullable=False)
    old_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    new_price: Mapped[float] = mapped_column(Float, nullable=False)
    strategy_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("strategies.id"), nullable=True)
    signal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    signal_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    profit: Mapped[float | None] = mapped_column(Float, nullable=True)
    margin: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="APPLIED")  # APPLIED, ROLLED_BACK
    error_msg: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class PriceRejection(RepricerBase):
    """경제성 검증에 실패한 가격 제안 (Price Autopsy 진단용)"""
    __tablename__ = "price_rejections"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sku_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("skus.id"), nullable=False, index=True)
    proposed_price: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    validation_errors: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    suggested_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    min_allowed_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    strategy_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    signal_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
