"""
리프라이싱 오케스트레이터.

reprice(sku_id, signal) 한 번이 다음 파이프라인 한 번입니다.
SKU 로드 -> 활성 전략 -> 시장 스냅샷 -> 전략 평가 -> 경제성 검증 -> 커밋(가격 + 이력)

어떤 실패도 예외로 밖에 던지지 않고 error_kind/retryable이 채워진 RepriceResult로 변환합니다.
"""
import logging
import time
import uuid
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError

from repricer.models import PriceRejection, Signal, Sku, SkuStrategy, utcnow
from repricer.schemas.strategy import StrategyConfig
from repricer.services.pricing import economics
from repricer.services.pricing.exceptions import (
    ErrorKind,
    InactiveError,
    NotFoundError,
    RepricerError,
)
from repricer.services.pricing.market_data import MarketDataProvider, StoredMarketDataProvider
from repricer.services.pricing.repository import PricingRepository, as_utc
from repricer.services.pricing.strategy_engine import StrategyEngine
from repricer.services.pricing.types import (
    EvaluationContext,
    MarketSnapshot,
    PriceValidationResult,
    RepriceResult,
    SkuState,
)

logger = logging.getLogger(__name__)


class RepriceOrchestrator:
    def __init__(
        self,
        repository: PricingRepository,
        market_data: Optional[MarketDataProvider] = None,
        engine: Optional[StrategyEngine] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.market_data = market_data or StoredMarketDataProvider(repository)
        self.engine = engine or StrategyEngine()
        self.now = now

    def reprice(self, sku_id: uuid.UUID, signal: Optional[Signal] = None) -> RepriceResult:
        started = time.monotonic()
        signal_type = signal.type if signal is not None else None
        logger.info(f"[RepriceOrchestrator] Starting reprice for SKU {sku_id} (signal={signal_type})")

        result = RepriceResult(success=False, sku_id=sku_id, old_price=0.0, timestamp=self.now())
        try:
            self._run(sku_id, signal, result)
        except RepricerError as e:
            self._fail(result, e.message, e.kind, e.recoverable)
            log = logger.error if e.kind in (ErrorKind.COST_MODEL, ErrorKind.CONFIGURATION) else logger.info
            log(f"[RepriceOrchestrator] SKU {sku_id}: {e.error_code} - {e.message}")
        except ValidationError as e:
            self._fail(result, f"Invalid strategy configuration: {e}", ErrorKind.CONFIGURATION, False)
            logger.error(f"[RepriceOrchestrator] SKU {sku_id}: invalid strategy configuration: {e}")
        except Exception as e:
            self.repository.session.rollback()
            self._fail(result, str(e), ErrorKind.INTERNAL, False)
            logger.exception(f"[RepriceOrchestrator] SKU {sku_id}: reprice failed unexpectedly: {e}")

        result.duration_ms = int((time.monotonic() - started) * 1000)
        return result

    def _run(self, sku_id: uuid.UUID, signal: Optional[Signal], result: RepriceResult) -> None:
        # 1. SKU
        sku = self.repository.get_sku(sku_id)
        if sku is None:
            raise NotFoundError(f"SKU {sku_id} not found", entity="sku", entity_id=sku_id)
        result.old_price = float(sku.current_price or 0)
        if not sku.active:
            raise InactiveError("SKU is not active", sku_id=str(sku_id))

        # 2. 활성 전략
        attachment = self.repository.get_active_attachment(sku_id)
        if attachment is None:
            raise InactiveError("No active strategy found", sku_id=str(sku_id))
        strategy = StrategyConfig.model_validate(attachment.strategy)
        result.strategy_id = strategy.id

        # 3~4. 시장 데이터 + 평가 컨텍스트
        context = self.build_context(sku, attachment)

        # 5. 전략 평가
        outcome = self.engine.evaluate(context, strategy)
        if outcome.stop_triggered:
            self.repository.deactivate_attachment(attachment)
            result.reason = f"{outcome.skip_reason}; strategy '{strategy.name}' deactivated"
            logger.info(f"[RepriceOrchestrator] SKU {sku_id}: {result.reason}")
            return
        if outcome.proposal is None:
            result.reason = f"no proposal ({outcome.skip_reason})" if outcome.skip_reason else "no proposal"
            return

        proposal = outcome.proposal
        reason = proposal.reason
        price = proposal.price

        # 6. 경제성 검증
        validation = economics.validate_price(
            price, context.sku.economics, strategy.constraints, current_price=context.sku.current_price
        )
        if validation.only_non_critical and validation.suggested_price is not None:
            capped = validation.suggested_price
            logger.info(f"[RepriceOrchestrator] SKU {sku_id}: capping proposal {price} -> {capped}")
            reason = f"{reason} (capped at {capped:g})"
            price = capped
            validation = economics.validate_price(
                price, context.sku.economics, strategy.constraints, current_price=context.sku.current_price
            )

        if not validation.valid:
            self._record_rejection(sku, price, reason, validation, strategy, signal)
            result.reason = "Price rejected by economics"
            result.error_kind = ErrorKind.VALIDATION_REJECTED.value
            result.validation_errors = list(validation.errors)
            result.suggested_price = validation.suggested_price
            result.min_allowed_price = validation.min_allowed_price
            return

        if price == result.old_price:
            result.success = True
            result.new_price = price
            result.reason = reason
            logger.info(f"[RepriceOrchestrator] SKU {sku_id}: price unchanged at {price} - {reason}")
            return

        # 7. 커밋
        entry = self.repository.commit_price_change(
            sku,
            new_price=price,
            reason=reason,
            strategy_id=strategy.id,
            signal=signal,
            profit=validation.profit,
            margin=validation.margin,
        )

        # 8. 결과
        result.success = True
        result.changed = True
        result.new_price = price
        result.reason = reason
        result.history_id = entry.id
        logger.info(
            f"[RepriceOrchestrator] SKU {sku_id}: reprice completed {result.old_price} -> {price} "
            f"(delta={price - result.old_price:+.2f}) - {reason}"
        )

    def build_context(self, sku: Sku, attachment: SkuStrategy) -> EvaluationContext:
        return EvaluationContext(
            sku=SkuState(
                id=sku.id,
                current_price=float(sku.current_price or 0),
                position=sku.position,
                economics=economics.economics_from_sku(sku),
                stock=sku.stock,
            ),
            market=self.load_market(sku.id),
            strategy_activated_at=as_utc(attachment.activated_at),
            now=self.now(),
        )

    def load_market(self, sku_id: uuid.UUID) -> MarketSnapshot:
        """스냅샷이 없거나 조회에 실패하면 0 스냅샷으로 대체합니다."""
        try:
            snapshot = self.market_data.get_snapshot(sku_id)
        except Exception as e:
            logger.warning(f"[RepriceOrchestrator] SKU {sku_id}: market data unavailable, using empty snapshot: {e}")
            return MarketSnapshot.empty()
        if snapshot is None:
            logger.info(f"[RepriceOrchestrator] SKU {sku_id}: no market snapshot, using empty snapshot")
            return MarketSnapshot.empty()
        return snapshot

    def compensate(self, result: RepriceResult, error: str) -> RepriceResult:
        """
        외부 가격 반영 실패 시 내부 커밋을 되돌립니다 (SKU 가격 = old_price, 이력 = ROLLED_BACK).
        """
        if not result.changed or result.history_id is None:
            return result
        self.repository.rollback_price_change(result.history_id, error)
        logger.warning(
            f"[RepriceOrchestrator] SKU {result.sku_id}: rolled back {result.new_price} -> {result.old_price}: {error}"
        )
        result.success = False
        result.changed = False
        result.error = error
        result.error_kind = ErrorKind.TRANSIENT_INFRA.value
        result.retryable = True
        return result

    def _record_rejection(
        self,
        sku: Sku,
        price: float,
        reason: str,
        validation: PriceValidationResult,
        strategy: StrategyConfig,
        signal: Optional[Signal],
    ) -> None:
        logger.warning(
            f"[RepriceOrchestrator] SKU {sku.id}: price {price} rejected by economics "
            f"{[e.kind.value for e in validation.errors]} (min allowed={validation.min_allowed_price})"
        )
        self.repository.add_rejection(PriceRejection(
            sku_id=sku.id,
            proposed_price=price,
            reason=reason,
            validation_errors=[e.to_dict() for e in validation.errors],
            suggested_price=validation.suggested_price,
            min_allowed_price=validation.min_allowed_price,
            strategy_id=strategy.id,
            signal_type=signal.type if signal is not None else None,
        ))

    @staticmethod
    def _fail(result: RepriceResult, message: str, kind: ErrorKind, retryable: bool) -> None:
        result.success = False
        result.error = message
        result.error_kind = kind.value
        result.retryable = retryable
