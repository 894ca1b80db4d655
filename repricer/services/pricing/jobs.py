import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from repricer.models import User, utcnow
from repricer.schemas.strategy import StrategyConfig
from repricer.services.pricing.exceptions import PricePushError, RepricerError
from repricer.services.pricing.gates import ChangeGates
from repricer.services.pricing.locks import SkuLockManager, advisory_lock
from repricer.services.pricing.orchestrator import RepriceOrchestrator
from repricer.services.pricing.price_push import MarketplacePriceClient
from repricer.services.pricing.repository import PricingRepository
from repricer.services.pricing.types import RepriceResult
from repricer.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepriceJob:
    sku_id: uuid.UUID
    signal_id: Optional[uuid.UUID] = None
    force: bool = False  # 수동 실행: 같은 시그널 재처리 방지 검사를 건너뜀


class JobQueue(Protocol):
    def submit(self, job: RepriceJob) -> Optional[RepriceResult]:
        ...


class RepriceWorker:
    """
    리프라이싱 잡 처리기.

    1. SKU 락 (프로세스 내 + PostgreSQL advisory lock)
    2. 멱등성: 같은 signal_id로 이미 APPLIED 이력이 있으면 건너뜀
    3. 쿨다운/일일 한도 재확인 (접수 이후 다른 잡이 먼저 적용했을 수 있음, force 잡은 제외)
    4. 오케스트레이터 실행
    5. 가격이 바뀌었으면 마켓플레이스 반영, 실패 시 내부 커밋 보상 후 PricePushError
    """

    def __init__(
        self,
        repository: PricingRepository,
        orchestrator: Optional[RepriceOrchestrator] = None,
        locks: Optional[SkuLockManager] = None,
        price_client_factory: Optional[Callable[[str], MarketplacePriceClient]] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.orchestrator = orchestrator or RepriceOrchestrator(repository, now=now)
        self.locks = locks or SkuLockManager()
        self.price_client_factory = price_client_factory
        self.now = now
        self.gates = ChangeGates(repository, now=now)

    def handle(self, job: RepriceJob) -> RepriceResult:
        with self.locks.acquire(job.sku_id):
            with advisory_lock(self.repository.session, job.sku_id):
                return self._handle_locked(job)

    def _handle_locked(self, job: RepriceJob) -> RepriceResult:
        signal = self.repository.get_signal(job.signal_id) if job.signal_id else None

        if signal is not None and not job.force:
            applied = self.repository.get_change_for_signal(signal.id)
            if applied is not None:
                logger.info(f"[RepriceWorker] Signal {signal.id} already applied (history {applied.id}), skipping")
                return RepriceResult(
                    success=True,
                    sku_id=job.sku_id,
                    old_price=float(applied.old_price or 0),
                    new_price=applied.new_price,
                    timestamp=self.now(),
                    reason="signal already applied",
                    history_id=applied.id,
                )

        if not job.force:
            blocked = self._blocking_reason(job.sku_id)
            if blocked is not None:
                logger.info(f"[RepriceWorker] SKU {job.sku_id} blocked at apply time: {blocked}")
                sku = self.repository.get_sku(job.sku_id)
                return RepriceResult(
                    success=False,
                    sku_id=job.sku_id,
                    old_price=float(sku.current_price or 0) if sku is not None else 0.0,
                    timestamp=self.now(),
                    reason=blocked,
                )

        result = self.orchestrator.reprice(job.sku_id, signal)
        if not result.success:
            logger.warning(
                f"[RepriceWorker] Reprice failed for SKU {job.sku_id}: "
                f"{result.error or result.reason} (kind={result.error_kind}, retryable={result.retryable})"
            )
            return result

        if result.changed and self.price_client_factory is not None:
            self._push(job, result)
        return result

    def _blocking_reason(self, sku_id: uuid.UUID) -> Optional[str]:
        attachment = self.repository.get_active_attachment(sku_id)
        if attachment is None:
            return None
        try:
            strategy = StrategyConfig.model_validate(attachment.strategy)
        except ValidationError:
            # 설정 오류는 오케스트레이터가 결과로 보고함
            return None
        return self.gates.blocking_reason(sku_id, strategy)

    def _push(self, job: RepriceJob, result: RepriceResult) -> None:
        sku = self.repository.get_sku(job.sku_id)
        owner = self.repository.session.get(User, sku.user_id)
        api_key = (owner.marketplace_api_key if owner is not None else None) or settings.marketplace_api_key
        if not api_key:
            logger.info(f"[RepriceWorker] SKU {job.sku_id}: no marketplace API key, price kept internal")
            return

        try:
            client = self.price_client_factory(api_key)
            client.push_price(sku.external_sku_id, result.new_price)
        except PricePushError as e:
            logger.error(f"[RepriceWorker] Failed to update marketplace price for SKU {job.sku_id}: {e.message}")
            self.orchestrator.compensate(result, e.message)
            raise
        except Exception as e:
            logger.error(f"[RepriceWorker] Unexpected price push error for SKU {job.sku_id}: {e}")
            self.orchestrator.compensate(result, str(e))
            raise PricePushError(
                f"Price push for {sku.external_sku_id} failed: {e}", external_sku_id=sku.external_sku_id
            ) from e
        logger.info(f"[RepriceWorker] Marketplace price updated for SKU {job.sku_id}: {result.old_price} -> {result.new_price}")


class InlineJobQueue:
    """잡을 즉시 같은 스레드에서 실행하는 큐. 재시도 가능한 실패는 로그만 남깁니다."""

    def __init__(self, worker: RepriceWorker):
        self.worker = worker

    def submit(self, job: RepriceJob) -> Optional[RepriceResult]:
        try:
            return self.worker.handle(job)
        except RepricerError as e:
            if not e.recoverable:
                raise
            logger.warning(f"[InlineJobQueue] Job for SKU {job.sku_id} failed, retry later: {e.message}")
            return None
