"""
시그널 처리기 (입장 제어).

시그널이 리프라이싱을 시도할 가치가 있는지 판단만 하고 가격은 바꾸지 않습니다.
게이트 순서: 쿨다운 -> 활성 상태 -> 관심 시그널 -> 일일 변경 한도
통과하면 RepriceJob을 큐에 넘기고, 결과와 관계없이 모든 분기에서 시그널을 processed로 표시합니다.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from repricer.models import Signal, utcnow
from repricer.schemas.strategy import StrategyConfig
from repricer.services.pricing.constants import SIGNAL_PRIORITIES, SignalDecisionCode, SignalType
from repricer.services.pricing.gates import ChangeGates
from repricer.services.pricing.jobs import JobQueue, RepriceJob
from repricer.services.pricing.repository import PricingRepository
from repricer.services.pricing.types import SignalDecision
from repricer.settings import settings

logger = logging.getLogger(__name__)


def signal_priority(signal_type: SignalType) -> int:
    return SIGNAL_PRIORITIES.get(signal_type, settings.default_signal_priority)


class SignalProcessor:
    def __init__(
        self,
        repository: PricingRepository,
        queue: Optional[JobQueue] = None,
        now: Callable[[], datetime] = utcnow,
        business_timezone: Optional[str] = None,
    ):
        self.repository = repository
        self.queue = queue
        self.now = now
        self.gates = ChangeGates(repository, now=now, business_timezone=business_timezone)

    # ------------------------------------------------------------------
    # Signal source
    # ------------------------------------------------------------------
    def create_signal(
        self,
        sku_id: uuid.UUID,
        signal_type: Union[SignalType, str],
        data: Optional[dict[str, Any]] = None,
    ) -> Signal:
        signal_type = SignalType(signal_type)
        signal = Signal(
            sku_id=sku_id,
            type=signal_type.value,
            data=data or {},
            priority=signal_priority(signal_type),
            processed=False,
            created_at=self.now(),
        )
        self.repository.add_signal(signal)
        logger.info(f"[SignalProcessor] Signal {signal.type} created for SKU {sku_id} (priority={signal.priority})")
        return signal

    def get_unprocessed_signals(self, limit: int = 100) -> list[Signal]:
        return self.repository.get_unprocessed_signals(limit)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def process(self, signal: Signal) -> SignalDecision:
        logger.info(f"[SignalProcessor] Processing signal {signal.type} for SKU {signal.sku_id}")
        sku_id = signal.sku_id
        attachment = self.repository.get_active_attachment(sku_id)
        strategy = StrategyConfig.model_validate(attachment.strategy) if attachment is not None else None

        # 1. 쿨다운
        cooldown = strategy.cooldown_minutes if strategy is not None else settings.default_cooldown_minutes
        remaining = self.cooldown_remaining(sku_id, cooldown)
        if remaining is not None:
            return self._decide(
                signal, SignalDecisionCode.REJECTED_COOLDOWN,
                f"SKU is in cooldown for another {remaining.total_seconds() / 60:.1f} minutes",
            )

        # 2. 활성 상태
        sku = self.repository.get_sku(sku_id)
        if sku is None:
            return self._decide(signal, SignalDecisionCode.REJECTED_SKU_MISSING, "SKU not found")
        if not sku.active:
            return self._decide(signal, SignalDecisionCode.REJECTED_SKU_INACTIVE, "SKU is not active")
        if strategy is None:
            return self._decide(signal, SignalDecisionCode.REJECTED_NO_STRATEGY, "SKU has no active strategy")

        # 3. 관심 시그널
        if signal.type in {s.value for s in strategy.ignored_signals}:
            return self._decide(
                signal, SignalDecisionCode.REJECTED_IGNORED, f"Strategy '{strategy.name}' ignores {signal.type}"
            )
        allowed = {s.value for s in strategy.allowed_signals}
        if allowed and signal.type not in allowed:
            return self._decide(
                signal, SignalDecisionCode.REJECTED_NOT_ALLOWED,
                f"Strategy '{strategy.name}' does not react to {signal.type}",
            )

        # 4. 일일 변경 한도
        limit = strategy.effective_max_changes_per_day()
        changes = self.changes_today(sku_id)
        if changes >= limit:
            return self._decide(
                signal, SignalDecisionCode.REJECTED_RATE_LIMIT,
                f"SKU reached max changes per day ({changes}/{limit})",
            )

        # 5. 접수
        if self.queue is not None:
            self.queue.submit(RepriceJob(sku_id=sku_id, signal_id=signal.id))
        return self._decide(signal, SignalDecisionCode.ACCEPTED, f"Signal {signal.type} approved for reprice")

    def process_by_id(self, signal_id: uuid.UUID) -> Optional[SignalDecision]:
        signal = self.repository.get_signal(signal_id)
        if signal is None:
            logger.info(f"[SignalProcessor] Signal {signal_id} not found")
            return None
        if signal.processed:
            logger.info(f"[SignalProcessor] Signal {signal_id} already processed ({signal.decision})")
            return SignalDecision(
                signal_id=signal.id,
                accepted=signal.decision == SignalDecisionCode.ACCEPTED.value,
                code=SignalDecisionCode(signal.decision or SignalDecisionCode.FAILED.value),
                message="already processed",
            )
        return self.process(signal)

    def sweep(self, limit: Optional[int] = None) -> list[SignalDecision]:
        """미처리 시그널을 우선순위 순으로 처리합니다. 시그널 하나의 실패가 배치를 멈추지 않습니다."""
        signals = self.get_unprocessed_signals(limit or settings.signal_sweep_batch_size)
        decisions: list[SignalDecision] = []
        for signal in signals:
            try:
                decisions.append(self.process(signal))
            except ValidationError as e:
                self.repository.session.rollback()
                logger.error(f"[SignalProcessor] Signal {signal.id}: invalid strategy configuration: {e}")
                decisions.append(self._decide(signal, SignalDecisionCode.FAILED, "invalid strategy configuration"))
            except Exception as e:
                self.repository.session.rollback()
                logger.exception(f"[SignalProcessor] Error processing signal {signal.id}: {e}")
                decisions.append(self._decide(signal, SignalDecisionCode.FAILED, str(e)))
        if decisions:
            accepted = sum(1 for d in decisions if d.accepted)
            logger.info(f"[SignalProcessor] Sweep processed {len(decisions)} signals ({accepted} accepted)")
        return decisions

    # ------------------------------------------------------------------
    # Gates
    # ------------------------------------------------------------------
    def cooldown_remaining(self, sku_id: uuid.UUID, cooldown_minutes: int) -> Optional[timedelta]:
        return self.gates.cooldown_remaining(sku_id, cooldown_minutes)

    def local_midnight(self) -> datetime:
        return self.gates.local_midnight()

    def changes_today(self, sku_id: uuid.UUID) -> int:
        return self.gates.changes_today(sku_id)

    def _decide(self, signal: Signal, code: SignalDecisionCode, message: str) -> SignalDecision:
        self.repository.mark_signal_processed(signal, code.value)
        accepted = code == SignalDecisionCode.ACCEPTED
        logger.info(f"[SignalProcessor] Signal {signal.id} ({signal.type}) for SKU {signal.sku_id}: {code.value} - {message}")
        return SignalDecision(signal_id=signal.id, accepted=accepted, code=code, message=message)
