"""
리프라이싱 스케줄러

내부 타이머가 없습니다. 각 작업은 한 번 실행되는 메서드이며 주기 실행은 호출자(CLI run-scheduler)가 담당합니다.
"""
import logging
from typing import Any, Dict

from repricer.services.pricing.constants import SignalType
from repricer.services.pricing.signal_processor import SignalProcessor

logger = logging.getLogger(__name__)


class RepriceScheduler:
    def __init__(self, processor: SignalProcessor):
        self.processor = processor

    def sweep_signals(self, limit: int | None = None) -> Dict[str, Any]:
        """미처리 시그널 배치 처리"""
        decisions = self.processor.sweep(limit)
        if not decisions:
            logger.debug("[Scheduler] No unprocessed signals found")
        summary: Dict[str, int] = {}
        for decision in decisions:
            summary[decision.code.value] = summary.get(decision.code.value, 0) + 1
        return {"processed": len(decisions), "decisions": summary}

    def emit_interval_signals(self) -> Dict[str, Any]:
        """활성 전략이 있는 모든 활성 SKU에 time_interval 시그널을 생성합니다."""
        skus = self.processor.repository.get_active_skus_with_strategy()
        created = 0
        errors: list[str] = []
        for sku in skus:
            try:
                self.processor.create_signal(sku.id, SignalType.TIME_INTERVAL, {"source": "scheduler"})
                created += 1
            except Exception as e:
                self.processor.repository.session.rollback()
                logger.error(f"[Scheduler] Failed to create interval signal for SKU {sku.id}: {e}")
                errors.append(str(sku.id))
        logger.info(f"[Scheduler] Emitted {created} interval signals ({len(errors)} failed)")
        return {"created": created, "failed": errors}
