"""
쿨다운 / 일일 변경 한도 게이트.

시그널 접수 시점(SignalProcessor)과 SKU 락 안의 적용 시점(RepriceWorker) 양쪽에서 같은 판단을 씁니다.
"""
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

import pytz

from repricer.models import utcnow
from repricer.schemas.strategy import StrategyConfig
from repricer.services.pricing.repository import PricingRepository, as_utc
from repricer.settings import settings


class ChangeGates:
    def __init__(
        self,
        repository: PricingRepository,
        now: Callable[[], datetime] = utcnow,
        business_timezone: Optional[str] = None,
    ):
        self.repository = repository
        self.now = now
        self.tz = pytz.timezone(business_timezone or settings.business_timezone)

    def cooldown_remaining(self, sku_id: uuid.UUID, cooldown_minutes: int) -> Optional[timedelta]:
        """쿨다운 중이면 남은 시간, 아니면 None. 변경 이력이 없으면 항상 허용."""
        last_change = self.repository.get_last_applied_change(sku_id)
        if last_change is None:
            return None
        elapsed = self.now() - as_utc(last_change.created_at)
        cooldown = timedelta(minutes=cooldown_minutes)
        if elapsed >= cooldown:
            return None
        return cooldown - elapsed

    def local_midnight(self) -> datetime:
        """business_timezone 기준 오늘 0시 (UTC로 반환)"""
        local_now = self.now().astimezone(self.tz)
        midnight = self.tz.localize(datetime(local_now.year, local_now.month, local_now.day))
        return midnight.astimezone(pytz.utc)

    def changes_today(self, sku_id: uuid.UUID) -> int:
        return self.repository.count_applied_changes_since(sku_id, self.local_midnight())

    def blocking_reason(self, sku_id: uuid.UUID, strategy: StrategyConfig) -> Optional[str]:
        """쿨다운 또는 일일 한도에 걸리면 사유, 통과하면 None"""
        remaining = self.cooldown_remaining(sku_id, strategy.cooldown_minutes)
        if remaining is not None:
            return f"SKU is in cooldown for another {remaining.total_seconds() / 60:.1f} minutes"
        limit = strategy.effective_max_changes_per_day()
        changes = self.changes_today(sku_id)
        if changes >= limit:
            return f"SKU reached max changes per day ({changes}/{limit})"
        return None
