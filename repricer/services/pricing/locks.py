import hashlib
import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from repricer.services.pricing.exceptions import ConcurrencyConflictError
from repricer.settings import settings

logger = logging.getLogger(__name__)


def advisory_lock_id(sku_id: uuid.UUID) -> int:
    """안정적인 64비트 signed 정수 락 ID 생성 (Postgres bigint 호환)"""
    lock_id = int(hashlib.md5(f"reprice:{sku_id}".encode()).hexdigest()[:16], 16)
    if lock_id > 0x7FFFFFFFFFFFFFFF:
        lock_id -= 0x10000000000000000
    return lock_id


@contextmanager
def advisory_lock(session: Session, sku_id: uuid.UUID) -> Iterator[None]:
    """
    PostgreSQL이면 세션 advisory lock으로 프로세스/인스턴스 간 중복 리프라이싱을 막습니다.
    파이프라인이 중간에 여러 번 커밋하므로 트랜잭션 범위 락이 아닌 세션 락을 사용합니다.
    다른 DB에서는 프로세스 내 SkuLockManager만으로 직렬화합니다.
    """
    if session.get_bind().dialect.name != "postgresql":
        yield
        return

    lock_id = advisory_lock_id(sku_id)
    acquired = session.execute(text("SELECT pg_try_advisory_lock(:id)"), {"id": lock_id}).scalar()
    if not acquired:
        raise ConcurrencyConflictError(f"SKU {sku_id} is locked by another worker", sku_id=sku_id)
    try:
        yield
    finally:
        try:
            session.execute(text("SELECT pg_advisory_unlock(:id)"), {"id": lock_id})
        except Exception as e:
            logger.error(f"[SkuLock] Failed to release advisory lock for SKU {sku_id}: {e}")


class SkuLockManager:
    """
    SKU별 프로세스 내 락.
    동일 SKU의 리프라이싱은 한 번에 하나만 진행되며, 대기 시간이 timeout을 넘으면 ConcurrencyConflictError.
    """

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout if default_timeout is not None else settings.reprice_lock_timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[uuid.UUID, threading.Lock] = {}

    def _lock_for(self, sku_id: uuid.UUID) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(sku_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[sku_id] = lock
            return lock

    @contextmanager
    def acquire(self, sku_id: uuid.UUID, timeout: Optional[float] = None) -> Iterator[None]:
        timeout = self.default_timeout if timeout is None else timeout
        lock = self._lock_for(sku_id)
        if not lock.acquire(timeout=timeout):
            logger.warning(f"[SkuLock] SKU {sku_id} is already being repriced (waited {timeout}s)")
            raise ConcurrencyConflictError(
                f"Reprice for SKU {sku_id} is already in progress", sku_id=sku_id, timeout_seconds=timeout
            )
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, sku_id: uuid.UUID) -> bool:
        return self._lock_for(sku_id).locked()
