"""Pytest configuration and fixtures."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from repricer.models import RepricerBase, Sku, User
from repricer.services.pricing.locks import SkuLockManager
from repricer.services.pricing.pipeline import build_pipeline
from repricer.services.pricing.repository import PricingRepository
from repricer.services.pricing.strategy_service import create_strategy


# 테스트용 메모리 SQLite 엔진 (TestClient 스레드에서도 같은 DB를 보도록 StaticPool)
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False  # 테스트 로그 줄이기
)

TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)

# 2026-03-10 09:00 UTC = 12:00 Europe/Moscow
CLOCK_START = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _patch_jsonb_to_json(base):
    """
    SQLite에서 JSONB를 JSON으로 변경하여 컴파일 오류 방지.
    테스트용으로만 사용.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                # JSONB → JSON으로 변경 (SQLite 호환)
                column.type = JSON()


class FakeClock:
    """테스트에서 시간을 직접 움직이기 위한 시계"""

    def __init__(self, start: datetime = CLOCK_START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 새로운 메모리 DB 생성.
    """
    _patch_jsonb_to_json(RepricerBase)
    RepricerBase.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
        session.commit()  # 테스트 성공 시 commit
    except Exception:
        session.rollback()  # 실패 시 rollback
        raise
    finally:
        session.close()
        # 모든 테이블 삭제
        RepricerBase.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def db_session(test_session: Session):
    """test_session alias."""
    yield test_session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def repository(test_session: Session, clock: FakeClock) -> PricingRepository:
    return PricingRepository(test_session, now=clock.now)


@pytest.fixture
def locks() -> SkuLockManager:
    return SkuLockManager(default_timeout=0.05)


@pytest.fixture
def pipeline(test_session: Session, clock: FakeClock, locks: SkuLockManager):
    return build_pipeline(test_session, locks=locks, now=clock.now)


@pytest.fixture
def user(test_session: Session) -> User:
    u = User(email=f"seller-{uuid.uuid4().hex[:8]}@example.com", marketplace_api_key="wb-test-key")
    test_session.add(u)
    test_session.commit()
    return u


@pytest.fixture
def make_sku(test_session: Session, user: User):
    """
    기본 경제성: 원가 800, 수수료 15%, 물류 50, 보관 0, SPP 0%, 세금 6%
    -> profit(1200) = 98.00, breakeven = 1076
    """
    def _make(**overrides) -> Sku:
        values = dict(
            user_id=user.id,
            external_sku_id="12345",
            name="Test SKU",
            current_price=1200.0,
            cost_price=800.0,
            commission_pct=15.0,
            logistics=50.0,
            storage=0.0,
            spp_pct=0.0,
            tax_pct=6.0,
            active=True,
        )
        values.update(overrides)
        sku = Sku(**values)
        test_session.add(sku)
        test_session.commit()
        return sku

    return _make


@pytest.fixture
def make_strategy(repository: PricingRepository, user: User):
    def _make(**overrides):
        payload = {"name": "Hold the middle", "type": "competitive_hold"}
        payload.update(overrides)
        return create_strategy(repository, user.id, payload)

    return _make


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (메모리 SQLite)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
