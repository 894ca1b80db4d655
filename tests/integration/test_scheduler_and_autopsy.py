import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from repricer.models import PriceRejection
from repricer.services.pricing.autopsy import build_price_autopsy, build_strategy_health
from repricer.services.pricing.exceptions import NotFoundError
from repricer.services.pricing.scheduler import RepriceScheduler
from repricer.services.pricing.signal_processor import SignalProcessor


@pytest.fixture
def scheduler(repository, clock):
    processor = SignalProcessor(repository, queue=MagicMock(), now=clock.now)
    return RepriceScheduler(processor)


@pytest.mark.integration
def test_emit_interval_signals_only_for_governed_skus(repository, scheduler, make_sku, make_strategy):
    governed = make_sku()
    repository.activate_strategy(governed.id, make_strategy().id)
    make_sku(external_sku_id="222")  # 전략 없음
    inactive = make_sku(external_sku_id="333", active=False)
    repository.activate_strategy(inactive.id, make_strategy().id)

    summary = scheduler.emit_interval_signals()

    assert summary == {"created": 1, "failed": []}
    [signal] = repository.get_unprocessed_signals()
    assert signal.sku_id == governed.id
    assert signal.type == "time_interval"
    assert signal.data == {"source": "scheduler"}


@pytest.mark.integration
def test_sweep_signals_summary(repository, scheduler, clock, make_sku, make_strategy):
    sku = make_sku()
    repository.activate_strategy(sku.id, make_strategy().id)
    bare = make_sku(external_sku_id="444")
    scheduler.processor.create_signal(sku.id, "competitor_oos")
    clock.advance(seconds=1)
    scheduler.processor.create_signal(bare.id, "competitor_oos")

    summary = scheduler.sweep_signals()

    assert summary["processed"] == 2
    assert summary["decisions"] == {"accepted": 1, "rejected_no_strategy": 1}
    assert scheduler.sweep_signals() == {"processed": 0, "decisions": {}}


@pytest.mark.integration
def test_price_autopsy_explains_current_price(repository, scheduler, clock, make_sku, make_strategy):
    """
    손익분기점 아래 가격 + 최근 거절 이력 -> 진단과 권고
    """
    sku = make_sku(current_price=1000)
    strategy = make_strategy(constraints=[{"type": "min_profit", "value": 100}])
    repository.activate_strategy(sku.id, strategy.id)
    repository.add_rejection(PriceRejection(
        sku_id=sku.id,
        proposed_price=975,
        reason="Competitive Hold",
        validation_errors=[{"kind": "below_breakeven"}],
        suggested_price=1203,
        min_allowed_price=1203,
        strategy_id=strategy.id,
    ))
    scheduler.processor.process(scheduler.processor.create_signal(sku.id, "sales_drop"))

    autopsy = build_price_autopsy(repository, sku.id)

    assert autopsy["current_price"] == 1000
    assert autopsy["currency"] == "RUB"
    assert autopsy["active_strategy"]["id"] == str(strategy.id)
    assert autopsy["last_signal"]["type"] == "sales_drop"
    assert autopsy["last_signal"]["decision"] == "accepted"
    assert autopsy["last_price_change"] is None

    econ = autopsy["economics"]
    assert econ["current_profit"] == pytest.approx(-60.0)
    assert econ["breakeven"] == 1076
    assert econ["min_allowed_price"] == 1203

    [status] = autopsy["constraints_status"]
    assert status["type"] == "min_profit"
    assert not status["satisfied"]

    assert len(autopsy["recent_rejections"]) == 1
    recommendations = " ".join(autopsy["recommendations"])
    assert "손실 판매 중입니다" in recommendations
    assert "손익분기점(1076)" in recommendations
    assert "거절된 가격 변경이 1건" in recommendations


@pytest.mark.integration
def test_price_autopsy_without_strategy(repository, make_sku):
    sku = make_sku()
    repository.commit_price_change(sku, new_price=1250, reason="manual")

    autopsy = build_price_autopsy(repository, sku.id)

    assert autopsy["active_strategy"] is None
    assert autopsy["last_price_change"]["new_price"] == 1250
    assert autopsy["constraints_status"] == []
    assert any("활성 전략이 없습니다" in r for r in autopsy["recommendations"])


@pytest.mark.integration
def test_price_autopsy_with_broken_strategy(repository, make_sku, make_strategy):
    """연결은 있지만 설정이 깨진 전략은 '전략 없음'과 구분해서 보고"""
    sku = make_sku()
    strategy = make_strategy()
    repository.activate_strategy(sku.id, strategy.id)
    strategy.type = "clearance"  # actions 없는 clearance -> 검증 실패
    repository.session.commit()

    autopsy = build_price_autopsy(repository, sku.id)

    assert autopsy["active_strategy"] == {"id": str(strategy.id), "error": "invalid strategy configuration"}
    assert autopsy["constraints_status"] == []
    recommendations = autopsy["recommendations"]
    assert any("활성 전략 설정이 올바르지 않습니다" in r for r in recommendations)
    assert not any("활성 전략이 없습니다" in r for r in recommendations)


@pytest.mark.integration
def test_price_autopsy_unknown_sku(repository):
    with pytest.raises(NotFoundError):
        build_price_autopsy(repository, uuid.uuid4())


@pytest.mark.integration
def test_strategy_health(repository, clock, make_sku, make_strategy):
    sku = make_sku()
    strategy = make_strategy()
    repository.activate_strategy(sku.id, strategy.id)

    # 8일 전 변경은 집계에서 제외
    now = clock.current
    clock.current = now - timedelta(days=8)
    repository.commit_price_change(sku, 1210, "old", strategy_id=strategy.id, profit=105.9, margin=8.75)
    clock.current = now

    repository.commit_price_change(sku, 1375, "recent", strategy_id=strategy.id, profit=236.25, margin=17.18)
    repository.add_rejection(PriceRejection(
        sku_id=sku.id, proposed_price=975, reason="dumping", strategy_id=strategy.id,
    ))

    health = build_strategy_health(repository, strategy.id)

    assert health["active_sku_count"] == 1
    assert health["total_price_changes"] == 1
    assert health["avg_margin"] == 17.18
    assert health["rejection_rate"] == 50.0
    assert health["health_score"] == 70
    assert health["verdict"] == "overheated"
    assert len(health["issues"]) == 1


@pytest.mark.integration
def test_strategy_health_unknown_strategy(repository):
    with pytest.raises(NotFoundError):
        build_strategy_health(repository, uuid.uuid4())
