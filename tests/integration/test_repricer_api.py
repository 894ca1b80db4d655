"""
리프라이서 API 테스트

메모리 SQLite 세션으로 파이프라인을 주입하고 TestClient로 엔드포인트를 호출합니다.
가격 반영 클라이언트는 주입하지 않으므로 외부 호출은 없습니다.
"""
import uuid

import pytest
from fastapi.testclient import TestClient

from repricer.api.deps import get_pipeline
from repricer.main import app
from repricer.models import Strategy
from repricer.services.pricing.pipeline import build_pipeline

pytestmark = pytest.mark.integration


@pytest.fixture
def client(test_session, clock, locks):
    app.dependency_overrides[get_pipeline] = lambda: build_pipeline(test_session, locks=locks, now=clock.now)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def sku_payload(user):
    return {
        "user_id": str(user.id),
        "external_sku_id": "12345",
        "name": "Wireless mouse",
        "current_price": 1200,
        "cost_price": 800,
        "commission_pct": 15,
        "logistics": 50,
        "storage": 0,
        "spp_pct": 0,
        "tax_pct": 6,
    }


def _create_governed_sku(client, user, sku_payload, **strategy_overrides):
    sku = client.post("/api/skus", json=sku_payload).json()
    strategy_payload = {
        "user_id": str(user.id),
        "name": "Hold the middle",
        "type": "competitive_hold",
        "constraints": [{"type": "min_profit", "value": 100}],
    }
    strategy_payload.update(strategy_overrides)
    strategy = client.post("/api/strategies", json=strategy_payload).json()
    resp = client.post(f"/api/skus/{sku['id']}/strategies/{strategy['id']}/activate")
    assert resp.status_code == 200
    return sku, strategy


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_create_and_get_sku(client, sku_payload):
    resp = client.post("/api/skus", json=sku_payload)
    assert resp.status_code == 201
    sku = resp.json()
    assert sku["version"] == 1
    assert sku["current_price"] == 1200

    resp = client.get(f"/api/skus/{sku['id']}")
    assert resp.status_code == 200
    assert resp.json()["external_sku_id"] == "12345"

    assert client.get(f"/api/skus/{uuid.uuid4()}").status_code == 404


def test_create_sku_rejects_invalid_percentages(client, sku_payload):
    sku_payload["commission_pct"] = 150
    assert client.post("/api/skus", json=sku_payload).status_code == 422


def test_sku_economics(client, sku_payload):
    sku = client.post("/api/skus", json=sku_payload).json()

    data = client.get(f"/api/skus/{sku['id']}/economics").json()
    assert data["profit"] == 98.0
    assert data["breakeven"] == 1076
    assert data["min_allowed_price"] == 1076

    data = client.get(f"/api/skus/{sku['id']}/economics", params={"price": 1500}).json()
    assert data["price"] == 1500
    assert data["profit"] == 335.0


def test_sku_economics_cost_model_error(client, sku_payload):
    sku_payload.update({"commission_pct": 60, "spp_pct": 30, "tax_pct": 10})
    sku = client.post("/api/skus", json=sku_payload).json()

    resp = client.get(f"/api/skus/{sku['id']}/economics")
    assert resp.status_code == 422
    assert resp.json()["detail"]["kind"] == "cost_model"


def test_strategy_validation(client, user):
    base = {"user_id": str(user.id), "name": "bad"}

    unknown_metric = dict(base, type="competitive_hold", conditions=[
        {"metric": "moon_phase", "operator": "eq", "value": 1},
    ])
    assert client.post("/api/strategies", json=unknown_metric).status_code == 422

    action_less = dict(base, type="inventory_driven")
    assert client.post("/api/strategies", json=action_less).status_code == 422

    ok = dict(base, type="clearance", actions=[{"type": "decrease_price", "value": 5, "mode": "percentage"}])
    resp = client.post("/api/strategies", json=ok)
    assert resp.status_code == 201
    strategy = resp.json()
    assert strategy["actions"][0]["mode"] == "percentage"

    assert client.get(f"/api/strategies/{strategy['id']}").status_code == 200
    assert client.get(f"/api/strategies/{uuid.uuid4()}").status_code == 404


def test_snapshot_and_manual_reprice(client, user, sku_payload):
    sku, strategy = _create_governed_sku(client, user, sku_payload)

    resp = client.post(f"/api/skus/{sku['id']}/snapshots", json={
        "competitors": [{"price": p} for p in (1250, 1300, 1350, 1400, 1450)],
        "position": 7,
    })
    assert resp.status_code == 201
    assert resp.json()["median_price"] == 1350

    result = client.post(f"/api/skus/{sku['id']}/reprice").json()
    assert result["success"] is True
    assert result["changed"] is True
    assert result["old_price"] == 1200
    assert result["new_price"] == 1375

    assert client.get(f"/api/skus/{sku['id']}").json()["current_price"] == 1375

    autopsy = client.get(f"/api/skus/{sku['id']}/autopsy").json()["autopsy"]
    assert autopsy["last_price_change"]["new_price"] == 1375
    assert autopsy["active_strategy"]["name"] == "Hold the middle"

    health = client.get(f"/api/strategies/{strategy['id']}/health").json()["health"]
    assert health["total_price_changes"] == 1


def test_rejected_reprice_returns_min_allowed_price(client, user, sku_payload):
    sku, _ = _create_governed_sku(client, user, sku_payload)
    client.post(f"/api/skus/{sku['id']}/snapshots", json={
        "competitors": [{"price": p} for p in (500, 900, 950, 1000, 1050)],
    })

    result = client.post(f"/api/skus/{sku['id']}/reprice").json()

    assert result["success"] is False
    assert result["error_kind"] == "validation_rejected"
    assert result["min_allowed_price"] == 1203
    assert {e["kind"] for e in result["validation_errors"]} == {"min_profit_violated", "below_breakeven"}


def test_activate_unknown_strategy_returns_404(client, sku_payload):
    sku = client.post("/api/skus", json=sku_payload).json()
    resp = client.post(f"/api/skus/{sku['id']}/strategies/{uuid.uuid4()}/activate")
    assert resp.status_code == 404
    assert resp.json()["detail"]["kind"] == "not_found"


def test_signal_flow(client, user, sku_payload, clock):
    sku, _ = _create_governed_sku(client, user, sku_payload)

    # 미처리로 등록
    resp = client.post("/api/signals", json={"sku_id": sku["id"], "type": "competitor_price_drop"})
    assert resp.status_code == 201
    signal = resp.json()["signal"]
    assert signal["priority"] == 8
    assert resp.json()["decision"] is None

    unprocessed = client.get("/api/signals/unprocessed").json()
    assert [s["id"] for s in unprocessed] == [signal["id"]]

    decision = client.post(f"/api/signals/{signal['id']}/process").json()
    assert decision["accepted"] is True
    assert decision["code"] == "accepted"

    # 즉시 처리 요청: 빈 시장이므로 가격 유지, 쿨다운 없음
    clock.advance(minutes=1)
    resp = client.post("/api/signals", json={
        "sku_id": sku["id"], "type": "position_drop", "process_now": True,
    })
    assert resp.json()["decision"]["code"] == "accepted"

    assert client.post("/api/signals/sweep", json={"limit": 10}).json() == []
    assert client.post(f"/api/signals/{uuid.uuid4()}/process").status_code == 404


def test_signal_for_unknown_sku(client):
    resp = client.post("/api/signals", json={"sku_id": str(uuid.uuid4()), "type": "manual"})
    assert resp.status_code == 404

    resp = client.post("/api/signals", json={"sku_id": str(uuid.uuid4()), "type": "solar_flare"})
    assert resp.status_code == 422


def test_process_now_with_broken_strategy_returns_422(client, test_session, user, sku_payload):
    sku, strategy = _create_governed_sku(client, user, sku_payload)
    # 저장 이후 깨진 설정: actions 없는 clearance 전략
    stored = test_session.get(Strategy, uuid.UUID(strategy["id"]))
    stored.type = "clearance"
    test_session.commit()

    resp = client.post("/api/signals", json={"sku_id": sku["id"], "type": "sales_drop", "process_now": True})
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Active strategy has invalid configuration"

    [pending] = client.get("/api/signals/unprocessed").json()
    assert client.post(f"/api/signals/{pending['id']}/process").status_code == 422
