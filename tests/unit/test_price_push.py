"""
Unit tests for MarketplacePriceClient.

httpx.MockTransport로 마켓플레이스 응답을 흉내냅니다. 백오프는 0으로 둡니다.
"""

import json

import httpx
import pytest

from repricer.services.pricing.exceptions import PricePushError
from repricer.services.pricing.price_push import PRICES_PATH, MarketplacePriceClient


def make_client(handler, retry_count=3):
    return MarketplacePriceClient(
        base_url="https://marketplace.test",
        api_key="secret-key",
        timeout_seconds=5,
        retry_count=retry_count,
        backoff_multiplier=0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestMarketplacePriceClient:

    def test_push_price_sends_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"id": 1}})

        data = make_client(handler).push_price("12345", 1375.0)

        assert seen["path"] == PRICES_PATH
        assert seen["auth"] == "secret-key"
        assert seen["body"] == {"prices": [{"nmId": 12345, "price": 1375.0}]}
        assert data == {"data": {"id": 1}}

    def test_non_numeric_sku_id_is_sent_as_is(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        make_client(handler).push_price("ABC-1", 990.0)
        assert seen["body"]["prices"][0]["nmId"] == "ABC-1"

    def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json={})

        make_client(handler).push_price("12345", 1000.0)
        assert len(calls) == 3

    def test_gives_up_after_retry_count(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(PricePushError) as excinfo:
            make_client(handler, retry_count=2).push_price("12345", 1000.0)

        assert len(calls) == 2
        assert excinfo.value.status_code == 502
        assert excinfo.value.recoverable

    def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "bad price"})

        with pytest.raises(PricePushError) as excinfo:
            make_client(handler).push_price("12345", 1000.0)

        assert len(calls) == 1
        assert excinfo.value.status_code == 400

    def test_transport_errors_become_price_push_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PricePushError) as excinfo:
            make_client(handler).push_price("12345", 1000.0)

        assert len(calls) == 3
        assert excinfo.value.context["operation"] == "price_push"

    def test_non_transport_http_errors_become_price_push_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.DecodingError("bad body", request=request)

        with pytest.raises(PricePushError) as excinfo:
            make_client(handler).push_price("12345", 1000.0)

        # 전송 오류가 아니므로 재시도하지 않음
        assert len(calls) == 1
        assert isinstance(excinfo.value.__cause__, httpx.DecodingError)
