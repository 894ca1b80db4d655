import logging
from typing import Any, Optional

import httpx
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from repricer.services.pricing.exceptions import PricePushError
from repricer.settings import settings

logger = logging.getLogger(__name__)

PRICES_PATH = "/public/api/v1/prices"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, PricePushError) and exc.status_code in RETRYABLE_STATUS_CODES


class MarketplacePriceClient:
    """
    마켓플레이스 가격 반영 클라이언트.

    POST {base_url}/public/api/v1/prices  {"prices": [{"nmId": ..., "price": ...}]}
    전송 오류/429/5xx는 지수 백오프로 재시도하며, 재시도를 포함한 전체 시간은 timeout으로 제한합니다.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        retry_count: Optional[int] = None,
        backoff_multiplier: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.marketplace_api_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.marketplace_api_key
        self.timeout_seconds = timeout_seconds or settings.price_push_timeout_seconds
        self.retry_count = max(1, retry_count if retry_count is not None else settings.price_push_retry_count)
        self.backoff_multiplier = backoff_multiplier
        self._transport = transport

    def push_price(self, external_sku_id: str, price: float) -> dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_count) | stop_after_delay(self.timeout_seconds),
            wait=wait_exponential(multiplier=self.backoff_multiplier, min=0, max=30),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            before_sleep=lambda retry_state: logger.warning(
                f"[PricePush] Retrying {external_sku_id} ({retry_state.attempt_number}): "
                f"{retry_state.outcome.exception()}"
            ),
        )
        try:
            return retrying(self._post_price, external_sku_id, price)
        except httpx.HTTPError as e:
            raise PricePushError(
                f"Price push for {external_sku_id} failed: {e}", external_sku_id=external_sku_id
            ) from e

    def _post_price(self, external_sku_id: str, price: float) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = self.api_key

        payload = {"prices": [{"nmId": _nm_id(external_sku_id), "price": price}]}
        timeout = httpx.Timeout(self.timeout_seconds, connect=min(10.0, self.timeout_seconds))
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            resp = client.post(f"{self.base_url}{PRICES_PATH}", json=payload, headers=headers)

        if resp.status_code >= 400:
            raise PricePushError(
                f"Price push for {external_sku_id} failed: HTTP {resp.status_code}",
                external_sku_id=external_sku_id,
                status_code=resp.status_code,
                response_body=resp.text[:500],
            )

        logger.info(f"[PricePush] {external_sku_id} -> {price} (HTTP {resp.status_code})")
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {"data": data}


def _nm_id(external_sku_id: str) -> Any:
    # nmId는 숫자 ID
    return int(external_sku_id) if str(external_sku_id).isdigit() else external_sku_id
