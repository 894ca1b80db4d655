import logging

from fastapi import FastAPI

from repricer.api.endpoints import signals, skus, strategies
from repricer.services.pricing.locks import SkuLockManager
from repricer.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(title="repricer")

# SKU 락은 프로세스 단위로 공유
app.state.locks = SkuLockManager()

app.include_router(skus.router, prefix="/api/skus", tags=["SKUs"])
app.include_router(strategies.router, prefix="/api/strategies", tags=["Strategies"])
app.include_router(signals.router, prefix="/api/signals", tags=["Signals"])


@app.get("/health")
def health():
    return {"status": "ok"}
