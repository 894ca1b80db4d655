from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from repricer.models import utcnow
from repricer.services.pricing.jobs import InlineJobQueue, JobQueue, RepriceWorker
from repricer.services.pricing.locks import SkuLockManager
from repricer.services.pricing.market_data import MarketDataProvider
from repricer.services.pricing.orchestrator import RepriceOrchestrator
from repricer.services.pricing.price_push import MarketplacePriceClient
from repricer.services.pricing.repository import PricingRepository
from repricer.services.pricing.scheduler import RepriceScheduler
from repricer.services.pricing.signal_processor import SignalProcessor


@dataclass
class RepricePipeline:
    repository: PricingRepository
    orchestrator: RepriceOrchestrator
    worker: RepriceWorker
    queue: JobQueue
    processor: SignalProcessor
    scheduler: RepriceScheduler


def build_pipeline(
    session: Session,
    locks: SkuLockManager,
    price_client_factory: Optional[Callable[[str], MarketplacePriceClient]] = None,
    market_data: Optional[MarketDataProvider] = None,
    queue: Optional[JobQueue] = None,
    now: Callable[[], datetime] = utcnow,
) -> RepricePipeline:
    """
    세션 하나에 묶인 리프라이싱 구성요소를 조립합니다.
    락 매니저는 프로세스 단위로 공유되어야 하므로 호출자가 넘깁니다 (FastAPI app.state, CLI).
    """
    repository = PricingRepository(session, now=now)
    orchestrator = RepriceOrchestrator(repository, market_data=market_data, now=now)
    worker = RepriceWorker(
        repository,
        orchestrator=orchestrator,
        locks=locks,
        price_client_factory=price_client_factory,
        now=now,
    )
    queue = queue or InlineJobQueue(worker)
    processor = SignalProcessor(repository, queue=queue, now=now)
    return RepricePipeline(
        repository=repository,
        orchestrator=orchestrator,
        worker=worker,
        queue=queue,
        processor=processor,
        scheduler=RepriceScheduler(processor),
    )


def default_price_client_factory(api_key: str) -> MarketplacePriceClient:
    return MarketplacePriceClient(api_key=api_key)
