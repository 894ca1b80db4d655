from fastapi import Depends, Request
from sqlalchemy.orm import Session

from repricer.db import get_session
from repricer.services.pricing.pipeline import RepricePipeline, build_pipeline, default_price_client_factory


def get_pipeline(request: Request, session: Session = Depends(get_session)) -> RepricePipeline:
    return build_pipeline(
        session,
        locks=request.app.state.locks,
        price_client_factory=default_price_client_factory,
    )
