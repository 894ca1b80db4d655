import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from repricer.api.deps import get_pipeline
from repricer.schemas.signal import SignalCreate, SignalDecisionOut, SignalResponse, SweepRequest
from repricer.services.pricing.pipeline import RepricePipeline
from repricer.services.pricing.types import SignalDecision

router = APIRouter()

logger = logging.getLogger(__name__)


def _decision_out(decision: SignalDecision) -> SignalDecisionOut:
    return SignalDecisionOut(
        signal_id=decision.signal_id,
        accepted=decision.accepted,
        code=decision.code.value,
        message=decision.message,
    )


@router.post("", status_code=201)
def create_signal(payload: SignalCreate, pipeline: RepricePipeline = Depends(get_pipeline)):
    """시그널 등록. process_now=True면 즉시 입장 게이트를 통과시켜 봅니다."""
    if pipeline.repository.get_sku(payload.sku_id) is None:
        raise HTTPException(status_code=404, detail="SKU not found")

    signal = pipeline.processor.create_signal(payload.sku_id, payload.type, payload.data)
    decision = None
    if payload.process_now:
        try:
            decision = pipeline.processor.process(signal)
        except ValidationError as e:
            logger.error(f"Signal {signal.id}: active strategy has invalid configuration: {e}")
            raise HTTPException(status_code=422, detail="Active strategy has invalid configuration")
    return {
        "signal": SignalResponse.model_validate(signal),
        "decision": _decision_out(decision) if decision is not None else None,
    }


@router.get("/unprocessed", response_model=list[SignalResponse])
def list_unprocessed_signals(
    limit: int = Query(default=100, ge=1, le=1000),
    pipeline: RepricePipeline = Depends(get_pipeline),
):
    return pipeline.processor.get_unprocessed_signals(limit)


@router.post("/sweep", response_model=list[SignalDecisionOut])
def sweep_signals(payload: SweepRequest, pipeline: RepricePipeline = Depends(get_pipeline)):
    return [_decision_out(d) for d in pipeline.processor.sweep(payload.limit)]


@router.post("/{signal_id}/process", response_model=SignalDecisionOut)
def process_signal(signal_id: uuid.UUID, pipeline: RepricePipeline = Depends(get_pipeline)):
    try:
        decision = pipeline.processor.process_by_id(signal_id)
    except ValidationError as e:
        logger.error(f"Signal {signal_id}: active strategy has invalid configuration: {e}")
        raise HTTPException(status_code=422, detail="Active strategy has invalid configuration")
    if decision is None:
        raise HTTPException(status_code=404, detail="Signal not found")
    return _decision_out(decision)
