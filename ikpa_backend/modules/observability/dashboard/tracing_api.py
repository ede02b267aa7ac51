"""FastAPI endpoints for operating the tracing layer.

Lets operators inspect tracing status, tune sampling at runtime and force a
flush without restarting the service.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ikpa_backend.logger import logger

from ..tracing.exceptions import FlushException
from ..tracing.flush_controller import RetryPolicy
from ..tracing.sampler import SamplingRule
from ..tracing.tracer import get_tracer

router = APIRouter(prefix="/observability/tracing", tags=["observability"])


class TracingStatus(BaseModel):
    """Tracing status response."""

    available: bool
    project_name: Optional[str] = None
    environment: Optional[str] = None
    sampling_rate: float
    rule_count: int


class SamplingConfig(BaseModel):
    """Current sampling configuration."""

    sampling_rate: float
    rules: List[SamplingRule]


class SamplingRateUpdate(BaseModel):
    rate: float


class SamplingRulesUpdate(BaseModel):
    rules: List[SamplingRule]


class FlushRequest(BaseModel):
    """Flush options; unset fields use the configured defaults."""

    model_config = ConfigDict(extra="forbid")

    retry_attempts: Optional[int] = Field(default=None, ge=1)
    retry_delay_ms: Optional[int] = Field(default=None, ge=0)
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    throw_on_error: bool = False


class FlushResult(BaseModel):
    flushed: bool
    attempts: int
    error: Optional[str] = None


def _sampling_config() -> Dict[str, Any]:
    tracer = get_tracer()
    return {
        "sampling_rate": tracer.get_sampling_rate(),
        "rules": tracer.get_sampling_rules(),
    }


@router.get("/status", response_model=TracingStatus)
async def get_tracing_status() -> Dict[str, Any]:
    """Get whether tracing is active and how it is configured."""
    tracer = get_tracer()
    config = tracer.get_config()

    return {
        "available": tracer.is_available(),
        "project_name": config.project_name if config else None,
        "environment": config.environment if config else None,
        "sampling_rate": tracer.get_sampling_rate(),
        "rule_count": len(tracer.get_sampling_rules()),
    }


@router.get("/sampling", response_model=SamplingConfig)
async def get_sampling_config() -> Dict[str, Any]:
    return _sampling_config()


@router.put("/sampling/rate", response_model=SamplingConfig)
async def update_sampling_rate(update: SamplingRateUpdate) -> Dict[str, Any]:
    """Set the default sampling rate.

    Raises:
        HTTPException: 400 if the rate is outside [0, 1]
    """
    if not get_tracer().set_sampling_rate(update.rate):
        raise HTTPException(status_code=400, detail=f"Sampling rate must be between 0 and 1, got {update.rate}")

    return _sampling_config()


@router.put("/sampling/rules", response_model=SamplingConfig)
async def update_sampling_rules(update: SamplingRulesUpdate) -> Dict[str, Any]:
    """Replace the sampling rules. Rules are evaluated in order, first match wins."""
    get_tracer().set_sampling_rules(update.rules)
    return _sampling_config()


@router.post("/flush", response_model=FlushResult)
async def flush_traces(request: Optional[FlushRequest] = None) -> Dict[str, Any]:
    """Flush buffered telemetry to the collector.

    Raises:
        HTTPException: 503 if tracing is disabled, 502 if the flush failed
            and ``throw_on_error`` was requested
    """
    tracer = get_tracer()
    if not tracer.is_available():
        raise HTTPException(status_code=503, detail="Tracing is not available")

    request = request or FlushRequest()
    try:
        outcome = await tracer.flush(RetryPolicy(**request.model_dump(exclude_none=True)))
    except FlushException as e:
        logger.error(f"Operator flush failed after {e.attempts} attempts: {e.error}")
        raise HTTPException(status_code=502, detail=f"Flush failed after {e.attempts} attempts: {e.error}")

    if outcome is None:
        return {"flushed": False, "attempts": 0, "error": "Tracing is not available"}
    return {
        "flushed": outcome.succeeded,
        "attempts": outcome.attempts,
        "error": outcome.error_message,
    }
