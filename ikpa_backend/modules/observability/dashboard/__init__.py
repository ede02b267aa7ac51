"""Dashboard module: operator endpoints for the tracing layer.

Example:
    from fastapi import FastAPI
    from ikpa_backend.modules.observability.dashboard import tracing_router

    app = FastAPI()
    app.include_router(tracing_router, prefix="/api")

    # Endpoints:
    # GET  /api/observability/tracing/status
    # GET  /api/observability/tracing/sampling
    # PUT  /api/observability/tracing/sampling/rate
    # PUT  /api/observability/tracing/sampling/rules
    # POST /api/observability/tracing/flush
"""

from .tracing_api import router as tracing_router

__all__ = [
    "tracing_router",
]
