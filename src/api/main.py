"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers.product_sync import get_product_sync_service
from src.api.routers.product_sync import router as product_sync_router


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    yield


app = FastAPI(
    title="Product Sync API",
    version="0.1.0",
    description=(
        "Reconciles upstream product summaries with their allocation trees and stores the "
        "result as one atomic snapshot.\n\n"
        "Products missing from either source collection, or failing validation, are skipped "
        "and logged; they never abort a sync."
    ),
    openapi_tags=[
        {
            "name": "Product Sync",
            "description": "Full-replace sync from the upstream source and stored read-back.",
        },
        {
            "name": "Health",
            "description": "Service status, liveness and readiness probes.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
logger = logging.getLogger(__name__)

app.include_router(product_sync_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Health"], summary="Service Status")
def health() -> dict[str, str]:
    return {"status": "running"}


@app.get("/health/live", tags=["Health"], summary="Liveness Probe")
def health_live() -> dict[str, str]:
    return {"status": "live"}


@app.get("/health/ready", tags=["Health"], summary="Readiness Probe")
def health_ready() -> dict[str, str]:
    get_product_sync_service()
    return {"status": "ready"}
