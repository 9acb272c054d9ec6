# ai_searcher/api/endpoints/health.py
from fastapi import APIRouter, Depends
import time
import logging

from ai_searcher.core.pipeline import SearchOrchestrator
from ai_searcher.models.responses import HealthResponse
from ai_searcher.api.dependencies import get_orchestrator
from ai_searcher.database.connection import check_database_health

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check endpoint"""
    return HealthResponse(
        status="healthy",
        services={"api": "healthy"},
        response_time_ms=0.0
    )

@router.get("/health/detailed", response_model=HealthResponse)
async def detailed_health_check(orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
    """Health of every pipeline component plus the database"""
    start_time = time.time()

    try:
        health_status = await orchestrator.health_check()
        health_status["database"] = await check_database_health()
        health_status["scholar_rate_limit"] = orchestrator.get_rate_limit_status()

        return HealthResponse(
            status=health_status.get("overall", "unknown"),
            services=health_status,
            response_time_ms=round((time.time() - start_time) * 1000, 2)
        )

    except Exception as e:
        logger.error(f"Health check error: {e}", exc_info=True)
        return HealthResponse(
            status="unhealthy",
            services={"error": str(e)},
            response_time_ms=round((time.time() - start_time) * 1000, 2)
        )
