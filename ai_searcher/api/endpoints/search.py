# ai_searcher/api/endpoints/search.py
from fastapi import APIRouter, Depends, BackgroundTasks
import logging
from typing import Optional

from ai_searcher.core.pipeline import SearchOrchestrator
from ai_searcher.models.requests import SearchRequest
from ai_searcher.models.responses import SearchResponse, ErrorResponse
from ai_searcher.api.dependencies import get_orchestrator, get_current_user, get_request_id, rate_limit
from ai_searcher.core.exceptions import CustomHTTPException, PipelineException

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post(
    "/search",
    response_model=SearchResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        503: {"model": ErrorResponse}
    },
    summary="Search Google Scholar",
    description="Search with a query, or generate one from ideas/builder content, and rank the results."
)
async def search(
    request: SearchRequest,
    background_tasks: BackgroundTasks,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    current_user: Optional[str] = Depends(get_current_user),
    request_id: str = Depends(get_request_id),
    _: None = Depends(rate_limit)
):
    """
    Run the search pipeline.

    - **query**: boolean search expression; optional when content sources are given
    - **conversationId**: conversation the search belongs to
    - **contentSources**: ideas/builder records used to generate a query
    - **filters**: date range, authors, journals, citation bounds, result count and sort order
    """
    if request.user_id is None and current_user:
        request = request.model_copy(update={"user_id": current_user})

    try:
        response = await orchestrator.search(request, request_id=request_id)
    except CustomHTTPException:
        raise
    except PipelineException as e:
        logger.error(f"Pipeline error for conversation {request.conversation_id}: {e}",
                     extra={"request_id": request_id})
        raise CustomHTTPException(status_code=500, detail=str(e), error_code="PIPELINE_ERROR")

    background_tasks.add_task(
        log_search_request,
        query=response.query,
        user_id=request.user_id,
        result_count=response.total_results,
        response_time=response.processing_time,
        degraded=response.degraded
    )
    return response

@router.get("/search/rate-limit-status", summary="Scholar request budget")
async def rate_limit_status(orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
    return {"success": True, "rateLimit": orchestrator.get_rate_limit_status()}

async def log_search_request(
    query: str,
    user_id: Optional[str],
    result_count: int,
    response_time: float,
    degraded: bool
):
    """Background task to log search requests"""
    logger.info(
        f"Search completed - Query: '{query[:50]}', "
        f"User: {user_id}, Results: {result_count}, Time: {response_time:.2f}s, Degraded: {degraded}"
    )
