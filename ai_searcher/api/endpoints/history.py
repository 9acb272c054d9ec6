# ai_searcher/api/endpoints/history.py
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
import logging
from typing import Optional

from ai_searcher.core.pipeline import SearchOrchestrator
from ai_searcher.core.exceptions import ValidationException
from ai_searcher.models.responses import (
    AnalyticsResponse, ErrorResponse, HistoryResponse, HistoryStatsResponse
)
from ai_searcher.api.dependencies import get_orchestrator, get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)

def resolve_user(user_id: Optional[str], current_user: Optional[str]) -> str:
    """Explicit userId wins over the caller identity"""
    resolved = user_id or current_user
    if not resolved:
        raise ValidationException("userId is required")
    return resolved

@router.get(
    "/history",
    response_model=HistoryResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Recent searches, newest first"
)
async def search_history(
    user_id: Optional[str] = Query(None, alias="userId", min_length=1, max_length=255),
    conversation_id: Optional[str] = Query(None, alias="conversationId", max_length=255),
    limit: int = Query(50, ge=1, le=500),
    current_user: Optional[str] = Depends(get_current_user),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator)
):
    user = resolve_user(user_id, current_user)
    history = await orchestrator.get_history(user, limit, conversation_id)
    return HistoryResponse(user_id=user, history=history, total=len(history))

@router.get(
    "/history/stats",
    response_model=HistoryStatsResponse,
    responses={503: {"model": ErrorResponse}}
)
async def search_history_stats(
    user_id: Optional[str] = Query(None, alias="userId", min_length=1, max_length=255),
    current_user: Optional[str] = Depends(get_current_user),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator)
):
    user = resolve_user(user_id, current_user)
    statistics = await orchestrator.get_history_statistics(user)
    return HistoryStatsResponse(user_id=user, statistics=statistics)

@router.get(
    "/history/export",
    responses={503: {"model": ErrorResponse}},
    summary="Download the full search history as JSON or CSV"
)
async def export_search_history(
    user_id: Optional[str] = Query(None, alias="userId", min_length=1, max_length=255),
    export_format: str = Query("json", alias="format", pattern="^(json|csv)$"),
    current_user: Optional[str] = Depends(get_current_user),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator)
):
    user = resolve_user(user_id, current_user)
    body, media_type = await orchestrator.export_history(user, export_format)
    logger.info(f"Exported search history for user {user} as {export_format}")
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="search-history.{export_format}"'}
    )

@router.get(
    "/analytics",
    response_model=AnalyticsResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Search success, conversion and satisfaction over a trailing window"
)
async def search_analytics(
    user_id: Optional[str] = Query(None, alias="userId", min_length=1, max_length=255),
    conversation_id: Optional[str] = Query(None, alias="conversationId", max_length=255),
    days: int = Query(30, ge=1, le=365),
    current_user: Optional[str] = Depends(get_current_user),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator)
):
    user = resolve_user(user_id, current_user)
    return await orchestrator.get_analytics(user, conversation_id, days)
