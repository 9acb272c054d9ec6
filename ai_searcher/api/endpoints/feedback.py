# ai_searcher/api/endpoints/feedback.py
from fastapi import APIRouter, Depends, Path
import logging

from ai_searcher.core.pipeline import SearchOrchestrator
from ai_searcher.models.requests import FeedbackRequest, ResultActionRequest, SessionFeedbackRequest
from ai_searcher.models.responses import (
    ActionResponse, ErrorResponse, LearningMetricsResponse, PreferencesResponse
)
from ai_searcher.api.dependencies import get_orchestrator, rate_limit

router = APIRouter()
logger = logging.getLogger(__name__)

USER_ID_PATH = Path(..., min_length=1, max_length=255)

@router.post(
    "/results/action",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Record what the user did with a search result"
)
async def record_result_action(
    request: ResultActionRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    return await orchestrator.record_result_action(request)

@router.post(
    "/feedback",
    response_model=ActionResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Rate a search result"
)
async def submit_feedback(
    request: FeedbackRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    return await orchestrator.record_feedback(request)

@router.post(
    "/feedback/session",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Rate a whole search session"
)
async def submit_session_feedback(
    request: SessionFeedbackRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    return await orchestrator.record_session_feedback(request)

@router.get("/learning/{user_id}/metrics", response_model=LearningMetricsResponse)
async def learning_metrics(
    user_id: str = USER_ID_PATH,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator)
):
    metrics = await orchestrator.get_learning_metrics(user_id)
    return LearningMetricsResponse(user_id=user_id, metrics=metrics)

@router.get("/learning/{user_id}/preferences", response_model=PreferencesResponse)
async def learning_preferences(
    user_id: str = USER_ID_PATH,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator)
):
    pattern, filters = await orchestrator.get_preferences(user_id)
    return PreferencesResponse(user_id=user_id, preferences=pattern, adaptive_filters=filters)

@router.delete(
    "/learning/{user_id}",
    response_model=ActionResponse,
    responses={503: {"model": ErrorResponse}}
)
async def clear_learning_data(
    user_id: str = USER_ID_PATH,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator)
):
    removed = await orchestrator.clear_learning_data(user_id)
    logger.info(f"Cleared {removed} learning records for user {user_id}")
    return ActionResponse(success=True, message=f"Learning data cleared ({removed} records)")
