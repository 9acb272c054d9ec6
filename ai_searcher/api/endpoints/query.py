# ai_searcher/api/endpoints/query.py
from fastapi import APIRouter, Depends
import time
import logging

from ai_searcher.core.pipeline import SearchOrchestrator
from ai_searcher.models.requests import (
    CombineQueriesRequest, ExtractContentRequest, GenerateQueryRequest,
    RefineQueryRequest, ValidateQueryRequest
)
from ai_searcher.models.responses import (
    CombineQueriesResponse, ErrorResponse, ExtractContentResponse, GenerateQueryResponse,
    RefineQueryResponse, ValidateQueryResponse
)
from ai_searcher.api.dependencies import get_orchestrator, rate_limit

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post(
    "/generate-query",
    response_model=GenerateQueryResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    summary="Generate scholar queries from content"
)
async def generate_query(
    request: GenerateQueryRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    response = await orchestrator.generate_query(request)
    logger.info(f"Generated {len(response.queries)} queries for conversation {request.conversation_id}")
    return response

@router.post(
    "/validate-query",
    response_model=ValidateQueryResponse,
    summary="Check boolean query syntax"
)
async def validate_query(
    request: ValidateQueryRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    return ValidateQueryResponse(validation=orchestrator.validate_query(request.query))

@router.post(
    "/combine-queries",
    response_model=CombineQueriesResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Combine several queries into one broader query"
)
async def combine_queries(
    request: CombineQueriesRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    return CombineQueriesResponse(combined_query=orchestrator.combine_queries(request.queries))

@router.post(
    "/refine-query",
    response_model=RefineQueryResponse,
    summary="Analyse a query and suggest refinements"
)
async def refine_query(
    request: RefineQueryRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    start_time = time.time()
    refinement = orchestrator.refine_query(request)
    return RefineQueryResponse(
        refinement=refinement,
        processing_time=round(time.time() - start_time, 3)
    )

@router.post(
    "/extract-content",
    response_model=ExtractContentResponse,
    summary="Extract keywords and topics from an idea or builder document"
)
async def extract_content(
    request: ExtractContentRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    _: None = Depends(rate_limit)
):
    content = await orchestrator.extract_content(request)
    return ExtractContentResponse(extracted_content=content)
