from __future__ import annotations

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from citesearch.api.deps import OrchestratorFactory, get_orchestrator_factory
from citesearch.models.events import encode_event
from citesearch.models.schemas import ErrorResponse, SearchRequest
from citesearch.services import logger as log_service

router = APIRouter(prefix="/api/search", tags=["search"])


@router.post(
    "",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def search(
    request: SearchRequest,
    orchestrator_factory: OrchestratorFactory = Depends(get_orchestrator_factory),
):
    """Search the web and stream a cited answer as ``data: <JSON>`` events."""
    history = request.conversation_history or []
    log_service.log_event(
        event_type="search_started",
        message="Search turn started",
        query=request.query[:100],
        history_turns=len(history),
    )

    orchestrator = orchestrator_factory()
    # Setup failures (search errors, no results) raise here and are rendered
    # as JSON error responses before any event is sent.
    turn = await orchestrator.prepare(request.query, history)

    async def event_generator():
        async for event in orchestrator.stream(turn):
            yield {"data": encode_event(event)}

    return EventSourceResponse(event_generator(), sep="\n")
