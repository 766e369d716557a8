"""Chat streaming, model listing and health endpoints."""

import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from clark import __version__
from clark.api.dependencies import get_services
from clark.models.conversation import ChatRequest, ErrorLinesRequest, HealthResponse
from clark.models.data_parts import ReportErrorsData
from clark.models.events import serialize_event
from clark.models.llm import ModelInfo
from clark.services.chat import COMMUNICATION_ERROR, Turn
from clark.services.container import ServiceContainer
from clark.services.message_conversion import InvalidMessageError
from clark.services.model_adapter import UnsupportedModelError
from clark.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(payload: str) -> str:
    return f"data: {payload}\n\n"


async def stream_turn(turn: Turn) -> AsyncIterator[str]:
    """Server-sent events for a turn, ending with ``[DONE]``.

    If the client goes away before the stream completes, the turn is aborted.
    """
    try:
        async for event in turn.events():
            yield format_sse(json.dumps(serialize_event(event)))
        yield format_sse("[DONE]")
    finally:
        if not turn.writer.closed:
            logger.info(f"Client disconnected from turn {turn.message_id}")
            turn.cancel()


@router.post("/chat", tags=["Chat"])
async def chat(request: ChatRequest, services: ServiceContainer = Depends(get_services)) -> StreamingResponse:
    """Run one agent turn and stream its events."""
    logger.info(f"Chat request for conversation {request.conversation_id} with {len(request.messages)} messages")

    try:
        turn = await services.chat.start_turn(request)
    except UnsupportedModelError as e:
        raise HTTPException(status_code=400, detail=f"Model {e.model_id} not found.") from e
    except InvalidMessageError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return StreamingResponse(stream_turn(turn), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/errors", response_model=ReportErrorsData, response_model_exclude_none=True, tags=["Chat"])
async def report_errors(
    request: ErrorLinesRequest, services: ServiceContainer = Depends(get_services)
) -> ReportErrorsData:
    """Summarize the errors in a running app's logs for a follow-up fix turn."""
    try:
        return await services.error_reporter.report(request.lines)
    except Exception as e:
        logger.error(f"Error report synthesis failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=COMMUNICATION_ERROR) from e


@router.get("/models", response_model=list[ModelInfo], tags=["Models"])
async def list_models(services: ServiceContainer = Depends(get_services)) -> list[ModelInfo]:
    return services.model_adapter.list_available_models()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
