from typing import Any, Dict, Set
import asyncio

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
import structlog

from one_agent.application.api.schema.events import ChatRequest
from one_agent.domain.models.agent_state import TurnRequest
from one_agent.domain.orchestration.core.main_agent import AgentOrchestrator, INTERNAL_ERROR_MESSAGE
from one_agent.domain.streaming.streaming_handler import QueueSink

router = APIRouter()
logger = structlog.get_logger(__name__)

# Turns outlive the response that started them
_running_turns: Set[asyncio.Task] = set()


async def parse_chat_request(request: Request) -> ChatRequest:
    """Merge query parameters with an optional JSON body (body wins)"""

    data: Dict[str, Any] = dict(request.query_params)
    if request.method == "POST":
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            data.update(body)

    try:
        return ChatRequest.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def run_turn(orchestrator: AgentOrchestrator, turn: TurnRequest, sink: QueueSink):
    try:
        await orchestrator.handle_turn(turn, sink)
    except Exception as e:
        logger.exception("Turn crashed", session_id=turn.session_id, error=str(e))
        await sink.emit_error(INTERNAL_ERROR_MESSAGE)


@router.api_route("/chat", methods=["GET", "POST"])
async def chat(request: Request):
    """Run one turn and stream it back as server-sent events"""

    chat_request = await parse_chat_request(request)
    if not chat_request.user_input:
        raise HTTPException(status_code=400, detail="user_input is required")

    turn = TurnRequest(
        session_id=chat_request.session_id,
        user_input=chat_request.user_input,
        display_name=chat_request.user_name
    )
    logger.info("Chat request", session_id=turn.session_id)

    sink = QueueSink()
    task = asyncio.create_task(run_turn(request.app.state.orchestrator, turn, sink))
    _running_turns.add(task)
    task.add_done_callback(_running_turns.discard)

    async def event_stream():
        async for event in sink.events():
            yield event.to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
    )
