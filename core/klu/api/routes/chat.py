"""Chat API routes."""

import json

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from klu.api.deps import get_runtime, http_error
from klu.api.schemas import (
    MessageResponse,
    SendMessageRequest,
    SessionStateResponse,
    StopResponse,
    TurnResponse,
)
from klu.engine.runtime import KluRuntime
from klu.engine.session import ConversationSession, TurnState
from klu.errors import KluError
from klu.utils.logging import logger

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/threads/{thread_id}", response_model=list[MessageResponse])
async def get_thread(
    thread_id: str, runtime: KluRuntime = Depends(get_runtime)
) -> list[MessageResponse]:
    """Messages stored for a thread, oldest first."""
    return [MessageResponse.from_message(m) for m in runtime.store.history(thread_id)]


@router.post("/{session_id}", response_model=TurnResponse)
async def send_message(
    session_id: str,
    request: SendMessageRequest,
    runtime: KluRuntime = Depends(get_runtime),
) -> TurnResponse:
    """
    Send a message and wait for the turn to finish.
    Use the events endpoint to follow progress while it runs.
    """
    logger.info(f"Received message for {session_id}: {request.message[:50]}...")
    session = runtime.session(session_id)
    thread_id = request.thread_id or session_id

    try:
        outcome = await session.send(request.message, thread_id)
    except KluError as e:
        raise http_error(e)

    if outcome is None:
        return TurnResponse(session_id=session_id, thread_id=thread_id, state=TurnState.IDLE.value)

    return TurnResponse(
        session_id=session_id,
        thread_id=thread_id,
        state=outcome.state.value,
        message=MessageResponse.from_message(outcome.message) if outcome.message else None,
        thinking_time=outcome.thinking_time,
        tool_rounds=outcome.tool_rounds,
    )


@router.post("/{session_id}/stop", response_model=StopResponse)
async def stop_generation(
    session_id: str, runtime: KluRuntime = Depends(get_runtime)
) -> StopResponse:
    """Cancel the session's running turn, if any."""
    session = _existing_session(runtime, session_id)
    return StopResponse(session_id=session_id, stopped=session.stop())


@router.get("/{session_id}/state", response_model=SessionStateResponse)
async def get_state(
    session_id: str, runtime: KluRuntime = Depends(get_runtime)
) -> SessionStateResponse:
    """Observable session state."""
    session = _existing_session(runtime, session_id)
    return SessionStateResponse(
        session_id=session_id,
        state=session.state.value,
        is_thinking=session.is_thinking,
        is_generating=session.is_generating,
        thinking_time=session.thinking_time,
    )


@router.get("/{session_id}/events")
async def stream_events(session_id: str, runtime: KluRuntime = Depends(get_runtime)):
    """Session events as SSE."""
    session = runtime.session(session_id)
    return StreamingResponse(_event_stream(session), media_type="text/event-stream")


async def _event_stream(session: ConversationSession):
    async for event in session.events.listen():
        yield f"data: {json.dumps(event.to_dict())}\n\n"


def _existing_session(runtime: KluRuntime, session_id: str) -> ConversationSession:
    if session_id not in runtime.sessions:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return runtime.sessions[session_id]
