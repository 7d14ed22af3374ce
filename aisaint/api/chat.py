"""Chat API: processMessage and listHistory."""

import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request

from aisaint.core.auth import get_caller_identity
from aisaint.core.logging import get_request_id
from aisaint.core.tracing import start_span
from aisaint.models.chat import ChatReply, ChatRequest
from aisaint.models.conversation import ConversationSummary

router = APIRouter(prefix="/v1/chat", tags=["chat"])


async def _read_json_object(request: Request) -> Dict[str, Any]:
    """Decode the body without validating it.

    Anything that is not a JSON object reads as {}, so the service reports
    unauthenticated or validation_error in the usual envelope.
    """
    raw = await request.body()
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


@router.post(
    "/messages",
    response_model=ChatReply,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": ChatRequest.model_json_schema(by_alias=True)}},
        }
    },
)
async def process_message_endpoint(
    request: Request,
    user_id: Optional[str] = Depends(get_caller_identity),
):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    payload = await _read_json_object(request)
    chat_service = request.app.state.chat_service

    with start_span("api.process_message", {"request_id": rid, "user_id": user_id}):
        result = await chat_service.process_message(
            user_id, payload.get("message"), payload.get("conversationId")
        )
    return result.reply


@router.get("/history", response_model=List[ConversationSummary])
async def list_history_endpoint(
    request: Request,
    user_id: Optional[str] = Depends(get_caller_identity),
):
    history_service = request.app.state.history_service
    return await history_service.list(user_id)
