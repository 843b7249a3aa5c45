"""AI chat assistant routes (JSON and server-sent events)"""

import json
from functools import lru_cache
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from typing import Optional, List, AsyncIterator

from careerhub.database import get_db, get_session_factory
from careerhub.middleware.auth import get_optional_user, TokenUser
from careerhub.services.ai_service import AIService
from careerhub.services.db_context_service import DbContextService
from careerhub.services import chat_history_service
from careerhub.utils.logger import get_logger
from careerhub.utils import metrics

# Rate limiter
from slowapi import Limiter
from slowapi.util import get_remote_address
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()
logger = get_logger("routes.ai_chat")

context_service = DbContextService()

SSE_DONE = "data: [DONE]\n\n"


@lru_cache()
def get_ai_service() -> AIService:
    return AIService()


class ChatRequest(BaseModel):
    message: Optional[str] = None
    history: List[dict] = []
    stream: bool = False
    provider: Optional[str] = None
    conversationID: Optional[int] = None


def sse_event(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _prepare(db: AsyncSession, user: Optional[TokenUser], body: ChatRequest):
    """Prompt context and the conversation id, if it belongs to the user."""
    if user is None:
        return None, None

    formatted = None
    try:
        context = await context_service.build_context(db, user.id, body.message)
        formatted = context_service.format_context_for_prompt(context) or None
    except Exception as e:
        # Chat goes on without context
        await db.rollback()
        logger.warning("chat.context_failed", extra={"user_id": user.id, "error": str(e)[:200]}, exc_info=True)

    conversation_id = None
    if body.conversationID is not None:
        try:
            conversation = await chat_history_service.get_owned_conversation(db, body.conversationID, user.id)
        except Exception as e:
            # Saved into a new conversation instead
            await db.rollback()
            conversation = None
            logger.warning(
                "chat.conversation_lookup_failed",
                extra={"user_id": user.id, "error": str(e)[:200]},
                exc_info=True,
            )
        if conversation:
            conversation_id = conversation.id
        else:
            logger.warning(
                "chat.conversation_not_owned",
                extra={"user_id": user.id, "conversation_id": body.conversationID},
            )
    return formatted, conversation_id


async def _persist(session_factory, user: TokenUser, conversation_id, body: ChatRequest, reply: str):
    """Save the turn after the reply completes. Failures are logged, never raised."""
    try:
        async with session_factory() as db:
            return await chat_history_service.save_conversation_and_messages(
                db, user.id, conversation_id, body.message, reply, body.history
            )
    except Exception as e:
        logger.error("chat.save_failed", extra={"user_id": user.id, "error": str(e)[:200]}, exc_info=True)
        return None


async def _event_stream(
    ai: AIService,
    body: ChatRequest,
    db_context: Optional[str],
    user: Optional[TokenUser],
    conversation_id: Optional[int],
    session_factory,
) -> AsyncIterator[str]:
    chunks = []
    try:
        async for content in ai.stream_message(body.message, body.history, body.provider, db_context):
            chunks.append(content)
            yield sse_event({"content": content})
    except Exception as e:
        metrics.inc("ai.stream.error")
        logger.error("chat.stream_failed", extra={"error": str(e)[:200]}, exc_info=True)
        yield sse_event({"error": "Streaming error occurred"})
        yield SSE_DONE
        return

    if user is not None:
        await _persist(session_factory, user, conversation_id, body, "".join(chunks))
    yield SSE_DONE


def _streaming_response(generator) -> StreamingResponse:
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/chat")
@limiter.limit("30/minute")
async def chat(
    request: Request,
    body: ChatRequest,
    user: Optional[TokenUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    ai: AIService = Depends(get_ai_service),
    session_factory=Depends(get_session_factory),
):
    if not body.message:
        raise HTTPException(status_code=400, detail="Message is required")

    db_context, conversation_id = await _prepare(db, user, body)

    if body.stream:
        return _streaming_response(
            _event_stream(ai, body, db_context, user, conversation_id, session_factory)
        )

    try:
        reply = await ai.send_message(body.message, body.history, body.provider, db_context)
    except Exception as e:
        logger.error("chat.failed", extra={"error": str(e)[:200]}, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get AI response")

    data = {"response": reply}
    if user is not None:
        saved_id = await _persist(session_factory, user, conversation_id, body, reply)
        if saved_id is not None:
            data["conversationID"] = saved_id
    return {"success": True, "data": data}


@router.post("/chat/stream")
@limiter.limit("30/minute")
async def chat_stream(
    request: Request,
    body: ChatRequest,
    user: Optional[TokenUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    ai: AIService = Depends(get_ai_service),
    session_factory=Depends(get_session_factory),
):
    if not body.message:
        raise HTTPException(status_code=400, detail="Message is required")

    db_context, conversation_id = await _prepare(db, user, body)
    return _streaming_response(
        _event_stream(ai, body, db_context, user, conversation_id, session_factory)
    )
