"""AI chat history routes"""

import math
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from careerhub.database import get_db
from careerhub.middleware.auth import get_current_user, TokenUser
from careerhub.models.ai_chat import Conversation, ChatMessage
from careerhub.services import chat_history_service as history
from careerhub.utils.clock import utcnow
from careerhub.utils.logger import get_logger

router = APIRouter()
logger = get_logger("routes.chat_history")


class ConversationCreate(BaseModel):
    title: Optional[str] = None
    messages: List[dict] = []


class ConversationUpdate(BaseModel):
    title: Optional[str] = None
    summary: Optional[str] = None
    isArchived: Optional[bool] = None


class MessageCreate(BaseModel):
    content: str
    isUserMessage: bool = True
    isRichText: bool = False


class TagsUpdate(BaseModel):
    tags: List[str] = []


class PreferencesUpdate(BaseModel):
    autoDeleteDays: Optional[int] = None
    defaultSummarize: Optional[bool] = None


def pagination(total: int, page: int, limit: int) -> dict:
    return {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit) if total else 0}


async def _owned_or_404(db: AsyncSession, conversation_id: int, user: TokenUser) -> Conversation:
    conversation = await history.get_owned_conversation(db, conversation_id, user.id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


def _parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}, expected YYYY-MM-DD")


@router.post("/conversations", status_code=201)
async def create_conversation(
    body: ConversationCreate,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    title = (body.title or "").strip() or "New Conversation"
    conversation = Conversation(user_id=current_user.id, title=history.title_from_message(title))
    db.add(conversation)
    await db.flush()

    for entry in body.messages:
        db.add(ChatMessage(
            conversation_id=conversation.id,
            content=entry.get("content") or "",
            is_user_message=bool(entry.get("isUserMessage", entry.get("isUser"))),
            is_rich_text=bool(entry.get("isRichText")),
        ))
    await db.commit()

    logger.info("conversation.created", extra={"user_id": current_user.id, "conversation_id": conversation.id})
    return {"success": True, "conversation": conversation.to_dict()}


@router.get("/conversations")
async def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    archived: Optional[bool] = None,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items, total = await history.list_conversations(db, current_user.id, page, limit, archived)
    return {"conversations": items, "pagination": pagination(total, page, limit)}


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: int,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _owned_or_404(db, conversation_id, current_user)
    messages = await history.get_messages(db, conversation.id)
    tags = await history.get_tags(db, conversation.id)
    return {
        "conversation": {**conversation.to_dict(), "tags": tags},
        "messages": [m.to_dict() for m in messages],
    }


@router.put("/conversations/{conversation_id}")
async def update_conversation(
    conversation_id: int,
    body: ConversationUpdate,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _owned_or_404(db, conversation_id, current_user)

    if body.title is not None:
        if not body.title.strip():
            raise HTTPException(status_code=400, detail="Title cannot be empty")
        conversation.title = body.title.strip()[:255]
    if body.summary is not None:
        conversation.summary = body.summary
    if body.isArchived is not None:
        conversation.is_archived = body.isArchived
    conversation.updated_at = utcnow()

    await db.commit()
    return {"success": True, "conversation": conversation.to_dict()}


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: int,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _owned_or_404(db, conversation_id, current_user)
    await history.delete_conversation(db, conversation.id)
    logger.info("conversation.deleted", extra={"user_id": current_user.id, "conversation_id": conversation_id})
    return {"success": True}


@router.post("/conversations/{conversation_id}/messages", status_code=201)
async def add_message(
    conversation_id: int,
    body: MessageCreate,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _owned_or_404(db, conversation_id, current_user)
    if not body.content:
        raise HTTPException(status_code=400, detail="Message content is required")

    message = ChatMessage(
        conversation_id=conversation.id,
        content=body.content,
        is_user_message=body.isUserMessage,
        is_rich_text=body.isRichText,
    )
    db.add(message)
    await db.execute(
        update(Conversation).where(Conversation.id == conversation.id).values(updated_at=utcnow())
    )
    await db.commit()
    return {"success": True, "message": message.to_dict()}


@router.post("/conversations/{conversation_id}/tags")
async def manage_tags(
    conversation_id: int,
    body: TagsUpdate,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    conversation = await _owned_or_404(db, conversation_id, current_user)
    tags = await history.set_tags(db, conversation.id, body.tags)
    return {"success": True, "tags": tags}


@router.get("/search")
async def search(
    query: Optional[str] = None,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = (query or "").strip() or None
    start = _parse_date(startDate, "startDate")
    end = _parse_date(endDate, "endDate")
    if not query and not start and not end:
        raise HTTPException(status_code=400, detail="Search query or date range is required")

    if query:
        await history.log_search(db, current_user.id, query)

    items, total = await history.search_conversations(db, current_user.id, query, start, end, page, limit)
    return {"conversations": items, "pagination": pagination(total, page, limit)}


@router.get("/preferences")
async def get_preferences(
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await history.get_preferences(db, current_user.id)


@router.put("/preferences")
async def update_preferences(
    body: PreferencesUpdate,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if body.autoDeleteDays is not None and body.autoDeleteDays < 0:
        raise HTTPException(status_code=400, detail="autoDeleteDays must be null or a non-negative number")
    auto_delete_days = body.autoDeleteDays if "autoDeleteDays" in body.model_fields_set else history.UNSET
    prefs = await history.update_preferences(db, current_user.id, auto_delete_days, body.defaultSummarize)
    return {"success": True, "preferences": prefs}


@router.get("/analytics")
async def analytics(
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await history.get_analytics(db, current_user.id)
