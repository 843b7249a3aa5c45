"""
AI chat transcript storage.

Usage:
    conversation_id = await save_conversation_and_messages(db, user_id, None, "hi", "Hello!", history)
    conversation = await get_owned_conversation(db, conversation_id, user_id)
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, update
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple

from careerhub.models.ai_chat import (
    Conversation,
    ChatMessage,
    ChatTag,
    ChatUserPreference,
    ChatSearchHistory,
    conversation_tags,
)
from careerhub.utils.clock import utcnow
from careerhub.utils.logger import logger

TITLE_MAX_LENGTH = 50

# Marks a preference the caller left out
UNSET = object()


def title_from_message(message: str) -> str:
    """First user message as the title, cut to 47 chars plus '...' when longer than 50."""
    if len(message) > TITLE_MAX_LENGTH:
        return message[:47] + "..."
    return message


async def get_owned_conversation(db: AsyncSession, conversation_id: int, user_id: int) -> Optional[Conversation]:
    result = await db.execute(
        select(Conversation).where(Conversation.id == conversation_id, Conversation.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def save_conversation_and_messages(
    db: AsyncSession,
    user_id: int,
    conversation_id: Optional[int],
    user_message: str,
    ai_response: str,
    history: Optional[List[dict]] = None,
) -> int:
    """
    Store one chat turn in a single transaction and return the conversation id.

    Without a conversation id a new conversation is created and the prior
    history copied into it first.
    """
    try:
        if conversation_id is None:
            conversation = Conversation(user_id=user_id, title=title_from_message(user_message))
            db.add(conversation)
            await db.flush()
            conversation_id = conversation.id

            for entry in history or []:
                db.add(ChatMessage(
                    conversation_id=conversation_id,
                    content=entry.get("content") or "",
                    is_user_message=bool(entry.get("isUser")),
                    is_rich_text=False,
                ))

        db.add(ChatMessage(conversation_id=conversation_id, content=user_message, is_user_message=True))
        db.add(ChatMessage(
            conversation_id=conversation_id,
            content=ai_response,
            is_user_message=False,
            is_rich_text=True,
        ))
        await db.execute(
            update(Conversation).where(Conversation.id == conversation_id).values(updated_at=utcnow())
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("chat.saved", extra={"user_id": user_id, "conversation_id": conversation_id})
    return conversation_id


async def list_conversations(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    archived: Optional[bool] = None,
) -> Tuple[List[dict], int]:
    """Conversations with their last message and message count, newest first."""
    filters = [Conversation.user_id == user_id]
    if archived is not None:
        filters.append(Conversation.is_archived == archived)

    total = await db.scalar(select(func.count()).select_from(Conversation).where(*filters)) or 0
    conversations = (await db.execute(
        select(Conversation)
        .where(*filters)
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )).scalars().all()

    items = []
    for conversation in conversations:
        count = await db.scalar(
            select(func.count()).select_from(ChatMessage).where(ChatMessage.conversation_id == conversation.id)
        )
        last = await db.scalar(
            select(ChatMessage.content)
            .where(ChatMessage.conversation_id == conversation.id)
            .order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc())
            .limit(1)
        )
        items.append(conversation.to_dict(last_message=last, message_count=count or 0))
    return items, total


async def get_messages(db: AsyncSession, conversation_id: int) -> List[ChatMessage]:
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.conversation_id == conversation_id)
        .order_by(ChatMessage.timestamp, ChatMessage.id)
    )
    return list(result.scalars().all())


async def get_tags(db: AsyncSession, conversation_id: int) -> List[str]:
    result = await db.execute(
        select(ChatTag.name)
        .join(conversation_tags, conversation_tags.c.tag_id == ChatTag.id)
        .where(conversation_tags.c.conversation_id == conversation_id)
        .order_by(ChatTag.name)
    )
    return list(result.scalars().all())


async def set_tags(db: AsyncSession, conversation_id: int, names: List[str]) -> List[str]:
    """Replace the conversation's tags, creating unknown tag names."""
    cleaned = []
    for name in names:
        name = (name or "").strip()[:50]
        if name and name not in cleaned:
            cleaned.append(name)

    await db.execute(delete(conversation_tags).where(conversation_tags.c.conversation_id == conversation_id))
    for name in cleaned:
        tag = (await db.execute(select(ChatTag).where(ChatTag.name == name))).scalar_one_or_none()
        if tag is None:
            tag = ChatTag(name=name)
            db.add(tag)
            await db.flush()
        await db.execute(conversation_tags.insert().values(conversation_id=conversation_id, tag_id=tag.id))

    await db.commit()
    return sorted(cleaned)


async def delete_conversation(db: AsyncSession, conversation_id: int) -> None:
    await db.execute(delete(ChatMessage).where(ChatMessage.conversation_id == conversation_id))
    await db.execute(delete(conversation_tags).where(conversation_tags.c.conversation_id == conversation_id))
    await db.execute(delete(Conversation).where(Conversation.id == conversation_id))
    await db.commit()


async def search_conversations(
    db: AsyncSession,
    user_id: int,
    query: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[dict], int]:
    """Match titles or message content, optionally inside a date range."""
    filters = [Conversation.user_id == user_id]
    if query:
        pattern = f"%{query}%"
        matching = select(ChatMessage.conversation_id).where(ChatMessage.content.ilike(pattern))
        filters.append(Conversation.title.ilike(pattern) | Conversation.id.in_(matching))
    if start_date:
        filters.append(Conversation.updated_at >= start_date)
    if end_date:
        filters.append(Conversation.updated_at < end_date + timedelta(days=1))

    total = await db.scalar(select(func.count()).select_from(Conversation).where(*filters)) or 0
    conversations = (await db.execute(
        select(Conversation)
        .where(*filters)
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )).scalars().all()
    return [c.to_dict() for c in conversations], total


async def log_search(db: AsyncSession, user_id: int, query: str) -> None:
    db.add(ChatSearchHistory(user_id=user_id, query=query[:255]))
    await db.commit()


async def get_preferences(db: AsyncSession, user_id: int) -> Dict[str, Any]:
    pref = await db.get(ChatUserPreference, user_id)
    if pref is None:
        return {"userID": user_id, "autoDeleteDays": None, "defaultSummarize": False}
    return pref.to_dict()


async def update_preferences(
    db: AsyncSession,
    user_id: int,
    auto_delete_days: Any = UNSET,
    default_summarize: Optional[bool] = None,
) -> Dict[str, Any]:
    """Only the fields passed are changed. None clears autoDeleteDays."""
    pref = await db.get(ChatUserPreference, user_id)
    if pref is None:
        pref = ChatUserPreference(user_id=user_id, default_summarize=False)
        db.add(pref)

    if auto_delete_days is not UNSET:
        pref.auto_delete_days = auto_delete_days
    if default_summarize is not None:
        pref.default_summarize = default_summarize

    await db.commit()
    return pref.to_dict()


def _month_key(value: datetime) -> str:
    return value.strftime("%Y-%m")


async def get_analytics(db: AsyncSession, user_id: int) -> Dict[str, Any]:
    """Totals, messages per month over the last six months, and the five busiest conversations."""
    total_conversations = await db.scalar(
        select(func.count()).select_from(Conversation).where(Conversation.user_id == user_id)
    ) or 0

    owned = select(Conversation.id).where(Conversation.user_id == user_id)
    total_messages = await db.scalar(
        select(func.count()).select_from(ChatMessage).where(ChatMessage.conversation_id.in_(owned))
    ) or 0

    # Month buckets computed here so every dialect gives the same keys
    since = (utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0) - timedelta(days=150)).replace(day=1)
    timestamps = (await db.execute(
        select(ChatMessage.timestamp).where(
            ChatMessage.conversation_id.in_(owned),
            ChatMessage.timestamp >= since,
        )
    )).scalars().all()
    per_month: Dict[str, int] = {}
    for ts in timestamps:
        per_month[_month_key(ts)] = per_month.get(_month_key(ts), 0) + 1

    message_count = func.count(ChatMessage.id).label("message_count")
    active = (await db.execute(
        select(Conversation.id, Conversation.title, message_count)
        .join(ChatMessage, ChatMessage.conversation_id == Conversation.id)
        .where(Conversation.user_id == user_id)
        .group_by(Conversation.id, Conversation.title)
        .order_by(message_count.desc(), Conversation.id)
        .limit(5)
    )).all()

    return {
        "totalConversations": total_conversations,
        "totalMessages": total_messages,
        "messagesByMonth": [{"month": month, "count": per_month[month]} for month in sorted(per_month)],
        "mostActiveConversations": [
            {"conversationID": cid, "title": title, "messageCount": count} for cid, title, count in active
        ],
    }
