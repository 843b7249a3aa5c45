from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, ForeignKey, Table
from careerhub.database import Base
from careerhub.utils.clock import utcnow


conversation_tags = Table(
    "ai_chat_conversation_tags",
    Base.metadata,
    Column("conversation_id", Integer, ForeignKey("ai_chat_conversations.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("ai_chat_tags.id", ondelete="CASCADE"), primary_key=True),
)


class Conversation(Base):
    __tablename__ = "ai_chat_conversations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False, default="New Conversation")
    summary = Column(Text, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)

    def to_dict(self, last_message: str = None, message_count: int = None):
        data = {
            "conversationID": self.id,
            "userID": self.user_id,
            "title": self.title,
            "summary": self.summary,
            "isArchived": bool(self.is_archived),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if message_count is not None:
            data["lastMessage"] = last_message
            data["messageCount"] = message_count
        return data


class ChatMessage(Base):
    __tablename__ = "ai_chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(
        Integer, ForeignKey("ai_chat_conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content = Column(Text, nullable=False)
    is_user_message = Column(Boolean, nullable=False, default=False)
    is_rich_text = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            "messageID": self.id,
            "conversationID": self.conversation_id,
            "content": self.content,
            "isUserMessage": bool(self.is_user_message),
            "isRichText": bool(self.is_rich_text),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class ChatTag(Base):
    __tablename__ = "ai_chat_tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self):
        return {"tagID": self.id, "name": self.name}


class ChatUserPreference(Base):
    __tablename__ = "ai_chat_user_preferences"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    auto_delete_days = Column(Integer, nullable=True)
    default_summarize = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "userID": self.user_id,
            "autoDeleteDays": self.auto_delete_days,
            "defaultSummarize": bool(self.default_summarize),
        }


class ChatSearchHistory(Base):
    __tablename__ = "ai_chat_search_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    query = Column(String(255), nullable=False)
    timestamp = Column(DateTime, default=utcnow)
