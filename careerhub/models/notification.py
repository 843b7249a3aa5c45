from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, ForeignKey, UniqueConstraint
from careerhub.database import Base
from careerhub.utils.clock import utcnow


class Notification(Base):
    """
    In-app notification. Rows are written in the same transaction as the
    notified flag of whatever triggered them, then pushed to the client.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    related_user_id = Column(Integer, nullable=True)
    related_job_id = Column(Integer, nullable=True)
    related_application_id = Column(Integer, nullable=True)
    related_profile_id = Column(Integer, nullable=True)
    related_message_id = Column(Integer, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)

    target_user_role = Column(String(20), nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            "notificationID": self.id,
            "userID": self.user_id,
            "notificationType": self.notification_type,
            "title": self.title,
            "message": self.message,
            "relatedUserID": self.related_user_id,
            "relatedJobID": self.related_job_id,
            "relatedApplicationID": self.related_application_id,
            "relatedProfileID": self.related_profile_id,
            "relatedMessageID": self.related_message_id,
            "metadata": self.meta,
            "targetUserRole": self.target_user_role,
            "priority": self.priority,
            "isRead": bool(self.is_read),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"
    __table_args__ = (
        UniqueConstraint("notification_type", "target_user_role", name="uq_template_type_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    notification_type = Column(String(50), nullable=False)
    target_user_role = Column(String(20), nullable=False)
    title_template = Column(String(255), nullable=False)
    message_template = Column(Text, nullable=False)
    default_priority = Column(String(10), nullable=False, default="medium")


class NotificationCategoryPreference(Base):
    __tablename__ = "notification_category_preferences"
    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_category_pref_user_category"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String(20), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    push_enabled = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "userID": self.user_id,
            "category": self.category,
            "isEnabled": bool(self.is_enabled),
            "emailEnabled": bool(self.email_enabled),
            "pushEnabled": bool(self.push_enabled),
        }
