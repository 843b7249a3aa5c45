# Database models package
from careerhub.models.user import User
from careerhub.models.company import Company
from careerhub.models.student import Student
from careerhub.models.job import Job, SavedJob, JobView, JobApplication
from careerhub.models.meeting import Meeting
from careerhub.models.registration import Registration
from careerhub.models.notification import Notification, NotificationTemplate, NotificationCategoryPreference
from careerhub.models.ai_chat import (
    Conversation,
    ChatMessage,
    ChatTag,
    ChatUserPreference,
    ChatSearchHistory,
    conversation_tags,
)

__all__ = [
    "User",
    "Company",
    "Student",
    "Job",
    "SavedJob",
    "JobView",
    "JobApplication",
    "Meeting",
    "Registration",
    "Notification",
    "NotificationTemplate",
    "NotificationCategoryPreference",
    "Conversation",
    "ChatMessage",
    "ChatTag",
    "ChatUserPreference",
    "ChatSearchHistory",
    "conversation_tags",
]
