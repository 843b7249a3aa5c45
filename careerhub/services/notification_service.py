"""
Template-based notifications and the per-user notification inbox.

create_* methods only add rows to the given session; the caller commits.
That lets the scheduled tasks write notifications and flip a notified flag
in one transaction.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from typing import Optional, Dict, Any, List, Iterable

from careerhub.models.notification import Notification, NotificationTemplate
from careerhub.services.notification_category_service import NotificationCategoryService
from careerhub.services.redis_client import publish_notification
from careerhub.utils.logger import get_logger
from careerhub.utils import metrics

logger = get_logger("notifications")


# (notification_type, role) -> (title, message, priority)
DEFAULT_TEMPLATES: Dict[tuple, tuple] = {
    ("JOB_POSTING_EXPIRING", "Company"): (
        "Job Posting Expiring Soon",
        'Your job posting "{{jobTitle}}" will expire in {{daysLeft}} days.',
        "high",
    ),
    ("JOB_APPLICATION_DEADLINE", "Student"): (
        "Application Deadline Approaching",
        'The application deadline for "{{jobTitle}}" at {{companyName}} is in {{daysLeft}} days.',
        "high",
    ),
    ("JOB_POSTING_STATS", "Company"): (
        "Weekly Job Posting Statistics",
        'Your job posting "{{jobTitle}}" has received {{viewCount}} views and {{applicationCount}} applications.',
        "low",
    ),
    ("PROFILE_INCOMPLETE", "Student"): (
        "Complete Your Profile",
        "Your profile is {{completionPercentage}}% complete. Missing: {{missingFields}}.",
        "medium",
    ),
    ("PROFILE_INCOMPLETE", "Counselor"): (
        "Complete Your Profile",
        "Your profile is {{completionPercentage}}% complete. Missing: {{missingFields}}.",
        "medium",
    ),
    ("PROFILE_INCOMPLETE", "Company"): (
        "Complete Your Company Profile",
        "Your company profile is {{completionPercentage}}% complete. Missing: {{missingFields}}.",
        "medium",
    ),
    ("PENDING_REGISTRATIONS", "Admin"): (
        "Pending Registrations",
        "There are {{count}} registrations waiting for review.",
        "high",
    ),
}

for _role in ("Student", "Counselor", "Company"):
    DEFAULT_TEMPLATES[("MEETING_REMINDER", _role)] = (
        "Upcoming Meeting Reminder",
        "You have a meeting with {{user}} on {{date}} at {{time}}.",
        "high",
    )
    DEFAULT_TEMPLATES[("MEETING_FEEDBACK_REQUEST", _role)] = (
        "How Was Your Meeting?",
        "Please share feedback about your meeting with {{user}}.",
        "medium",
    )

# Columns the inbox may be sorted by
_SORT_COLUMNS = {
    "createdAt": Notification.created_at,
    "priority": Notification.priority,
    "isRead": Notification.is_read,
}


class TemplateNotFoundError(Exception):
    """Raised when neither the database nor the defaults define a template."""

    def __init__(self, notification_type: str, role: str):
        self.notification_type = notification_type
        self.role = role
        super().__init__(f"Template not found for type {notification_type} and role {role}")


def render_template(template: str, replacements: Dict[str, Any]) -> str:
    for key, value in replacements.items():
        template = template.replace("{{" + key + "}}", str(value))
    return template


class NotificationService:
    def __init__(self, category_service: Optional[NotificationCategoryService] = None):
        self.category_service = category_service or NotificationCategoryService()

    async def create_notification(
        self,
        db: AsyncSession,
        *,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        related_user_id: Optional[int] = None,
        related_job_id: Optional[int] = None,
        related_application_id: Optional[int] = None,
        related_profile_id: Optional[int] = None,
        related_message_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        target_user_role: Optional[str] = None,
        priority: str = "medium",
        expires_at=None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            related_user_id=related_user_id,
            related_job_id=related_job_id,
            related_application_id=related_application_id,
            related_profile_id=related_profile_id,
            related_message_id=related_message_id,
            meta=metadata,
            target_user_role=target_user_role,
            priority=priority,
            expires_at=expires_at,
        )
        db.add(notification)
        await db.flush()
        metrics.inc(f"notifications.created.{notification_type}")
        return notification

    async def get_template(self, db: AsyncSession, notification_type: str, role: str) -> tuple:
        """Return (title, message, priority), preferring the database copy."""
        result = await db.execute(
            select(NotificationTemplate).where(
                NotificationTemplate.notification_type == notification_type,
                NotificationTemplate.target_user_role == role,
            )
        )
        template = result.scalars().first()
        if template:
            return template.title_template, template.message_template, template.default_priority

        default = DEFAULT_TEMPLATES.get((notification_type, role))
        if default is None:
            raise TemplateNotFoundError(notification_type, role)
        return default

    async def create_from_template(
        self,
        db: AsyncSession,
        user_id: int,
        notification_type: str,
        user_role: str,
        replacements: Optional[Dict[str, Any]] = None,
        related: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """
        Render the (type, role) template and add the notification.

        Returns None when the recipient has switched the category off.
        """
        if not await self.category_service.should_send_notification(db, user_id, notification_type):
            logger.info(
                "notification.suppressed",
                extra={"user_id": user_id, "notification_type": notification_type},
            )
            return None

        title, message, priority = await self.get_template(db, notification_type, user_role)
        replacements = replacements or {}

        return await self.create_notification(
            db,
            user_id=user_id,
            notification_type=notification_type,
            title=render_template(title, replacements),
            message=render_template(message, replacements),
            target_user_role=user_role,
            priority=priority,
            **(related or {}),
        )

    async def publish(self, notifications: Iterable[Notification]) -> int:
        """Push committed notifications to the realtime channel. Never raises."""
        pushed = 0
        for notification in notifications:
            try:
                if await publish_notification(notification.user_id, notification.to_dict()):
                    pushed += 1
            except Exception as exc:
                logger.warning(
                    "notification.push_failed",
                    extra={"notification_id": notification.id, "error": str(exc)[:200]},
                )
        return pushed

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    async def get_user_notifications(
        self,
        db: AsyncSession,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False,
        sort_by: str = "createdAt",
        sort_order: str = "DESC",
    ) -> List[Notification]:
        column = _SORT_COLUMNS.get(sort_by, Notification.created_at)
        if sort_order.upper() == "ASC":
            order = (column.asc(), Notification.id.asc())
        else:
            order = (column.desc(), Notification.id.desc())

        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        query = query.order_by(*order).limit(limit).offset(offset)

        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_unread_count(self, db: AsyncSession, user_id: int) -> int:
        count = await db.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
        )
        return int(count or 0)

    async def mark_as_read(self, db: AsyncSession, user_id: int, notification_ids: List[int]) -> bool:
        if not notification_ids:
            return False
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.id.in_(notification_ids))
            .values(is_read=True)
        )
        await db.commit()
        return result.rowcount > 0

    async def mark_all_as_read(self, db: AsyncSession, user_id: int) -> bool:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True)
        )
        await db.commit()
        return result.rowcount > 0

    async def delete_notifications(self, db: AsyncSession, user_id: int, notification_ids: List[int]) -> bool:
        if not notification_ids:
            return False
        result = await db.execute(
            delete(Notification).where(
                Notification.user_id == user_id,
                Notification.id.in_(notification_ids),
            )
        )
        await db.commit()
        return result.rowcount > 0
