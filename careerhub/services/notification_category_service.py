"""
Category based notification preferences.

Users toggle whole categories (JOBS, MEETINGS, ...). Per-type preferences
are a view derived from the category rows.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, List, Optional

from careerhub.models.notification import NotificationCategoryPreference
from careerhub.utils.logger import get_logger

logger = get_logger("notifications.preferences")

CATEGORIES: Dict[str, List[str]] = {
    "JOBS": [
        "NEW_JOB_POSTING",
        "JOB_APPLICATION_UPDATE",
        "JOB_APPLICATION_DEADLINE",
        "JOB_POSTING_EXPIRING",
        "JOB_POSTING_STATS",
        "NEW_JOB_APPLICATION",
        "STUDENT_JOB_APPLICATION",
        "JOB_POSTING_REVIEW",
    ],
    "PROFILE": [
        "PROFILE_VIEW",
        "PROFILE_INCOMPLETE",
        "PROFILE_UPDATE",
        "RECOMMENDED_PROFILE",
        "STUDENT_PROFILE_UPDATE",
    ],
    "MESSAGES": [
        "NEW_MESSAGE",
        "UNREAD_MESSAGES",
        "GUIDANCE_REQUEST",
    ],
    "MEETINGS": [
        "MEETING_REQUESTED",
        "MEETING_ACCEPTED",
        "MEETING_DECLINED",
        "MEETING_REMINDER",
        "MEETING_FEEDBACK_REQUEST",
    ],
    "SYSTEM": [
        "SECURITY_ALERT",
        "SYSTEM_UPDATE",
        "PLATFORM_ANNOUNCEMENT",
        "ACCOUNT_NOTIFICATION",
        "USER_ACCOUNT_ISSUE",
    ],
    "ADMIN": [
        "NEW_USER_REGISTRATION",
        "VERIFICATION_REQUEST",
        "REPORTED_CONTENT",
        "SYSTEM_HEALTH_ALERT",
        "PERFORMANCE_METRIC",
        "SUPPORT_REQUEST",
        "PENDING_REGISTRATIONS",
    ],
}

TYPE_TO_CATEGORY: Dict[str, str] = {
    notification_type: category
    for category, types in CATEGORIES.items()
    for notification_type in types
}

PREFERENCE_FIELDS = ("is_enabled", "email_enabled", "push_enabled")


class UnknownCategoryError(ValueError):
    pass


def get_category(notification_type: str) -> str:
    return TYPE_TO_CATEGORY.get(notification_type, "SYSTEM")


class NotificationCategoryService:

    async def _load(self, db: AsyncSession, user_id: int) -> Dict[str, NotificationCategoryPreference]:
        result = await db.execute(
            select(NotificationCategoryPreference).where(NotificationCategoryPreference.user_id == user_id)
        )
        return {pref.category: pref for pref in result.scalars().all()}

    async def initialize_default_preferences(self, db: AsyncSession, user_id: int) -> None:
        existing = await self._load(db, user_id)
        for category in CATEGORIES:
            if category not in existing:
                db.add(NotificationCategoryPreference(user_id=user_id, category=category))
        await db.commit()
        logger.info("preferences.initialized", extra={"user_id": user_id})

    async def get_category_preferences(self, db: AsyncSession, user_id: int) -> List[NotificationCategoryPreference]:
        """Category rows for the user, creating the all-enabled defaults on first access."""
        prefs = await self._load(db, user_id)
        if len(prefs) < len(CATEGORIES):
            await self.initialize_default_preferences(db, user_id)
            prefs = await self._load(db, user_id)
        return [prefs[c] for c in CATEGORIES if c in prefs]

    async def get_user_preferences(self, db: AsyncSession, user_id: int) -> List[dict]:
        """One entry per notification type, inherited from its category."""
        prefs = {p.category: p for p in await self.get_category_preferences(db, user_id)}

        expanded = []
        for category, types in CATEGORIES.items():
            pref = prefs.get(category)
            for notification_type in types:
                expanded.append({
                    "notificationType": notification_type,
                    "category": category,
                    "isEnabled": bool(pref.is_enabled) if pref else True,
                    "emailEnabled": bool(pref.email_enabled) if pref else True,
                    "pushEnabled": bool(pref.push_enabled) if pref else True,
                })
        return expanded

    async def update_category_preference(
        self,
        db: AsyncSession,
        user_id: int,
        category: str,
        is_enabled: Optional[bool] = None,
        email_enabled: Optional[bool] = None,
        push_enabled: Optional[bool] = None,
    ) -> NotificationCategoryPreference:
        """Upsert one category row; fields left as None keep their value."""
        if category not in CATEGORIES:
            raise UnknownCategoryError(f"Unknown notification category: {category}")

        result = await db.execute(
            select(NotificationCategoryPreference).where(
                NotificationCategoryPreference.user_id == user_id,
                NotificationCategoryPreference.category == category,
            )
        )
        pref = result.scalars().first()
        if pref is None:
            pref = NotificationCategoryPreference(
                user_id=user_id,
                category=category,
                is_enabled=True,
                email_enabled=True,
                push_enabled=True,
            )
            db.add(pref)

        changes = {"is_enabled": is_enabled, "email_enabled": email_enabled, "push_enabled": push_enabled}
        for field in PREFERENCE_FIELDS:
            if changes[field] is not None:
                setattr(pref, field, bool(changes[field]))

        await db.commit()
        await db.refresh(pref)
        logger.info(
            "preferences.updated",
            extra={"user_id": user_id, "category": category, "enabled": bool(pref.is_enabled)},
        )
        return pref

    async def update_preference(
        self,
        db: AsyncSession,
        user_id: int,
        notification_type: str,
        **changes,
    ) -> NotificationCategoryPreference:
        """Per-type update; applies to the type's whole category."""
        return await self.update_category_preference(db, user_id, get_category(notification_type), **changes)

    async def should_send_notification(self, db: AsyncSession, user_id: int, notification_type: str) -> bool:
        category = get_category(notification_type)
        try:
            result = await db.execute(
                select(NotificationCategoryPreference.is_enabled).where(
                    NotificationCategoryPreference.user_id == user_id,
                    NotificationCategoryPreference.category == category,
                )
            )
            enabled = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning(
                "preferences.lookup_failed",
                extra={"user_id": user_id, "category": category, "error": str(e)[:200]},
            )
            return True

        return True if enabled is None else bool(enabled)
