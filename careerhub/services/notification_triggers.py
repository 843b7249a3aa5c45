"""
Notification triggers used by the scheduled tasks.

Each trigger renders the template for one event and adds the resulting
notifications to the caller's session. It returns the notifications it
created (suppressed recipients are left out) and never commits.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional, Iterable

from careerhub.models.job import Job
from careerhub.models.meeting import Meeting
from careerhub.models.notification import Notification
from careerhub.models.user import User, meeting_role_name
from careerhub.services.notification_service import NotificationService


def format_meeting_date(meeting: Meeting) -> str:
    # "June 5, 2025"
    d = meeting.meeting_date
    return f"{d.strftime('%B')} {d.day}, {d.year}"


def _meeting_metadata(meeting: Meeting) -> dict:
    return {
        "meetingID": meeting.id,
        "meetingDate": meeting.meeting_date.isoformat(),
        "startTime": meeting.start_time.strftime("%H:%M"),
        "endTime": meeting.end_time.strftime("%H:%M"),
    }


class NotificationTriggers:
    def __init__(self, notification_service: Optional[NotificationService] = None):
        self.notifications = notification_service or NotificationService()

    async def _send(self, db, user_id, notification_type, role, replacements, related=None) -> List[Notification]:
        notification = await self.notifications.create_from_template(
            db, user_id, notification_type, role, replacements, related
        )
        return [notification] if notification else []

    async def job_posting_expiring(
        self, db: AsyncSession, job: Job, company_user_id: int, days_left: int
    ) -> List[Notification]:
        return await self._send(
            db,
            company_user_id,
            "JOB_POSTING_EXPIRING",
            "Company",
            {"jobTitle": job.title, "daysLeft": days_left},
            {"related_job_id": job.id, "metadata": {"jobID": job.id, "daysLeft": days_left}},
        )

    async def job_application_deadline(
        self,
        db: AsyncSession,
        job: Job,
        company_name: str,
        user_ids: Iterable[int],
        days_left: int,
    ) -> List[Notification]:
        created = []
        for user_id in user_ids:
            created += await self._send(
                db,
                user_id,
                "JOB_APPLICATION_DEADLINE",
                "Student",
                {"jobTitle": job.title, "companyName": company_name, "daysLeft": days_left},
                {"related_job_id": job.id, "metadata": {"jobID": job.id, "daysLeft": days_left}},
            )
        return created

    async def job_posting_stats(
        self,
        db: AsyncSession,
        job: Job,
        company_user_id: int,
        view_count: int,
        application_count: int,
    ) -> List[Notification]:
        return await self._send(
            db,
            company_user_id,
            "JOB_POSTING_STATS",
            "Company",
            {"jobTitle": job.title, "viewCount": view_count, "applicationCount": application_count},
            {
                "related_job_id": job.id,
                "metadata": {"viewCount": view_count, "applicationCount": application_count},
            },
        )

    async def profile_incomplete(
        self,
        db: AsyncSession,
        user_id: int,
        role: str,
        completion_percentage: int,
        missing_fields: List[str],
    ) -> List[Notification]:
        return await self._send(
            db,
            user_id,
            "PROFILE_INCOMPLETE",
            role,
            {"completionPercentage": completion_percentage, "missingFields": ", ".join(missing_fields)},
            {
                "related_profile_id": user_id,
                "metadata": {"completionPercentage": completion_percentage, "missingFields": missing_fields},
            },
        )

    async def _meeting_pair(
        self,
        db: AsyncSession,
        notification_type: str,
        meeting: Meeting,
        requestor: User,
        recipient: User,
        replacements: dict,
    ) -> List[Notification]:
        created = []
        for user, other in ((requestor, recipient), (recipient, requestor)):
            created += await self._send(
                db,
                user.id,
                notification_type,
                meeting_role_name(user.role_id),
                {**replacements, "user": other.username},
                {"related_user_id": other.id, "metadata": _meeting_metadata(meeting)},
            )
        return created

    async def meeting_reminder(
        self, db: AsyncSession, meeting: Meeting, requestor: User, recipient: User
    ) -> List[Notification]:
        """Remind both parties, each naming the other."""
        return await self._meeting_pair(
            db,
            "MEETING_REMINDER",
            meeting,
            requestor,
            recipient,
            {"date": format_meeting_date(meeting), "time": meeting.time_range},
        )

    async def meeting_feedback_request(
        self, db: AsyncSession, meeting: Meeting, requestor: User, recipient: User
    ) -> List[Notification]:
        return await self._meeting_pair(db, "MEETING_FEEDBACK_REQUEST", meeting, requestor, recipient, {})

    async def pending_registrations(self, db: AsyncSession, admin_id: int, count: int) -> List[Notification]:
        return await self._send(
            db,
            admin_id,
            "PENDING_REGISTRATIONS",
            "Admin",
            {"count": count},
            {"metadata": {"count": count}},
        )
