"""
Scheduled notification tasks.

Every task follows the same shape: select candidate rows, dispatch the
notifications for a row, flag the row. The notifications and the flag for
one row are committed together, so a row is either flagged with its
notifications stored or left untouched for the next run.

Tasks never raise. The first failure rolls back the row in flight, stops
the batch and is reported on the returned TaskResult.
"""
import math
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import select, func, or_, delete, distinct
from sqlalchemy.orm import aliased

from careerhub.models.ai_chat import ChatMessage, ChatUserPreference, Conversation, conversation_tags
from careerhub.models.company import Company
from careerhub.models.job import Job, SavedJob, JobView, JobApplication
from careerhub.models.meeting import Meeting
from careerhub.models.notification import Notification
from careerhub.models.registration import Registration
from careerhub.models.student import Student, PROFILE_FIELDS
from careerhub.models.user import User, ROLE_ADMIN, ROLE_STUDENT
from careerhub.services.notification_service import NotificationService
from careerhub.services.notification_triggers import NotificationTriggers
from careerhub.utils.clock import utcnow
from careerhub.utils.logger import get_logger
from careerhub.utils import metrics

logger = get_logger("tasks")

EXPIRING_WINDOW = timedelta(days=3)
DEADLINE_WINDOW = timedelta(days=2)
MEETING_REMINDER_WINDOW = timedelta(hours=24)
REMINDER_INTERVAL = timedelta(days=7)


@dataclass
class TaskResult:
    task: str
    selected: int = 0
    processed: int = 0
    notifications: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return asdict(self)


def days_until(end: datetime, now: datetime) -> int:
    return math.ceil((end - now).total_seconds() / 86400)


class TaskRunner:
    def __init__(
        self,
        session_factory,
        triggers: Optional[NotificationTriggers] = None,
        clock: Callable[[], datetime] = utcnow,
        notification_service: Optional[NotificationService] = None,
    ):
        self.session_factory = session_factory
        self.notifications = notification_service or NotificationService()
        self.triggers = triggers or NotificationTriggers(self.notifications)
        self.clock = clock

    @asynccontextmanager
    async def _run(self, result: TaskResult):
        """Log, time and contain one task run."""
        start = time.monotonic()
        logger.info("task.started", extra={"task": result.task})
        try:
            yield result
        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            metrics.inc(f"tasks.{result.task}.error")
            logger.error(
                "task.failed",
                extra={"task": result.task, "processed": result.processed, "error": result.error},
                exc_info=True,
            )
        else:
            metrics.inc(f"tasks.{result.task}.success")
            logger.info(
                "task.completed",
                extra={
                    "task": result.task,
                    "selected": result.selected,
                    "processed": result.processed,
                    "notifications": result.notifications,
                },
            )
        finally:
            metrics.observe(f"tasks.{result.task}.duration_ms", (time.monotonic() - start) * 1000)
            metrics.inc("notifications.sent", result.notifications)

    async def _commit_row(self, db, result: TaskResult, created: List[Notification]) -> None:
        """Commit one row's notifications and flag, then push them."""
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        result.processed += 1
        result.notifications += len(created)
        await self.notifications.publish(created)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def check_expiring_jobs(self) -> TaskResult:
        """Warn companies about active postings ending within three days."""
        result = TaskResult("expiringJobs")
        async with self._run(result), self.session_factory() as db:
            now = self.clock()
            rows = (await db.execute(
                select(Job, Company)
                .join(Company, Job.company_id == Company.id)
                .where(
                    Job.status == "active",
                    Job.end_date.between(now, now + EXPIRING_WINDOW),
                    Job.notified_expiring == False,  # noqa: E712
                )
                .order_by(Job.id)
            )).all()
            result.selected = len(rows)

            for job, company in rows:
                try:
                    days_left = days_until(job.end_date, now)
                    created = await self.triggers.job_posting_expiring(db, job, company.user_id, days_left)
                    job.notified_expiring = True
                except Exception:
                    await db.rollback()
                    raise
                await self._commit_row(db, result, created)
                logger.debug("task.job_expiring", extra={"job_id": job.id, "days_left": days_left})
        return result

    async def send_application_deadline_reminders(self) -> TaskResult:
        """Remind users who saved a job that its deadline is within two days."""
        result = TaskResult("deadlineReminders")
        async with self._run(result), self.session_factory() as db:
            now = self.clock()
            rows = (await db.execute(
                select(Job, Company)
                .join(Company, Job.company_id == Company.id)
                .where(
                    Job.status == "active",
                    Job.end_date.between(now, now + DEADLINE_WINDOW),
                    Job.notified_deadline == False,  # noqa: E712
                )
                .order_by(Job.id)
            )).all()
            result.selected = len(rows)

            for job, company in rows:
                try:
                    user_ids = (await db.execute(
                        select(distinct(SavedJob.user_id))
                        .where(SavedJob.job_id == job.id)
                        .order_by(SavedJob.user_id)
                    )).scalars().all()
                    if not user_ids:
                        # Left unflagged so a later save still gets reminded
                        logger.debug("task.deadline_no_savers", extra={"job_id": job.id})
                        continue

                    created = await self.triggers.job_application_deadline(
                        db, job, company.company_name, user_ids, days_until(job.end_date, now)
                    )
                    job.notified_deadline = True
                except Exception:
                    await db.rollback()
                    raise
                await self._commit_row(db, result, created)
        return result

    async def send_job_posting_stats(self) -> TaskResult:
        """Weekly view and application counts for each active posting."""
        result = TaskResult("jobStats")
        async with self._run(result), self.session_factory() as db:
            now = self.clock()
            rows = (await db.execute(
                select(Job, Company)
                .join(Company, Job.company_id == Company.id)
                .where(
                    Job.status == "active",
                    or_(Job.last_stats_sent.is_(None), Job.last_stats_sent < now - REMINDER_INTERVAL),
                )
                .order_by(Job.id)
            )).all()
            result.selected = len(rows)

            for job, company in rows:
                try:
                    view_count = await db.scalar(
                        select(func.count()).select_from(JobView).where(JobView.job_id == job.id)
                    )
                    application_count = await db.scalar(
                        select(func.count()).select_from(JobApplication).where(JobApplication.job_id == job.id)
                    )
                    created = await self.triggers.job_posting_stats(
                        db, job, company.user_id, view_count or 0, application_count or 0
                    )
                    job.last_stats_sent = now
                except Exception:
                    await db.rollback()
                    raise
                await self._commit_row(db, result, created)
        return result

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def check_incomplete_profiles(self) -> TaskResult:
        result = TaskResult("incompleteProfiles")
        async with self._run(result), self.session_factory() as db:
            now = self.clock()
            columns = [getattr(Student, attr) for attr in PROFILE_FIELDS.values()]
            rows = (await db.execute(
                select(Student, User)
                .join(User, Student.user_id == User.id)
                .where(
                    User.role_id == ROLE_STUDENT,
                    or_(*[or_(column.is_(None), column == "") for column in columns]),
                    or_(
                        Student.last_profile_reminder.is_(None),
                        Student.last_profile_reminder < now - REMINDER_INTERVAL,
                    ),
                )
                .order_by(Student.id)
            )).all()
            result.selected = len(rows)

            for student, user in rows:
                try:
                    created = await self.triggers.profile_incomplete(
                        db,
                        user.id,
                        "Student",
                        student.completion_percentage(),
                        student.missing_fields(),
                    )
                    student.last_profile_reminder = now
                except Exception:
                    await db.rollback()
                    raise
                await self._commit_row(db, result, created)
        return result

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    def _meeting_query(self):
        requestor = aliased(User)
        recipient = aliased(User)
        return (
            select(Meeting, requestor, recipient)
            .join(requestor, Meeting.requestor_id == requestor.id)
            .join(recipient, Meeting.recipient_id == recipient.id)
            .order_by(Meeting.id)
        )

    async def send_meeting_reminders(self) -> TaskResult:
        """Remind both parties of accepted meetings starting in the next 24 hours."""
        result = TaskResult("meetingReminders")
        async with self._run(result), self.session_factory() as db:
            now = self.clock()
            until = now + MEETING_REMINDER_WINDOW
            rows = (await db.execute(
                self._meeting_query().where(
                    Meeting.status == "accepted",
                    Meeting.reminder_sent == False,  # noqa: E712
                    Meeting.meeting_date.between(now.date(), until.date()),
                )
            )).all()
            rows = [row for row in rows if now <= row[0].starts_at <= until]
            result.selected = len(rows)

            for meeting, requestor, recipient in rows:
                try:
                    created = await self.triggers.meeting_reminder(db, meeting, requestor, recipient)
                    meeting.reminder_sent = True
                except Exception:
                    await db.rollback()
                    raise
                await self._commit_row(db, result, created)
        return result

    async def send_meeting_feedback_requests(self) -> TaskResult:
        result = TaskResult("feedbackRequests")
        async with self._run(result), self.session_factory() as db:
            now = self.clock()
            rows = (await db.execute(
                self._meeting_query().where(
                    Meeting.status == "completed",
                    Meeting.feedback_request_sent == False,  # noqa: E712
                    Meeting.meeting_date <= now.date(),
                )
            )).all()
            result.selected = len(rows)

            for meeting, requestor, recipient in rows:
                try:
                    created = await self.triggers.meeting_feedback_request(db, meeting, requestor, recipient)
                    meeting.feedback_request_sent = True
                except Exception:
                    await db.rollback()
                    raise
                await self._commit_row(db, result, created)
        return result

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def _has_unread_pending_notice(self, db, admin_id: int, count: int) -> bool:
        notices = (await db.execute(
            select(Notification.meta).where(
                Notification.user_id == admin_id,
                Notification.notification_type == "PENDING_REGISTRATIONS",
                Notification.is_read == False,  # noqa: E712
            )
        )).scalars().all()
        return any((meta or {}).get("count") == count for meta in notices)

    async def check_pending_registrations(self) -> TaskResult:
        """Tell every admin how many registrations wait for review."""
        result = TaskResult("pendingRegistrations")
        async with self._run(result), self.session_factory() as db:
            count = await db.scalar(
                select(func.count()).select_from(Registration).where(Registration.status == "pending")
            ) or 0
            if count == 0:
                return result

            admins = (await db.execute(
                select(User.id).where(User.role_id == ROLE_ADMIN).order_by(User.id)
            )).scalars().all()
            result.selected = len(admins)

            for admin_id in admins:
                try:
                    if await self._has_unread_pending_notice(db, admin_id, count):
                        continue
                    created = await self.triggers.pending_registrations(db, admin_id, count)
                except Exception:
                    await db.rollback()
                    raise
                await self._commit_row(db, result, created)
        return result

    # ------------------------------------------------------------------
    # AI chat retention
    # ------------------------------------------------------------------

    async def purge_expired_conversations(self) -> TaskResult:
        """Delete conversations idle longer than the owner's auto-delete setting."""
        result = TaskResult("chatCleanup")
        async with self._run(result), self.session_factory() as db:
            now = self.clock()
            prefs = (await db.execute(
                select(ChatUserPreference.user_id, ChatUserPreference.auto_delete_days)
                .where(ChatUserPreference.auto_delete_days > 0)
                .order_by(ChatUserPreference.user_id)
            )).all()
            result.selected = len(prefs)

            for user_id, days in prefs:
                try:
                    expired = (await db.execute(
                        select(Conversation.id).where(
                            Conversation.user_id == user_id,
                            Conversation.updated_at < now - timedelta(days=days),
                        )
                    )).scalars().all()
                    if not expired:
                        continue

                    await db.execute(delete(ChatMessage).where(ChatMessage.conversation_id.in_(expired)))
                    await db.execute(
                        delete(conversation_tags).where(conversation_tags.c.conversation_id.in_(expired))
                    )
                    await db.execute(delete(Conversation).where(Conversation.id.in_(expired)))
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
                result.processed += 1
                logger.info("task.conversations_purged", extra={"user_id": user_id, "deleted": len(expired)})
        return result

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    async def run_all_daily_tasks(self) -> List[TaskResult]:
        return [
            await self.check_expiring_jobs(),
            await self.send_application_deadline_reminders(),
            await self.check_incomplete_profiles(),
            await self.send_meeting_feedback_requests(),
            await self.check_pending_registrations(),
            await self.purge_expired_conversations(),
        ]

    async def run_all_weekly_tasks(self) -> List[TaskResult]:
        return [
            await self.send_job_posting_stats(),
            await self.send_meeting_reminders(),
        ]
