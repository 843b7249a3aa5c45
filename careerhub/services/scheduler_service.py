"""
Cron schedule for the notification tasks.

Wraps an APScheduler AsyncIOScheduler. Only one process should run it:
the API when SCHEDULER_ENABLED=true, or the standalone worker.
"""
import asyncio
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from careerhub.services.scheduled_tasks import TaskRunner, TaskResult
from careerhub.utils.logger import get_logger

logger = get_logger("scheduler")

# job id, crontab, task name
CRON_JOBS = [
    ("daily", "0 0 * * *", "daily"),
    ("weekly", "0 0 * * 0", "weekly"),
    ("deadlineCheck", "0 */6 * * *", "deadlineReminders"),
    ("expirationCheck", "0 */12 * * *", "expiringJobs"),
    ("pendingRegistrationsCheck", "0 */2 * * *", "pendingRegistrations"),
]

_CRON_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun"]


class UnknownTaskError(Exception):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown task: {name}")


class SchedulerNotInitializedError(Exception):
    def __init__(self):
        super().__init__("Scheduler service not initialized")


def cron_trigger(expression: str) -> CronTrigger:
    """Five-field crontab, where day of week 0 and 7 mean Sunday."""
    minute, hour, day, month, day_of_week = expression.split()
    if day_of_week.isdigit():
        day_of_week = _CRON_WEEKDAYS[int(day_of_week)]
    return CronTrigger(
        minute=minute, hour=hour, day=day, month=month, day_of_week=day_of_week, timezone="UTC"
    )


class SchedulerService:
    def __init__(self, session_factory=None):
        self.session_factory = session_factory
        self.tasks: Optional[TaskRunner] = None
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.initialized = False
        self._lock: Optional[asyncio.Lock] = None

    def initialize(self, runner: Optional[TaskRunner] = None) -> None:
        """Build the task runner and register the cron jobs. Safe to call twice."""
        if self.initialized:
            return

        if runner is None:
            from careerhub.database import get_session_factory
            runner = TaskRunner(self.session_factory or get_session_factory())
        self.tasks = runner
        # Bound to the loop that initializes the scheduler
        self._lock = asyncio.Lock()

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        for job_id, expression, task_name in CRON_JOBS:
            self.scheduler.add_job(
                self._run_scheduled,
                cron_trigger(expression),
                args=[task_name],
                id=job_id,
                name=task_name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        self.initialized = True
        logger.info("scheduler.initialized", extra={"jobs": len(CRON_JOBS)})

    def start(self) -> None:
        """Start firing jobs. Needs a running event loop."""
        self.initialize()
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("scheduler.started")

    def _task_table(self) -> Dict[str, callable]:
        tasks = self.tasks
        return {
            "daily": tasks.run_all_daily_tasks,
            "weekly": tasks.run_all_weekly_tasks,
            "deadlineReminders": tasks.send_application_deadline_reminders,
            "expiringJobs": tasks.check_expiring_jobs,
            "incompleteProfiles": tasks.check_incomplete_profiles,
            "jobStats": tasks.send_job_posting_stats,
            "pendingRegistrations": tasks.check_pending_registrations,
            "meetingReminders": tasks.send_meeting_reminders,
            "feedbackRequests": tasks.send_meeting_feedback_requests,
            "chatCleanup": tasks.purge_expired_conversations,
        }

    def task_names(self) -> List[str]:
        if not self.initialized:
            raise SchedulerNotInitializedError()
        return list(self._task_table())

    async def run_task(self, name: str) -> List[TaskResult]:
        """
        Run one task (or bundle) by name and return its results.

        Runs are serialized, so a manual trigger waits for a cron run in
        progress and overlapping cron firings never interleave.
        """
        if not self.initialized:
            raise SchedulerNotInitializedError()

        task = self._task_table().get(name)
        if task is None:
            raise UnknownTaskError(name)

        async with self._lock:
            logger.info("scheduler.run_task", extra={"task_name": name})
            result = await task()

        return result if isinstance(result, list) else [result]

    async def _run_scheduled(self, name: str) -> None:
        results = await self.run_task(name)
        failed = [r.task for r in results if r.error]
        if failed:
            logger.warning("scheduler.run_failed", extra={"task_name": name, "failed": failed})

    def list_jobs(self) -> List[dict]:
        if not self.initialized:
            raise SchedulerNotInitializedError()

        crons = {job_id: expression for job_id, expression, _ in CRON_JOBS}
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "task": job.name,
                "cron": crons.get(job.id),
                "nextRunTime": next_run.isoformat() if next_run else None,
            })
        return jobs

    def shutdown(self) -> None:
        """Cancel every job and stop the scheduler."""
        if not self.initialized:
            return

        self.scheduler.remove_all_jobs()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        self.scheduler = None
        self.tasks = None
        self._lock = None
        self.initialized = False
        logger.info("scheduler.shutdown")


scheduler_service = SchedulerService()
