"""Admin operations for the scheduled notification tasks"""

from fastapi import APIRouter, Depends, HTTPException

from careerhub.middleware.auth import require_admin, TokenUser
from careerhub.services.scheduler_service import (
    scheduler_service,
    SchedulerService,
    UnknownTaskError,
    SchedulerNotInitializedError,
)
from careerhub.utils.logger import get_logger

router = APIRouter()
logger = get_logger("routes.scheduler")


def get_scheduler() -> SchedulerService:
    return scheduler_service


@router.post("/run/{task}")
async def run_task(
    task: str,
    admin: TokenUser = Depends(require_admin),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Run a task by name, e.g. 'daily' or 'deadlineReminders'."""
    # Manual runs work even when the cron schedule is off in this process
    scheduler.initialize()
    try:
        results = await scheduler.run_task(task)
    except UnknownTaskError:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown task '{task}'. Available: {', '.join(scheduler.task_names())}",
        )
    except SchedulerNotInitializedError as e:
        raise HTTPException(status_code=503, detail=str(e))

    logger.info("scheduler.manual_run", extra={"task_name": task, "admin_id": admin.id})
    return {
        "success": all(r.ok for r in results),
        "task": task,
        "results": [r.to_dict() for r in results],
    }


@router.get("/jobs")
async def list_jobs(
    admin: TokenUser = Depends(require_admin),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    if not scheduler.initialized:
        return {"running": False, "jobs": []}
    return {"running": bool(scheduler.scheduler and scheduler.scheduler.running), "jobs": scheduler.list_jobs()}
