"""
Standalone scheduler process.

Runs the notification cron jobs outside the API so that only one process
fires them (separate service): python -m careerhub.worker

The API should then keep SCHEDULER_ENABLED unset.
"""
import asyncio
import signal

from careerhub.database import init_db
from careerhub.services.redis_client import init_redis, close_redis
from careerhub.services.scheduler_service import scheduler_service, SchedulerService
from careerhub.utils.logger import logger


async def run_worker(stop_event: asyncio.Event, service: SchedulerService = scheduler_service) -> None:
    """Start the scheduler and keep it running until stop_event is set."""
    service.start()
    logger.info("worker.started", extra={"jobs": len(service.list_jobs())})
    try:
        await stop_event.wait()
    finally:
        service.shutdown()
        logger.info("worker.stopped")


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass


async def main() -> None:
    """Run worker as standalone process."""
    await init_db()
    await init_redis()

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    try:
        await run_worker(stop_event)
    finally:
        await close_redis()


if __name__ == "__main__":
    asyncio.run(main())
