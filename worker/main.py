"""Worker entry point.

Usage: python -m worker.main  (or the `clinic-worker` console script)

Exits with status 1 when Redis is unavailable at startup. Otherwise runs
until SIGTERM/SIGINT, letting the in-flight job finish before exiting.
"""

import asyncio
import logging
import signal
import sys
from typing import NoReturn

from clinic_jobs.alerts import get_admin_alerter
from clinic_jobs.config import get_settings
from clinic_jobs.core.dispatcher import Dispatcher
from clinic_jobs.core.handlers import JobHandlers
from clinic_jobs.integrations.cliniko import get_cliniko_client
from clinic_jobs.integrations.sms import get_sms_client
from clinic_jobs.log_config import setup_logging
from clinic_jobs.queue.job_queue import JobQueue
from clinic_jobs.storage.redis import redis_storage
from worker.loop import DispatchLoop, LoopConfig

logger = logging.getLogger(__name__)


async def main() -> int:
    """Check Redis, then run the dispatch loop.

    Returns:
        Process exit status
    """
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Worker started")
    logger.info("Checking Redis connection...")

    await redis_storage.connect()
    queue = JobQueue(settings.queue_name)
    sms_client = get_sms_client()
    cliniko_client = get_cliniko_client()
    alerter = None

    try:
        alerter = get_admin_alerter(settings)
        if not await queue.is_available():
            logger.critical(
                "Redis is not available. Worker cannot start. "
                "Make sure USE_REDIS=true in your .env and Redis is running."
            )
            return 1

        logger.info("Redis connected successfully. Waiting for jobs...")
        logger.info(
            f"Retry configuration: max_retries={queue.get_max_retries()}, base_delay={queue.get_retry_delay()}s"
        )

        dispatcher = Dispatcher(JobHandlers(sms_client, cliniko_client))
        loop = DispatchLoop(queue, dispatcher, LoopConfig.from_settings(settings), alerter=alerter)

        event_loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            event_loop.add_signal_handler(sig, loop.stop)

        await loop.run()
        return 0
    finally:
        await sms_client.close()
        await cliniko_client.close()
        if alerter is not None:
            await alerter.close()
        await redis_storage.disconnect()


def run() -> NoReturn:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
