"""
Background worker running the notification scheduler.

Usage:
    python -m implant_notify.worker

Runs the digest batcher every minute and the daily clinical sweeps. Run
exactly one worker per deployment.
"""

import asyncio
import logging

from implant_notify.core.config import settings
from implant_notify.core.structured_logging import build_log_context
from implant_notify.jobs.scheduler import NotificationScheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


async def worker_loop() -> None:
    """Run the scheduler until cancelled."""
    logger.info(
        "Worker starting (interval: %ss, env: %s)",
        settings.SCHEDULER_INTERVAL_SECONDS,
        settings.ENV,
    )
    scheduler = NotificationScheduler()
    await scheduler.run_forever()


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception("Worker crashed", extra=build_log_context(job="worker"))
        raise


if __name__ == "__main__":
    main()
