"""
In-process scheduler for the notification jobs.

Every tick runs the digest batcher for the current minute; once a day, at
``daily_hour``, it also runs the implant follow-up sweep and the flag detector.
Ticks are fired on their own tasks so a slow digest never delays the timer;
an overlapping digest run is skipped, never queued. Ticks that are missed
(paused process, clock jumps) are not caught up.

Only one scheduler may run per deployment: the re-entrancy guard is in-process.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import date, datetime
from typing import Callable

from implant_notify.core.config import settings
from implant_notify.core.structured_logging import build_log_context
from implant_notify.db.enums import JobType
from implant_notify.jobs.context import ScheduledJob
from implant_notify.jobs.registry import resolve_job_handler
from implant_notify.services.email_sender import EmailSender, get_email_sender
from implant_notify.utils.datetime_parsing import local_now

logger = logging.getLogger(__name__)

DAILY_JOBS = (JobType.ISQ_FOLLOWUP_SWEEP, JobType.FLAG_DETECTION)


class NotificationScheduler:
    def __init__(
        self,
        session_factory: Callable | None = None,
        email_sender: EmailSender | None = None,
        *,
        interval_seconds: int | None = None,
        daily_hour: int | None = None,
        clock: Callable[[], datetime] = local_now,
    ):
        if session_factory is None:
            from implant_notify.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._email_sender = email_sender or get_email_sender()
        self._interval = interval_seconds or settings.SCHEDULER_INTERVAL_SECONDS
        self._daily_hour = settings.DAILY_JOBS_HOUR if daily_hour is None else daily_hour
        self._clock = clock

        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._tick_tasks: set[asyncio.Task] = set()
        self._digest_running = False
        self._last_daily_run: date | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def digest_running(self) -> bool:
        return self._digest_running

    def start(self) -> None:
        """Start the timer task. Must be called from a running event loop."""
        if self.is_running:
            logger.info("Notification scheduler already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Notification scheduler started (interval: %ss, daily jobs at %02d:00)",
            self._interval,
            self._daily_hour,
        )

    async def stop(self) -> None:
        """Stop future ticks. In-flight ticks are allowed to finish. Safe to call twice."""
        if not self.is_running:
            self._task = None
            return
        self._stop_event.set()
        task, self._task = self._task, None
        with contextlib.suppress(asyncio.CancelledError):
            await task
        if self._tick_tasks:
            await asyncio.gather(*self._tick_tasks, return_exceptions=True)
        logger.info("Notification scheduler stopped")

    async def run_forever(self) -> None:
        """Start and block until the scheduler is stopped or cancelled."""
        self.start()
        try:
            await self._task
        finally:
            await self.stop()

    def _seconds_until_next_tick(self, now: datetime) -> float:
        # Aligned to interval boundaries so the minute check does not drift
        return self._interval - (now.timestamp() % self._interval)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            tick_task = asyncio.create_task(self.tick(self._clock()))
            self._tick_tasks.add(tick_task)
            tick_task.add_done_callback(self._tick_tasks.discard)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._seconds_until_next_tick(self._clock()),
                )

    async def tick(self, now: datetime | None = None) -> None:
        """Run whatever is due at ``now``. Never raises for job failures."""
        now = now or self._clock()
        await self.run_digest(now)

        if now.hour == self._daily_hour and self._last_daily_run != now.date():
            self._last_daily_run = now.date()
            for job_type in DAILY_JOBS:
                await self.run_job(job_type, now)

    async def run_digest(self, now: datetime) -> bool:
        """Run the digest batcher unless a previous run is still in flight."""
        if self._digest_running:
            logger.info("Digest run still in progress, skipping tick at %s", now.strftime("%H:%M"))
            return False
        self._digest_running = True
        try:
            return await self.run_job(JobType.DIGEST, now)
        finally:
            self._digest_running = False

    async def run_job(self, job_type: JobType | str, now: datetime) -> bool:
        """Resolve and run one job in its own session. Returns False if it failed."""
        job_type = job_type.value if isinstance(job_type, JobType) else job_type
        job = ScheduledJob(job_type=job_type, now=now, email_sender=self._email_sender)
        try:
            handler = resolve_job_handler(job_type)
            with self._session_factory() as db:
                await handler(db, job)
        except Exception:
            logger.exception(
                "Scheduled job %s (%s) failed",
                job.id,
                job_type,
                extra=build_log_context(job=job_type),
            )
            return False
        return True
