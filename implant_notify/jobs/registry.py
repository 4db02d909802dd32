"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from implant_notify.db.enums import JobType
from implant_notify.jobs.handlers import digests, flags, isq_sweep

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.DIGEST.value: digests.process_digest,
    JobType.FLAG_DETECTION.value: flags.process_flag_detection,
    JobType.ISQ_FOLLOWUP_SWEEP.value: isq_sweep.process_isq_followup_sweep,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
