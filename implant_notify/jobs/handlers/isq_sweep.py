"""Implant follow-up sweep job handler."""

from __future__ import annotations

import logging

from implant_notify.services import isq_sweep_service

logger = logging.getLogger(__name__)


async def process_isq_followup_sweep(db, job) -> None:
    logger.info("Processing follow-up sweep job %s", job.id)
    await isq_sweep_service.run_isq_followup_sweep(
        db, now=job.now, email_sender=job.email_sender
    )
