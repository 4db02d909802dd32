"""Digest job handler."""

from __future__ import annotations

import logging

from implant_notify.services import digest_service

logger = logging.getLogger(__name__)


async def process_digest(db, job) -> None:
    """Send the digests due at the job's minute."""
    summary = await digest_service.run_digest(db, now=job.now, email_sender=job.email_sender)
    if summary.processed:
        logger.info(
            "Digest job %s: processed=%d sent=%d", job.id, summary.processed, summary.sent
        )
