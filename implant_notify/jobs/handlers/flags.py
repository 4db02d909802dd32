"""Flag detection job handler."""

from __future__ import annotations

import logging

from implant_notify.services import flag_service

logger = logging.getLogger(__name__)


async def process_flag_detection(db, job) -> None:
    logger.info("Processing flag detection job %s", job.id)
    summary = flag_service.run_detection(db, now=job.now)
    if summary.failed_orgs:
        logger.warning(
            "Flag detection job %s finished with %d failed organizations",
            job.id,
            len(summary.failed_orgs),
        )
