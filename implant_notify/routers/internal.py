"""
Internal endpoints for scheduled operations.

Protected by X-Internal-Secret header.
Call from an external cron when the in-process scheduler is not running.
"""

from uuid import UUID

from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel

from implant_notify.core.config import settings
from implant_notify.db.session import SessionLocal
from implant_notify.services import digest_service, flag_service, isq_sweep_service
from implant_notify.utils.datetime_parsing import local_now


router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


class DigestRunResponse(BaseModel):
    processed: int
    sent: int
    failed: int


class FlagDetectionResponse(BaseModel):
    created: int
    existing: int
    failed_orgs: list[UUID]


class FollowupSweepResponse(BaseModel):
    notifications_created: int


@router.post("/digests", response_model=DigestRunResponse)
async def run_digests(x_internal_secret: str = Header(...)):
    """Send the digests due at the current minute."""
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        summary = await digest_service.run_digest(db, now=local_now())

    return DigestRunResponse(
        processed=summary.processed,
        sent=summary.sent,
        failed=summary.processed - summary.sent,
    )


@router.post("/flags", response_model=FlagDetectionResponse)
def run_flag_detection(x_internal_secret: str = Header(...)):
    """Scan every organization for clinical flags."""
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        summary = flag_service.run_detection(db)

    return FlagDetectionResponse(
        created=summary.created,
        existing=summary.existing,
        failed_orgs=summary.failed_orgs,
    )


@router.post("/isq-sweep", response_model=FollowupSweepResponse)
async def run_isq_sweep(x_internal_secret: str = Header(...)):
    """Raise follow-up reminders for placements reaching the control age."""
    verify_internal_secret(x_internal_secret)

    with SessionLocal() as db:
        created = await isq_sweep_service.run_isq_followup_sweep(db, now=local_now())

    return FollowupSweepResponse(notifications_created=created)
