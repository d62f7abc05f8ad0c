"""Job routes: shared status, status updates, auto-assignment and chain view."""

from fastapi import APIRouter, Request

from ..auth import CurrentCompany
from ..database import Sharing
from ..logging_config import get_logger, log_share_event
from ..models import (
    AutoAssignOut,
    ChainViewOut,
    JobStatusUpdate,
    SharedStatusUpdate,
    ShareRequestOut,
    SyncResultOut,
)
from ..rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("jobshare.api.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("/{job_id}/shared-status", response_model=ShareRequestOut)
@limiter.limit(WRITE_LIMIT)
async def update_shared_job_status(
    request: Request,
    job_id: str,
    body: SharedStatusUpdate,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Accept or decline the caller's pending share request for this job."""
    answered = sharing.update_shared_job_status(
        auth.company_id,
        job_id,
        body.shared_job_status,
        decline_reason=body.decline_reason,
        user_id=auth.user_id,
    )
    log_share_event("shared_status", auth.company_id, job_id, True)
    return answered.to_dict()


@router.post("/{job_id}/status", response_model=SyncResultOut)
@limiter.limit(WRITE_LIMIT)
async def update_job_status(
    request: Request,
    job_id: str,
    body: JobStatusUpdate,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Set a job's status. Terminal statuses propagate to downstream copies."""
    fields = body.model_dump(exclude_none=True, mode="json")
    job_status = fields.pop("status")
    result = sharing.update_job_status(job_id, job_status, auth.company_id, **fields)
    if result.failed:
        logger.warning(f"Status sync from {job_id} left {len(result.failed)} copies queued")
    return result.to_dict()


@router.post("/{job_id}/auto-assign", response_model=AutoAssignOut)
@limiter.limit(WRITE_LIMIT)
async def auto_assign_job(
    request: Request,
    job_id: str,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Run zone matching for one of the caller's jobs."""
    created = sharing.auto_assign(job_id, auth.company_id)
    if created is None:
        return {"matched": False, "request": None}
    log_share_event("auto_assign", auth.company_id, created.id, True)
    return {"matched": True, "request": created.to_dict()}


@router.get("/{job_id}/chain", response_model=ChainViewOut)
@limiter.limit(READ_LIMIT)
async def get_job_chain(
    request: Request,
    job_id: str,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """The caller's view of the job's chain: itself and its direct neighbours."""
    return sharing.view_chain(job_id, auth.company_id).to_dict()
