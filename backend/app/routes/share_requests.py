"""Share request routes."""

from fastapi import APIRouter, Request, status

from jobshare.errors import ForbiddenError

from ..auth import CurrentCompany
from ..database import Sharing
from ..logging_config import get_logger, log_share_event
from ..models import ShareRequestCreate, ShareRequestOut, ShareRequestRespond
from ..rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("jobshare.api.share_requests")
router = APIRouter(prefix="/share-requests", tags=["share-requests"])


def _request_out(share_request, sharing) -> dict:
    data = share_request.to_dict()
    data["status"] = sharing.requests.effective_status(share_request)
    return data


@router.post("", response_model=ShareRequestOut, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
async def create_share_request(
    request: Request,
    body: ShareRequestCreate,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Offer one of the caller's jobs to another company.

    The response is already ``accepted`` when the partner settings let the
    target skip acceptance for this job's zip code.
    """
    created = sharing.create_job_share_request(
        auth.company_id,
        body.job_id,
        body.target_company_id,
        target_user_id=body.target_user_id,
        proposed_fee=body.proposed_fee,
        expires_in_hours=body.expires_in_hours,
        user_id=auth.user_id,
        create_carbon_copy=body.create_carbon_copy,
    )
    log_share_event("share_request", auth.company_id, created.id, True)
    return _request_out(created, sharing)


@router.get("/incoming", response_model=list[ShareRequestOut])
@limiter.limit(READ_LIMIT)
async def list_incoming(
    request: Request,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Pending, unexpired requests offered to the caller."""
    return [_request_out(r, sharing) for r in sharing.incoming_share_requests(auth.company_id)]


@router.get("/outgoing", response_model=list[ShareRequestOut])
@limiter.limit(READ_LIMIT)
async def list_outgoing(
    request: Request,
    auth: CurrentCompany,
    sharing: Sharing,
    status_filter: str | None = None,
):
    """Requests the caller has sent."""
    requests = sharing.outgoing_share_requests(auth.company_id, status=status_filter)
    return [_request_out(r, sharing) for r in requests]


@router.get("/{request_id}", response_model=ShareRequestOut)
@limiter.limit(READ_LIMIT)
async def get_share_request(
    request: Request,
    request_id: str,
    auth: CurrentCompany,
    sharing: Sharing,
):
    share_request = sharing.requests.get(request_id)
    if auth.company_id not in (share_request.source_company_id, share_request.target_company_id):
        raise ForbiddenError("You are not a party to this share request")
    return _request_out(share_request, sharing)


@router.post("/{request_id}/respond", response_model=ShareRequestOut)
@limiter.limit(WRITE_LIMIT)
async def respond_to_share_request(
    request: Request,
    request_id: str,
    body: ShareRequestRespond,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Accept (optionally at a counter fee) or decline a share request."""
    answered = sharing.respond_to_share_request(
        auth.company_id,
        request_id,
        body.accept,
        counter_fee=body.counter_fee,
        decline_reason=body.decline_reason,
        user_id=auth.user_id,
    )
    log_share_event("share_respond", auth.company_id, request_id, True)
    return _request_out(answered, sharing)
