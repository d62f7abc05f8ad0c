"""Partnership routes: requests, partner list and per-partner settings."""

from fastapi import APIRouter, Request, status

from ..auth import CurrentCompany
from ..database import Sharing
from ..logging_config import get_logger, log_share_event
from ..models import (
    PartnerOut,
    PartnerSettingsUpdate,
    PartnershipRequestCreate,
    PartnershipRequestOut,
    RespondRequest,
)
from ..rate_limit import READ_LIMIT, WRITE_LIMIT, limiter

logger = get_logger("jobshare.api.partnerships")
router = APIRouter(prefix="/partnerships", tags=["partnerships"])


def _partner_out(partner) -> dict:
    data = partner.to_dict()
    data["status"] = partner.status
    return data


@router.post(
    "/requests", response_model=PartnershipRequestOut, status_code=status.HTTP_201_CREATED
)
@limiter.limit(WRITE_LIMIT)
async def create_partnership_request(
    request: Request,
    body: PartnershipRequestCreate,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Ask another company to become a partner."""
    created = sharing.create_partnership_request(
        auth.company_id, body.target_company_id, body.message, user_id=auth.user_id
    )
    log_share_event("partnership_request", auth.company_id, created.id, True)
    return created.to_dict()


@router.get("/requests", response_model=list[PartnershipRequestOut])
@limiter.limit(READ_LIMIT)
async def list_partnership_requests(
    request: Request,
    auth: CurrentCompany,
    sharing: Sharing,
    incoming: bool = True,
):
    """Pending partnership requests received (or sent, with ``incoming=false``)."""
    requests = sharing.partnerships.list_partnership_requests(auth.company_id, incoming=incoming)
    return [r.to_dict() for r in requests]


@router.post("/requests/{request_id}/respond", response_model=PartnershipRequestOut)
@limiter.limit(WRITE_LIMIT)
async def respond_to_partnership_request(
    request: Request,
    request_id: str,
    body: RespondRequest,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Accept or decline a partnership request addressed to the caller."""
    answered = sharing.respond_to_partnership_request(
        auth.company_id, request_id, body.accept, user_id=auth.user_id
    )
    log_share_event("partnership_respond", auth.company_id, request_id, True)
    return answered.to_dict()


@router.get("", response_model=list[PartnerOut])
@limiter.limit(READ_LIMIT)
async def list_partners(
    request: Request,
    auth: CurrentCompany,
    sharing: Sharing,
    status_filter: str | None = None,
):
    """The caller's partners, optionally filtered by status."""
    partners = sharing.list_partners(auth.company_id, status=status_filter)
    return [_partner_out(p) for p in partners]


@router.put("/{partner_id}", response_model=PartnerOut)
@limiter.limit(WRITE_LIMIT)
async def update_partner_settings(
    request: Request,
    partner_id: str,
    body: PartnerSettingsUpdate,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """Replace auto-assignment settings for one partner.

    Send ``expected_entry`` (the partner entry as last read) to be told about
    concurrent edits with a 409 instead of overwriting them.
    """
    zones = [z.model_dump() for z in body.zones] if body.zones is not None else None
    partner = sharing.update_partner_settings(
        auth.company_id,
        partner_id,
        auto_assignment_enabled=body.auto_assignment_enabled,
        zones=zones,
        requires_acceptance=body.requires_acceptance,
        email_notifications_enabled=body.email_notifications_enabled,
        expected_entry=body.expected_entry,
    )
    log_share_event("partner_settings", auth.company_id, partner_id, True)
    return _partner_out(partner)


@router.delete("/{partner_id}")
@limiter.limit(WRITE_LIMIT)
async def remove_partner(
    request: Request,
    partner_id: str,
    auth: CurrentCompany,
    sharing: Sharing,
):
    """End a partnership on both sides."""
    sharing.remove_partner(auth.company_id, partner_id)
    log_share_event("partner_remove", auth.company_id, partner_id, True)
    return {"partner_company_id": partner_id, "status": "declined"}
