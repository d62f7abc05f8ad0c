"""Pydantic models for API requests and responses."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Partnership Models
# =============================================================================


class PartnershipRequestCreate(BaseModel):
    """Request to partner with another company."""

    target_company_id: str = Field(..., min_length=1)
    message: str = Field("", max_length=500)


class RespondRequest(BaseModel):
    """Accept or decline a request."""

    accept: bool


class PartnershipRequestOut(BaseModel):
    id: str
    requesting_company_id: str
    requesting_company_name: str | None = None
    target_company_id: str
    message: str = ""
    status: str
    created_at: datetime | None = None
    responded_at: datetime | None = None


class ZoneIn(BaseModel):
    """An auto-assignment zone as edited by a company."""

    zip_codes: list[str] = Field(default_factory=list)
    default_fee: float = 0.0
    priority: int = Field(1, ge=1)
    enabled: bool = True
    city: str = ""
    state: str = ""

    @field_validator("zip_codes")
    @classmethod
    def strip_zip_codes(cls, v: list[str]) -> list[str]:
        return [z.strip() for z in v if z and z.strip()]


class PartnerSettingsUpdate(BaseModel):
    """Settings for one partner. Omitted fields keep their current value."""

    auto_assignment_enabled: bool | None = None
    zones: list[ZoneIn] | None = None
    requires_acceptance: bool | None = None
    email_notifications_enabled: bool | None = None
    expected_entry: dict[str, Any] | None = None  # Entry as last read, for conflict detection


class PartnerOut(BaseModel):
    partner_company_id: str
    partner_company_name: str | None = None
    status: str
    auto_assignment_enabled: bool
    auto_assignment_zones: list[dict[str, Any]]
    requires_acceptance: bool
    email_notifications_enabled: bool
    total_jobs_shared: int = 0
    auto_assigned_count: int = 0
    established_at: datetime | None = None


# =============================================================================
# Share Request Models
# =============================================================================


class ShareRequestCreate(BaseModel):
    """Offer a job to another company."""

    job_id: str = Field(..., min_length=1)
    target_company_id: str = Field(..., min_length=1)
    target_user_id: str | None = None
    proposed_fee: float
    expires_in_hours: int | None = None
    create_carbon_copy: bool = False


class ShareRequestRespond(BaseModel):
    """Answer a share request."""

    accept: bool
    counter_fee: float | None = None
    decline_reason: str | None = Field(None, max_length=500)


class ShareRequestOut(BaseModel):
    id: str
    job_id: str
    source_company_id: str
    source_company_name: str | None = None
    target_company_id: str
    target_user_id: str | None = None
    proposed_fee: float
    counter_fee: float | None = None
    accepted_fee: float | None = None
    status: str
    expires_at: datetime | None = None
    auto_assigned: bool = False
    decline_reason: str | None = None
    created_at: datetime | None = None
    responded_at: datetime | None = None
    resulting_job_id: str | None = None


# =============================================================================
# Job Models
# =============================================================================


class SharedStatusUpdate(BaseModel):
    """Job-centric answer to a pending share request."""

    shared_job_status: Literal["accepted", "declined"]
    decline_reason: str | None = Field(None, max_length=500)


class JobStatusUpdate(BaseModel):
    """Set a job's status; terminal statuses propagate down the chain."""

    status: str = Field(..., min_length=1)
    service_date: datetime | None = None
    affidavit_ids: list[str] | None = None


class SyncResultOut(BaseModel):
    updated: list[str]
    skipped: list[str]
    failed: list[str]


class ChainLinkOut(BaseModel):
    level: int
    company_id: str
    company_name: str | None = None
    invoice_amount: float | None = None
    sees_client_as: str | None = None
    auto_assigned: bool = False


class ChainViewOut(BaseModel):
    job_id: str
    viewer_level: int
    total_levels: int
    is_currently_assigned: bool
    links: list[ChainLinkOut]


class AutoAssignOut(BaseModel):
    matched: bool
    request: ShareRequestOut | None = None
