"""Share request data model."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from jobshare.errors import ValidationError
from jobshare.storage import format_datetime, parse_datetime


class ShareRequestStatus(str, Enum):
    """Share request states. ``pending_acceptance`` is the only non-terminal one."""

    PENDING_ACCEPTANCE = "pending_acceptance"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


@dataclass
class ShareRequest:
    """A proposal to hand one job from one company to another.

    Attributes:
        id: Request id
        job_id: Job document held by the source company
        source_company_id: Company handing the job off
        target_company_id: Company asked to take it
        proposed_fee: Fee the source offers
        source_user_id: User who sent the request
        target_user_id: Responsible user at the target
        counter_fee: Fee the target accepted at, if different
        accepted_fee: Fee written to the chain on acceptance
        status: See ShareRequestStatus
        expires_at: Deadline for acceptance (None = never)
        expires_in_hours: Requested lifetime, kept for display
        auto_assigned: Created by zone matching rather than by a user
        create_carbon_copy: Hand off as a separate job document
        decline_reason: Reason given when declining
        created_at: Creation time
        responded_at: Time of acceptance or decline
        responded_by: User (or company) that responded
        resulting_job_id: Job document the target works on after acceptance
    """

    id: str
    job_id: str
    source_company_id: str
    target_company_id: str
    proposed_fee: float
    source_user_id: Optional[str] = None
    source_company_name: Optional[str] = None
    target_user_id: Optional[str] = None
    counter_fee: Optional[float] = None
    accepted_fee: Optional[float] = None
    status: str = ShareRequestStatus.PENDING_ACCEPTANCE.value
    expires_at: Optional[datetime] = None
    expires_in_hours: Optional[int] = None
    auto_assigned: bool = False
    create_carbon_copy: bool = False
    decline_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    responded_by: Optional[str] = None
    resulting_job_id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.status, ShareRequestStatus):
            self.status = self.status.value
        if self.status not in {s.value for s in ShareRequestStatus}:
            raise ValidationError(f"Invalid share request status: {self.status}")
        self.proposed_fee = float(self.proposed_fee)

    @property
    def is_pending(self) -> bool:
        return self.status == ShareRequestStatus.PENDING_ACCEPTANCE.value

    def is_expired(self, now: datetime) -> bool:
        """True once ``now`` has reached ``expires_at``."""
        return self.expires_at is not None and now >= self.expires_at

    def effective_status(self, now: datetime) -> str:
        """Stored status, with lazily evaluated expiry applied."""
        if self.is_pending and self.is_expired(now):
            return ShareRequestStatus.EXPIRED.value
        return self.status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "source_company_id": self.source_company_id,
            "source_company_name": self.source_company_name,
            "source_user_id": self.source_user_id,
            "target_company_id": self.target_company_id,
            "target_user_id": self.target_user_id,
            "proposed_fee": self.proposed_fee,
            "counter_fee": self.counter_fee,
            "accepted_fee": self.accepted_fee,
            "status": self.status,
            "expires_at": format_datetime(self.expires_at),
            "expires_in_hours": self.expires_in_hours,
            "auto_assigned": self.auto_assigned,
            "create_carbon_copy": self.create_carbon_copy,
            "decline_reason": self.decline_reason,
            "created_at": format_datetime(self.created_at),
            "responded_at": format_datetime(self.responded_at),
            "responded_by": self.responded_by,
            "resulting_job_id": self.resulting_job_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShareRequest":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            source_company_id=data["source_company_id"],
            target_company_id=data["target_company_id"],
            proposed_fee=data.get("proposed_fee") or 0.0,
            source_user_id=data.get("source_user_id"),
            source_company_name=data.get("source_company_name"),
            target_user_id=data.get("target_user_id"),
            counter_fee=data.get("counter_fee"),
            accepted_fee=data.get("accepted_fee"),
            status=data.get("status", ShareRequestStatus.PENDING_ACCEPTANCE.value),
            expires_at=parse_datetime(data.get("expires_at")),
            expires_in_hours=data.get("expires_in_hours"),
            auto_assigned=bool(data.get("auto_assigned", False)),
            create_carbon_copy=bool(data.get("create_carbon_copy", False)),
            decline_reason=data.get("decline_reason"),
            created_at=parse_datetime(data.get("created_at")),
            responded_at=parse_datetime(data.get("responded_at")),
            responded_by=data.get("responded_by"),
            resulting_job_id=data.get("resulting_job_id"),
        )
