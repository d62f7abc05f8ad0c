"""
Partnership data models.

A partnership is stored twice, once inside each company's
``job_share_partners`` array. Each side owns its own copy: the zones,
fees and acceptance rules in company A's entry describe how A hands jobs
to B, and vice versa.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from jobshare.errors import ValidationError
from jobshare.storage import format_datetime, parse_datetime


class PartnershipStatus(str, Enum):
    """Status of one side of a partnership."""

    PENDING = "pending"
    ACTIVE = "active"
    DECLINED = "declined"


class PartnershipRequestStatus(str, Enum):
    """Status of a partnership request."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass
class AutoAssignmentZone:
    """A set of zip codes handed to a partner at a default fee.

    Lower ``priority`` numbers win when several zones match the same zip.
    """

    zip_codes: List[str] = field(default_factory=list)
    default_fee: float = 0.0
    priority: int = 1
    enabled: bool = True
    city: str = ""
    state: str = ""

    def __post_init__(self):
        self.zip_codes = [str(z).strip() for z in self.zip_codes if str(z).strip()]
        self.default_fee = float(self.default_fee)
        self.priority = int(self.priority)
        if self.default_fee < 0:
            raise ValidationError("Zone default fee cannot be negative")

    def covers(self, zip_code: Optional[str]) -> bool:
        """Check whether this enabled zone contains ``zip_code``."""
        if not self.enabled or not zip_code:
            return False
        return str(zip_code).strip() in self.zip_codes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zip_codes": list(self.zip_codes),
            "default_fee": self.default_fee,
            "priority": self.priority,
            "enabled": self.enabled,
            "city": self.city,
            "state": self.state,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoAssignmentZone":
        # Older entries store the priority as auto_assign_priority
        priority = data.get("priority", data.get("auto_assign_priority", 1))
        return cls(
            zip_codes=data.get("zip_codes") or [],
            default_fee=data.get("default_fee") or 0.0,
            priority=priority if priority is not None else 1,
            enabled=bool(data.get("enabled", True)),
            city=data.get("city") or "",
            state=data.get("state") or "",
        )


@dataclass
class Partnership:
    """One company's view of its relationship with a partner.

    Attributes:
        company_id: Company owning this entry
        partner_company_id: The partner
        partner_company_name: Partner display name
        status: pending, active or declined
        auto_assignment_enabled: Whether jobs are handed over automatically
        auto_assignment_zones: Zip code zones for automatic hand-off
        requires_acceptance: Whether the partner must accept each hand-off
        email_notifications_enabled: Whether the partner is notified by email
        established_at: When the partnership became active
        created_at: When this entry was first written
        updated_at: Last settings change
        total_jobs_shared: Accepted hand-offs to this partner
        auto_assigned_count: Accepted hand-offs that were auto-assigned
    """

    company_id: str
    partner_company_id: str
    partner_company_name: Optional[str] = None
    status: str = PartnershipStatus.ACTIVE.value
    auto_assignment_enabled: bool = False
    auto_assignment_zones: List[AutoAssignmentZone] = field(default_factory=list)
    requires_acceptance: bool = True
    email_notifications_enabled: bool = True
    established_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_jobs_shared: int = 0
    auto_assigned_count: int = 0

    def __post_init__(self):
        if isinstance(self.status, PartnershipStatus):
            self.status = self.status.value
        if self.status not in {s.value for s in PartnershipStatus}:
            raise ValidationError(f"Invalid partnership status: {self.status}")
        if self.company_id == self.partner_company_id:
            raise ValidationError("A company cannot partner with itself")

    @property
    def is_active(self) -> bool:
        return self.status == PartnershipStatus.ACTIVE.value

    @property
    def ordering_time(self) -> Optional[datetime]:
        """Creation time used to break priority ties."""
        return self.established_at or self.created_at

    def matching_zones(self, zip_code: Optional[str]) -> List[AutoAssignmentZone]:
        """Zones covering ``zip_code``, only when auto-assignment is on."""
        if not self.is_active or not self.auto_assignment_enabled:
            return []
        return [z for z in self.auto_assignment_zones if z.covers(zip_code)]

    def auto_accepts(self, zip_code: Optional[str]) -> bool:
        """Whether a hand-off of a job in ``zip_code`` skips the partner's acceptance."""
        return not self.requires_acceptance and bool(self.matching_zones(zip_code))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company_id": self.company_id,
            "partner_company_id": self.partner_company_id,
            "partner_company_name": self.partner_company_name,
            "relationship_status": self.status,
            "auto_assignment_enabled": self.auto_assignment_enabled,
            "auto_assignment_zones": [z.to_dict() for z in self.auto_assignment_zones],
            "requires_acceptance": self.requires_acceptance,
            "email_notifications_enabled": self.email_notifications_enabled,
            "established_at": format_datetime(self.established_at),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "total_jobs_shared": self.total_jobs_shared,
            "auto_assigned_count": self.auto_assigned_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], company_id: Optional[str] = None) -> "Partnership":
        return cls(
            company_id=data.get("company_id") or company_id,
            partner_company_id=data["partner_company_id"],
            partner_company_name=data.get("partner_company_name"),
            status=data.get("relationship_status") or data.get("status") or "active",
            auto_assignment_enabled=bool(data.get("auto_assignment_enabled", False)),
            auto_assignment_zones=[
                AutoAssignmentZone.from_dict(z) for z in data.get("auto_assignment_zones") or []
            ],
            requires_acceptance=bool(data.get("requires_acceptance", True)),
            email_notifications_enabled=data.get("email_notifications_enabled", True) is not False,
            established_at=parse_datetime(data.get("established_at")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            total_jobs_shared=int(data.get("total_jobs_shared") or 0),
            auto_assigned_count=int(data.get("auto_assigned_count") or 0),
        )


@dataclass
class PartnershipRequest:
    """A request from one company to become partners with another."""

    id: str
    requesting_company_id: str
    target_company_id: str
    message: str = ""
    requesting_user_id: Optional[str] = None
    requesting_company_name: Optional[str] = None
    status: str = PartnershipRequestStatus.PENDING.value
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    responded_by: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == PartnershipRequestStatus.PENDING.value

    def involves(self, company_a: str, company_b: str) -> bool:
        """True if the request is between the two companies, in either direction."""
        return {self.requesting_company_id, self.target_company_id} == {company_a, company_b}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requesting_company_id": self.requesting_company_id,
            "requesting_company_name": self.requesting_company_name,
            "requesting_user_id": self.requesting_user_id,
            "target_company_id": self.target_company_id,
            "message": self.message,
            "status": self.status,
            "created_at": format_datetime(self.created_at),
            "responded_at": format_datetime(self.responded_at),
            "responded_by": self.responded_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PartnershipRequest":
        return cls(
            id=data["id"],
            requesting_company_id=data["requesting_company_id"],
            target_company_id=data["target_company_id"],
            message=data.get("message") or "",
            requesting_user_id=data.get("requesting_user_id"),
            requesting_company_name=data.get("requesting_company_name"),
            status=data.get("status", PartnershipRequestStatus.PENDING.value),
            created_at=parse_datetime(data.get("created_at")),
            responded_at=parse_datetime(data.get("responded_at")),
            responded_by=data.get("responded_by"),
        )
