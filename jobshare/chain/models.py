"""
Chain of custody data models.

A job's chain is an ordered list of ChainLinks, level 0 being the company
that originated the job. The same logical chain is persisted in one of two
encodings (see ``jobshare.chain.encodings``); these models are the shared
in-memory form.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from jobshare.storage import format_datetime, parse_datetime


class ChainEncoding(str, Enum):
    """How a chain is physically stored."""

    EMBEDDED = "embedded"  # One job document holding the whole chain array
    CARBON_COPY = "carbon_copy"  # One job document per hop, linked by pointers


@dataclass
class ChainLink:
    """One company's position in a chain of custody.

    Attributes:
        level: Position in the chain (0 = originator)
        company_id: Company at this level
        company_name: Company display name
        user_id: Responsible user at this company
        invoice_amount: Fee the previous level pays this level (for level 0,
            the fee charged to the original client)
        sees_client_as: Name this company knows its client by
        auto_assigned: Whether the hand-off into this level was automatic
        job_id: Job document held by this company (carbon copy encoding)
        created_at: When the link was written
    """

    level: int
    company_id: str
    company_name: Optional[str] = None
    user_id: Optional[str] = None
    invoice_amount: Optional[float] = None
    sees_client_as: Optional[str] = None
    auto_assigned: bool = False
    job_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.level < 0:
            raise ValueError("Chain level cannot be negative")
        if self.invoice_amount is not None:
            self.invoice_amount = float(self.invoice_amount)

    def redacted(self) -> "ChainLink":
        """Copy without the fields that describe the company's own client."""
        return dataclasses.replace(self, invoice_amount=None, sees_client_as=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "company_id": self.company_id,
            "company_name": self.company_name,
            "user_id": self.user_id,
            "invoice_amount": self.invoice_amount,
            "sees_client_as": self.sees_client_as,
            "auto_assigned": self.auto_assigned,
            "job_id": self.job_id,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainLink":
        return cls(
            level=int(data.get("level", 0)),
            company_id=data["company_id"],
            company_name=data.get("company_name"),
            user_id=data.get("user_id"),
            invoice_amount=data.get("invoice_amount"),
            sees_client_as=data.get("sees_client_as"),
            auto_assigned=bool(data.get("auto_assigned", False)),
            job_id=data.get("job_id"),
            created_at=parse_datetime(data.get("created_at")),
        )


@dataclass
class JobShareChain:
    """Embedded chain stored on a job under ``job_share_chain``."""

    chain: List[ChainLink] = field(default_factory=list)
    currently_assigned_to_company_id: Optional[str] = None

    @property
    def is_shared(self) -> bool:
        return len(self.chain) > 1

    @property
    def total_levels(self) -> int:
        """Number of hand-offs (the originator is level 0)."""
        return max(len(self.chain) - 1, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_shared": self.is_shared,
            "chain": [link.to_dict() for link in self.chain],
            "currently_assigned_to_company_id": self.currently_assigned_to_company_id,
            "total_levels": self.total_levels,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobShareChain":
        links = [ChainLink.from_dict(d) for d in data.get("chain") or []]
        links.sort(key=lambda link: link.level)
        return cls(
            chain=links,
            currently_assigned_to_company_id=data.get("currently_assigned_to_company_id"),
        )


@dataclass
class CarbonCopyChain:
    """Per-hop chain metadata stored on a job under ``share_chain``.

    Only the root (level 0) document's ``all_job_ids`` is authoritative.
    """

    root_job_id: str
    shared_job_number: Optional[str] = None
    level: int = 0
    parent_job_id: Optional[str] = None
    child_job_id: Optional[str] = None
    sync_enabled: bool = True
    all_job_ids: List[str] = field(default_factory=list)
    company_name: Optional[str] = None
    user_id: Optional[str] = None
    invoice_amount: Optional[float] = None
    sees_client_as: Optional[str] = None
    auto_assigned: bool = False
    created_at: Optional[datetime] = None

    def to_link(self, job_id: str, company_id: str) -> ChainLink:
        return ChainLink(
            level=self.level,
            company_id=company_id,
            company_name=self.company_name,
            user_id=self.user_id,
            invoice_amount=self.invoice_amount,
            sees_client_as=self.sees_client_as,
            auto_assigned=self.auto_assigned,
            job_id=job_id,
            created_at=self.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root_job_id": self.root_job_id,
            "shared_job_number": self.shared_job_number,
            "level": self.level,
            "parent_job_id": self.parent_job_id,
            "child_job_id": self.child_job_id,
            "sync_enabled": self.sync_enabled,
            "all_job_ids": list(self.all_job_ids),
            "company_name": self.company_name,
            "user_id": self.user_id,
            "invoice_amount": self.invoice_amount,
            "sees_client_as": self.sees_client_as,
            "auto_assigned": self.auto_assigned,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CarbonCopyChain":
        return cls(
            root_job_id=data["root_job_id"],
            shared_job_number=data.get("shared_job_number"),
            level=int(data.get("level", 0)),
            parent_job_id=data.get("parent_job_id"),
            child_job_id=data.get("child_job_id"),
            sync_enabled=bool(data.get("sync_enabled", True)),
            all_job_ids=list(data.get("all_job_ids") or []),
            company_name=data.get("company_name"),
            user_id=data.get("user_id"),
            invoice_amount=data.get("invoice_amount"),
            sees_client_as=data.get("sees_client_as"),
            auto_assigned=bool(data.get("auto_assigned", False)),
            created_at=parse_datetime(data.get("created_at")),
        )


@dataclass
class ChainView:
    """The part of a chain one company is allowed to see."""

    job_id: str
    viewer_company_id: str
    viewer_level: int
    links: List[ChainLink]
    total_levels: int
    is_currently_assigned: bool = False

    @property
    def client(self) -> Optional[ChainLink]:
        """The viewer's upstream neighbour, if any."""
        return next((link for link in self.links if link.level == self.viewer_level - 1), None)

    @property
    def server(self) -> Optional[ChainLink]:
        """The viewer's downstream neighbour, if any."""
        return next((link for link in self.links if link.level == self.viewer_level + 1), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "viewer_company_id": self.viewer_company_id,
            "viewer_level": self.viewer_level,
            "links": [link.to_dict() for link in self.links],
            "total_levels": self.total_levels,
            "is_currently_assigned": self.is_currently_assigned,
        }
