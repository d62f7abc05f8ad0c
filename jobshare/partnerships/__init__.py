"""Partnership registry.

Models:
- Partnership: One company's entry for a partner
- AutoAssignmentZone: Zip codes handed to a partner at a default fee
- PartnershipRequest: A pending/answered request to become partners

Registry:
- PartnershipRegistry: request, respond, settings updates, activation
"""

from jobshare.partnerships.models import (
    AutoAssignmentZone,
    Partnership,
    PartnershipRequest,
    PartnershipRequestStatus,
    PartnershipStatus,
)
from jobshare.partnerships.registry import (
    PARTNERS_FIELD,
    PartnershipRegistry,
    find_partner_entry,
    require_company,
)

__all__ = [
    # Models
    "AutoAssignmentZone",
    "Partnership",
    "PartnershipRequest",
    "PartnershipRequestStatus",
    "PartnershipStatus",
    # Registry
    "PartnershipRegistry",
    "PARTNERS_FIELD",
    "find_partner_entry",
    "require_company",
]
