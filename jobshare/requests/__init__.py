"""Share request lifecycle.

- ShareRequest / ShareRequestStatus: the request model
- ShareRequestManager: create, respond, cascade
- resolve_responsible_user: ordered lookup of the receiving user
"""

from jobshare.requests.lifecycle import ShareRequestManager
from jobshare.requests.models import ShareRequest, ShareRequestStatus
from jobshare.requests.resolvers import (
    DEFAULT_RESOLVERS,
    admin_resolver,
    company_user_ids,
    creator_resolver,
    first_user_resolver,
    owner_resolver,
    primary_user_resolver,
    resolve_responsible_user,
)

__all__ = [
    "ShareRequest",
    "ShareRequestStatus",
    "ShareRequestManager",
    "DEFAULT_RESOLVERS",
    "admin_resolver",
    "company_user_ids",
    "creator_resolver",
    "first_user_resolver",
    "owner_resolver",
    "primary_user_resolver",
    "resolve_responsible_user",
]
