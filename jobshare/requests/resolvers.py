"""
Responsible-user resolution.

A share request is addressed to a company, but someone at that company has
to receive it. Resolvers are tried in order; the first one returning a user
id wins.
"""

from typing import Any, Callable, Dict, Optional, Sequence, Set

from jobshare.errors import NoResponsibleUserError

UserResolver = Callable[[Dict[str, Any]], Optional[str]]

ADMIN_ROLE = "admin"


def owner_resolver(company: Dict[str, Any]) -> Optional[str]:
    return company.get("owner_id")


def primary_user_resolver(company: Dict[str, Any]) -> Optional[str]:
    return company.get("primary_user_id")


def creator_resolver(company: Dict[str, Any]) -> Optional[str]:
    return company.get("created_by")


def admin_resolver(company: Dict[str, Any]) -> Optional[str]:
    for user in company.get("users") or []:
        if ADMIN_ROLE in (user.get("role"), user.get("employee_role")) and user.get("id"):
            return user["id"]
    return None


def first_user_resolver(company: Dict[str, Any]) -> Optional[str]:
    for user in company.get("users") or []:
        if user.get("id"):
            return user["id"]
    return None


DEFAULT_RESOLVERS: Sequence[UserResolver] = (
    owner_resolver,
    primary_user_resolver,
    creator_resolver,
    admin_resolver,
    first_user_resolver,
)


def company_user_ids(company: Dict[str, Any]) -> Set[str]:
    """Every user id a company document references."""
    ids = {company.get("owner_id"), company.get("primary_user_id"), company.get("created_by")}
    ids.update(user.get("id") for user in company.get("users") or [])
    ids.discard(None)
    return ids


def resolve_responsible_user(
    company: Dict[str, Any], resolvers: Sequence[UserResolver] = DEFAULT_RESOLVERS
) -> str:
    """Pick the user who receives requests addressed to ``company``.

    Raises:
        NoResponsibleUserError: If no resolver finds anyone
    """
    for resolver in resolvers:
        user_id = resolver(company)
        if user_id:
            return user_id
    raise NoResponsibleUserError(
        f"Could not find a responsible user for company '{company.get('id')}'"
    )
