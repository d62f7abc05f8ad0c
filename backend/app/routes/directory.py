"""Company directory lookup."""

from typing import Any

from fastapi import APIRouter, Query, Request

from ..auth import CurrentCompany
from ..database import Sharing
from ..rate_limit import READ_LIMIT, limiter

router = APIRouter(prefix="/directory", tags=["directory"])


@router.get("", response_model=list[dict[str, Any]])
@limiter.limit(READ_LIMIT)
async def search_directory(
    request: Request,
    auth: CurrentCompany,
    sharing: Sharing,
    zip: str = Query(..., description="ZIP code to search"),
):
    """Listed companies serving a ZIP code, best rated first."""
    return sharing.search_directory(zip)
