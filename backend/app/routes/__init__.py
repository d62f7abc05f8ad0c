"""API routes."""

from .directory import router as directory_router
from .jobs import router as jobs_router
from .partnerships import router as partnerships_router
from .share_requests import router as share_requests_router

__all__ = [
    "directory_router",
    "jobs_router",
    "partnerships_router",
    "share_requests_router",
]
