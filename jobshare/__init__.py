"""
Jobshare - job hand-offs between partner companies.

Tracks who holds a job across any number of re-shares, applies each
partner's auto-assignment rules, and shows every participant only its
immediate neighbours in the chain.
"""

from .core import JobSharing
from .errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    JobShareError,
    NoResponsibleUserError,
    NotFoundError,
    ValidationError,
)

try:
    from importlib.metadata import version

    __version__ = version("jobshare")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "JobSharing",
    "JobShareError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ExpiredError",
    "ForbiddenError",
    "NoResponsibleUserError",
]
