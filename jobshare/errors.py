"""Error taxonomy for job sharing operations.

Callers branch on the error kind (for example "already partners" versus a
duplicate request), so every failure surfaces as one of these classes rather
than a generic exception. Each class carries a stable ``code`` that the HTTP
layer forwards to clients.
"""


class JobShareError(Exception):
    """Base exception for job sharing errors."""

    code = "job_share_error"


class ValidationError(JobShareError, ValueError):
    """Input failed validation (bad fee, empty zip, oversized message)."""

    code = "validation_error"


class NotFoundError(JobShareError):
    """A referenced job, company or request does not exist."""

    code = "not_found"


class ConflictError(JobShareError):
    """The operation conflicts with current state.

    Raised for duplicate pending requests, companies that are already
    partners, requests that were already responded to, and concurrent
    modifications detected by the store.
    """

    code = "conflict"


class ExpiredError(JobShareError):
    """A share request passed its expiry time."""

    code = "expired"


class ForbiddenError(JobShareError):
    """The caller is not allowed to perform the operation or see the data."""

    code = "forbidden"


class NoResponsibleUserError(JobShareError):
    """No user could be resolved to receive a share request."""

    code = "no_responsible_user"
