"""Pytest configuration and fixtures."""

import os
import secrets
from datetime import datetime, timezone

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("DATABASE_PATH", "jobshare-test.db")

from app.database import get_job_sharing  # noqa: E402
from app.main import app  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from jobshare import JobSharing  # noqa: E402
from jobshare.notifications import RecordingNotifier  # noqa: E402
from jobshare.storage import COMPANIES, JOBS, InMemoryStore, seed  # noqa: E402

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sharing(store):
    return JobSharing(store, notifier=RecordingNotifier())


@pytest.fixture
def client(sharing, store, monkeypatch):
    """Create a test client bound to an in-memory store."""
    monkeypatch.setattr("app.database._store", store)
    app.dependency_overrides[get_job_sharing] = lambda: sharing
    limiter.enabled = False
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def auth_headers():
    """Build auth headers for a user acting for a company."""
    from app.auth import create_access_token
    from app.config import get_settings

    settings = get_settings()

    def _headers(company_id: str, user_id: str | None = None) -> dict:
        token = create_access_token(
            settings, user_id=user_id or f"owner-{company_id}", company_id=company_id
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def seeded(store):
    """Three companies and one unshared job owned by acme."""
    seed(
        store,
        COMPANIES,
        [
            {
                "id": company_id,
                "name": company_id.title(),
                "owner_id": f"owner-{company_id}",
                "users": [{"id": f"owner-{company_id}", "role": "admin"}],
                "job_share_partners": [],
            }
            for company_id in ("acme", "beta", "gamma")
        ],
    )
    seed(
        store,
        JOBS,
        [
            {
                "id": "job-1",
                "company_id": "acme",
                "job_number": "JOB-1",
                "client_name": "Law Office of Smith",
                "zip": "90210",
                "status": "pending",
                "is_closed": False,
                "total_fee": 120.0,
                "created_by": "owner-acme",
                "created_at": NOW.isoformat(),
            }
        ],
    )
    return store
