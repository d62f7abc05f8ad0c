"""
Pytest fixtures and test configuration for Jobshare tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from jobshare import JobSharing
from jobshare.config import JobShareConfig
from jobshare.notifications import RecordingNotifier
from jobshare.storage import COMPANIES, JOBS, InMemoryStore, SQLiteStore, format_datetime, seed

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sqlite_store(tmp_path):
    s = SQLiteStore(tmp_path / "jobshare.db")
    yield s
    s.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config():
    return JobShareConfig()


@pytest.fixture
def sharing(store, clock, notifier, config):
    """JobSharing over an in-memory store with a fake clock."""
    return JobSharing(store, config=config, notifier=notifier, now_fn=clock.now)


def company_doc(company_id: str, name: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
    doc = {
        "id": company_id,
        "name": name or company_id.title(),
        "zip": "90210",
        "owner_id": f"owner-{company_id}",
        "users": [{"id": f"owner-{company_id}", "role": "admin"}],
        "job_share_partners": [],
    }
    doc.update(fields)
    return doc


def job_doc(job_id: str, company_id: str, zip_code: str = "90210", **fields: Any) -> Dict[str, Any]:
    doc = {
        "id": job_id,
        "company_id": company_id,
        "job_number": job_id.upper(),
        "client_name": "Law Office of Smith",
        "zip": zip_code,
        "status": "pending",
        "is_closed": False,
        "total_fee": 120.0,
        "created_by": f"owner-{company_id}",
        "created_at": format_datetime(START),
    }
    doc.update(fields)
    return doc


@pytest.fixture
def add_company(store):
    """Insert a company document."""

    def _add(company_id: str, name: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
        doc = company_doc(company_id, name, **fields)
        seed(store, COMPANIES, [doc])
        return store.get(COMPANIES, company_id)

    return _add


@pytest.fixture
def add_job(store):
    """Insert a job document."""

    def _add(job_id: str, company_id: str, zip_code: str = "90210", **fields: Any) -> Dict[str, Any]:
        seed(store, JOBS, [job_doc(job_id, company_id, zip_code, **fields)])
        return store.get(JOBS, job_id)

    return _add


@pytest.fixture
def companies(add_company) -> List[str]:
    """Four companies with one owner each."""
    ids = ["acme", "beta", "gamma", "delta"]
    for company_id in ids:
        add_company(company_id)
    return ids


@pytest.fixture
def partner(sharing):
    """Make two companies active partners through a request and acceptance."""

    def _partner(company_a: str, company_b: str) -> None:
        request = sharing.create_partnership_request(company_a, company_b, "hello")
        sharing.respond_to_partnership_request(company_b, request.id, accept=True)

    return _partner


@pytest.fixture
def set_zone(sharing):
    """Configure ``owner``'s auto-assignment to ``partner_id``."""

    def _set(
        owner: str,
        partner_id: str,
        zip_codes=("90210",),
        fee: float = 60.0,
        priority: int = 1,
        requires_acceptance: bool = True,
    ):
        return sharing.update_partner_settings(
            owner,
            partner_id,
            auto_assignment_enabled=True,
            zones=[{"zip_codes": list(zip_codes), "default_fee": fee, "priority": priority}],
            requires_acceptance=requires_acceptance,
        )

    return _set
