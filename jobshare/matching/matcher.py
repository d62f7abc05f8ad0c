"""
Auto-assignment matcher.

Given a company and a job's zip code, picks the partner the company hands
such jobs to automatically. Only active partners with auto-assignment on and
an enabled zone containing the zip are candidates. The lowest zone priority
wins; ties go to the longest-standing partnership, then to the partner id so
the choice is deterministic.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Collection, Iterable, Optional

from jobshare.config import DEFAULT_CONFIG, JobShareConfig
from jobshare.errors import NotFoundError
from jobshare.partnerships.models import AutoAssignmentZone, Partnership
from jobshare.storage import JOBS, DocumentStore

if TYPE_CHECKING:
    from jobshare.chain.builder import ChainBuilder
    from jobshare.partnerships.registry import PartnershipRegistry
    from jobshare.requests.lifecycle import ShareRequestManager
    from jobshare.requests.models import ShareRequest

logger = logging.getLogger(__name__)

# Partnerships without any timestamp sort after every dated one
_UNDATED = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ZoneMatch:
    """A partner and the zone that matched the job's zip."""

    partner: Partnership
    zone: AutoAssignmentZone

    @property
    def partner_company_id(self) -> str:
        return self.partner.partner_company_id

    @property
    def default_fee(self) -> float:
        return self.zone.default_fee

    @property
    def auto_accept(self) -> bool:
        return not self.partner.requires_acceptance


def _match_key(match: ZoneMatch):
    return (
        match.zone.priority,
        match.partner.ordering_time or _UNDATED,
        match.partner.partner_company_id,
    )


def select_match(
    partners: Iterable[Partnership],
    zip_code: Optional[str],
    exclude_company_ids: Collection[str] = (),
) -> Optional[ZoneMatch]:
    """Pick the winning partner for ``zip_code`` among ``partners``."""
    if not zip_code:
        return None
    candidates = []
    for partner in partners:
        if partner.partner_company_id in exclude_company_ids:
            continue
        zones = partner.matching_zones(zip_code)
        if zones:
            best_zone = min(zones, key=lambda z: z.priority)
            candidates.append(ZoneMatch(partner=partner, zone=best_zone))
    if not candidates:
        return None
    return min(candidates, key=_match_key)


class AutoAssignmentMatcher:
    """Turns new or re-zoned jobs into automatic share requests."""

    def __init__(
        self,
        store: DocumentStore,
        registry: "PartnershipRegistry",
        requests: "ShareRequestManager",
        chain_builder: "ChainBuilder",
        config: Optional[JobShareConfig] = None,
    ):
        self._store = store
        self._registry = registry
        self._requests = requests
        self._chain = chain_builder
        self._config = config or DEFAULT_CONFIG

    def find_match(
        self,
        company_id: str,
        zip_code: Optional[str],
        exclude_company_ids: Collection[str] = (),
    ) -> Optional[ZoneMatch]:
        """Best auto-assignment partner of ``company_id`` for ``zip_code``."""
        partners = self._registry.get_partners(company_id)
        exclude = set(exclude_company_ids) | {company_id}
        return select_match(partners, zip_code, exclude)

    def on_job_created(self, job_id: str) -> Optional["ShareRequest"]:
        """Auto-assign a freshly created job if one of its company's zones covers it.

        Returns:
            The created ShareRequest (already accepted when the partner does
            not require acceptance), or None when nothing matched
        """
        if self._config.max_cascade_depth < 1:
            logger.debug(f"Automatic hand-offs disabled; skipping auto-assignment of job {job_id}")
            return None
        job = self._store.get(JOBS, job_id)
        if job is None:
            raise NotFoundError(f"Job '{job_id}' not found")

        chain = self._chain.build_chain(job)
        if len(chain) > 1:
            logger.debug(f"Job {job_id} already handed off; skipping auto-assignment")
            return None
        if self._requests.has_pending(job_id):
            logger.debug(f"Job {job_id} has a pending share request; skipping auto-assignment")
            return None

        company_id = job["company_id"]
        match = self.find_match(company_id, job.get("zip"))
        if match is None:
            return None

        logger.info(
            f"Auto-assigning job {job_id} from {company_id} to {match.partner_company_id} "
            f"(zip {job.get('zip')}, priority {match.zone.priority})"
        )
        return self._requests.create(
            job_id,
            company_id,
            match.partner_company_id,
            match.default_fee,
            auto_assigned=True,
        )

    def on_job_zip_changed(
        self, job_id: str, previous_zip: Optional[str] = None
    ) -> Optional["ShareRequest"]:
        """Re-run matching after the job's zip code changed."""
        job = self._store.get(JOBS, job_id)
        if job is None:
            raise NotFoundError(f"Job '{job_id}' not found")
        if previous_zip is not None and previous_zip == job.get("zip"):
            return None
        return self.on_job_created(job_id)
