"""
JobSharing - job hand-offs between partner companies.

Wires the registry, request lifecycle, matcher, chain builder and status
propagator around a single document store, and exposes the operations the
HTTP API and CLI call. Every operation takes the acting company explicitly.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from jobshare.chain import ChainBuilder, ChainLink, ChainView
from jobshare.config import DEFAULT_CONFIG, JobShareConfig
from jobshare.directory import DirectoryIndex, StoreDirectoryIndex
from jobshare.errors import ForbiddenError, NotFoundError, ValidationError
from jobshare.matching import AutoAssignmentMatcher
from jobshare.notifications import LoggingNotifier, Notifier
from jobshare.partnerships import Partnership, PartnershipRegistry, PartnershipRequest
from jobshare.requests import ShareRequest, ShareRequestManager
from jobshare.storage import JOBS, DocumentStore, InMemoryStore, format_datetime, new_id, utc_now
from jobshare.sync import SYNC_FIELDS, StatusSyncPropagator, SyncResult

logger = logging.getLogger(__name__)


class JobSharing:
    """Entry point for the job sharing protocol.

    Example:
        >>> sharing = JobSharing(store)
        >>> sharing.create_partnership_request("acme", "beta", "Let's work together")
        >>> request = sharing.create_job_share_request("acme", "job-1", "beta", proposed_fee=75)
        >>> sharing.respond_to_share_request("beta", request.id, accept=True)
        >>> sharing.view_chain("job-1", "beta").to_dict()
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        config: Optional[JobShareConfig] = None,
        notifier: Optional[Notifier] = None,
        directory: Optional[DirectoryIndex] = None,
        now_fn: Callable = utc_now,
    ):
        """Initialize JobSharing.

        Args:
            store: Document store. Defaults to a fresh InMemoryStore.
            config: Protocol limits. Defaults to DEFAULT_CONFIG.
            notifier: Event sink. Defaults to logging the events.
            directory: Company directory. Defaults to the store's directory collection.
            now_fn: Clock, injectable for tests
        """
        self.store = store if store is not None else InMemoryStore()
        self.config = config or DEFAULT_CONFIG
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self._now = now_fn

        self.partnerships = PartnershipRegistry(
            self.store, config=self.config, notifier=self.notifier, now_fn=now_fn
        )
        self.chains = ChainBuilder(self.store, now_fn=now_fn)
        self.requests = ShareRequestManager(
            self.store,
            self.partnerships,
            chain_builder=self.chains,
            config=self.config,
            notifier=self.notifier,
            now_fn=now_fn,
        )
        self.matcher = AutoAssignmentMatcher(
            self.store, self.partnerships, self.requests, self.chains, config=self.config
        )
        self.sync = StatusSyncPropagator(
            self.store, config=self.config, notifier=self.notifier, now_fn=now_fn
        )
        self.directory = directory or StoreDirectoryIndex(
            self.store, min_zip_length=self.config.min_zip_length
        )

    # === Partnerships ===

    def create_partnership_request(
        self,
        company_id: str,
        target_company_id: str,
        message: str = "",
        user_id: Optional[str] = None,
    ) -> PartnershipRequest:
        return self.partnerships.request_partnership(
            company_id, target_company_id, message, requester_user_id=user_id
        )

    def respond_to_partnership_request(
        self, company_id: str, request_id: str, accept: bool, user_id: Optional[str] = None
    ) -> PartnershipRequest:
        return self.partnerships.respond_to_partnership_request(
            request_id, accept, company_id, responder_user_id=user_id
        )

    def list_partners(self, company_id: str, status: Optional[str] = None) -> List[Partnership]:
        return self.partnerships.get_partners(company_id, status=status)

    def update_partner_settings(
        self, company_id: str, partner_company_id: str, **settings: Any
    ) -> Partnership:
        """Change one partner's auto-assignment settings.

        Keyword arguments are those of
        ``PartnershipRegistry.update_partner_settings``.
        """
        return self.partnerships.update_partner_settings(company_id, partner_company_id, **settings)

    def remove_partner(self, company_id: str, partner_company_id: str) -> None:
        self.partnerships.remove_partner(company_id, partner_company_id)

    # === Share requests ===

    def create_job_share_request(
        self,
        company_id: str,
        job_id: str,
        target_company_id: str,
        target_user_id: Optional[str] = None,
        proposed_fee: Optional[float] = None,
        expires_in_hours: Optional[int] = None,
        user_id: Optional[str] = None,
        create_carbon_copy: bool = False,
    ) -> ShareRequest:
        return self.requests.create(
            job_id,
            company_id,
            target_company_id,
            proposed_fee,
            expires_in_hours,
            source_user_id=user_id,
            target_user_id=target_user_id,
            create_carbon_copy=create_carbon_copy,
        )

    def respond_to_share_request(
        self,
        company_id: str,
        request_id: str,
        accept: bool,
        counter_fee: Optional[float] = None,
        decline_reason: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ShareRequest:
        return self.requests.respond(
            request_id,
            accept,
            responder_company_id=company_id,
            counter_fee=counter_fee,
            decline_reason=decline_reason,
            responder_user_id=user_id,
        )

    def update_shared_job_status(
        self,
        company_id: str,
        job_id: str,
        new_status: str,
        decline_reason: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ShareRequest:
        return self.requests.update_shared_job_status(
            job_id,
            new_status,
            company_id,
            decline_reason=decline_reason,
            responder_user_id=user_id,
        )

    def incoming_share_requests(self, company_id: str) -> List[ShareRequest]:
        return self.requests.list_incoming(company_id)

    def outgoing_share_requests(self, company_id: str, status: Optional[str] = None) -> List[ShareRequest]:
        return self.requests.list_outgoing(company_id, status=status)

    # === Jobs ===

    def _require_own_job(self, job_id: str, company_id: str) -> Dict[str, Any]:
        job = self.store.get(JOBS, job_id)
        if job is None:
            raise NotFoundError(f"Job '{job_id}' not found")
        if job.get("company_id") != company_id:
            raise ForbiddenError("You can only update your own jobs")
        return job

    def create_job(
        self, company_id: str, job: Dict[str, Any], auto_assign: bool = True
    ) -> Dict[str, Any]:
        """Store a new job and run auto-assignment on it.

        Returns:
            The stored job as it is after any automatic hand-off
        """
        doc = dict(job)
        doc.setdefault("id", new_id())
        doc["company_id"] = company_id
        doc.setdefault("status", "pending")
        doc.setdefault("is_closed", False)
        doc.setdefault("created_at", format_datetime(self._now()))
        with self.store.transaction() as tx:
            job_id = tx.insert(JOBS, doc)
        logger.info(f"Created job {job_id} for {company_id}")

        if auto_assign:
            self.matcher.on_job_created(job_id)
        return self.store.get(JOBS, job_id)

    def auto_assign(self, job_id: str, company_id: str) -> Optional[ShareRequest]:
        """Run zone matching for a job on behalf of its owner."""
        self._require_own_job(job_id, company_id)
        return self.matcher.on_job_created(job_id)

    def update_job_zip(self, job_id: str, company_id: str, zip_code: str) -> Optional[ShareRequest]:
        """Change a job's zip code and re-run zone matching."""
        zip_code = (zip_code or "").strip()
        if len(zip_code) < self.config.min_zip_length:
            raise ValidationError("Please provide a valid ZIP code")
        job = self._require_own_job(job_id, company_id)
        previous = job.get("zip")
        with self.store.transaction() as tx:
            fresh = tx.get(JOBS, job_id)
            fresh["zip"] = zip_code
            tx.put(JOBS, fresh)
        return self.matcher.on_job_zip_changed(job_id, previous_zip=previous)

    def update_job_status(
        self, job_id: str, status: str, actor_company_id: str, **fields: Any
    ) -> SyncResult:
        """Set a job's status and push terminal statuses down its chain.

        Args:
            job_id: Job document of the acting company
            status: New status
            actor_company_id: Company owning the job document
            **fields: ``service_date`` and/or ``affidavit_ids``

        Returns:
            SyncResult of the propagation (empty when nothing propagated)
        """
        unknown = set(fields) - set(SYNC_FIELDS)
        if unknown:
            raise ValidationError(f"Unsupported job fields: {', '.join(sorted(unknown))}")
        if not status:
            raise ValidationError("Status is required")
        self._require_own_job(job_id, actor_company_id)

        with self.store.transaction() as tx:
            job = tx.get(JOBS, job_id)
            job["status"] = status
            job["is_closed"] = self.config.is_terminal(status)
            job.update(fields)
            tx.put(JOBS, job)
        logger.info(f"Job {job_id} status -> {status}")

        return self.sync.propagate(job_id)

    # === Chains ===

    def view_chain(self, job_id: str, company_id: str) -> ChainView:
        return self.chains.view(job_id, company_id)

    def correct_invoice_amount(
        self, job_id: str, company_id: str, amount: float, actor_company_id: Optional[str] = None
    ) -> ChainLink:
        return self.chains.correct_invoice_amount(
            job_id, company_id, amount, actor_company_id=actor_company_id
        )

    # === Directory ===

    def search_directory(self, zip_code: str) -> List[Dict[str, Any]]:
        return self.directory.search(zip_code)
