"""
Share request lifecycle.

State machine::

    pending_acceptance -> accepted | declined | expired

Expiry is evaluated lazily: nothing runs when a deadline passes, instead
``respond`` refuses requests whose deadline is behind the current time, and
listing reports them as expired.

Accepting a request hands the job to the target company in one transaction:
the chain gets a new link, both companies become partners and the
sharer's counters are bumped. Once that commits, the accepting company's own
auto-assignment zones may pass the job on again (the cascade). Each cascade
hop goes through the same create/respond path, with the set of companies
already visited and the hop count passed along so a chain can never loop.
"""

import logging
import math
from datetime import timedelta
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from jobshare.chain.builder import ChainBuilder
from jobshare.chain.encodings import detect_encoding
from jobshare.chain.models import ChainEncoding
from jobshare.config import DEFAULT_CONFIG, JobShareConfig
from jobshare.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    JobShareError,
    NotFoundError,
    ValidationError,
)
from jobshare.matching.matcher import select_match
from jobshare.notifications import SHARE_REQUEST_CREATED, SHARE_REQUEST_RESPONDED, Notifier, safe_emit
from jobshare.partnerships.registry import PartnershipRegistry, require_company
from jobshare.requests.models import ShareRequest, ShareRequestStatus
from jobshare.requests.resolvers import (
    DEFAULT_RESOLVERS,
    UserResolver,
    company_user_ids,
    resolve_responsible_user,
)
from jobshare.storage import (
    JOBS,
    SHARE_REQUESTS,
    VERSION_FIELD,
    DocumentStore,
    Transaction,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)

PENDING = ShareRequestStatus.PENDING_ACCEPTANCE.value

# Values of a job's shared_job_status field
SHARED_PENDING = "pending_acceptance"
SHARED_ACCEPTED = "accepted"
SHARED_DECLINED = "declined"


class ShareRequestManager:
    """Creates share requests and drives them to a terminal state."""

    def __init__(
        self,
        store: DocumentStore,
        registry: PartnershipRegistry,
        chain_builder: Optional[ChainBuilder] = None,
        config: Optional[JobShareConfig] = None,
        notifier: Optional[Notifier] = None,
        now_fn: Callable = utc_now,
        resolvers=DEFAULT_RESOLVERS,
    ):
        self._store = store
        self._registry = registry
        self._now = now_fn
        self._chain = chain_builder or ChainBuilder(store, now_fn=now_fn)
        self._config = config or DEFAULT_CONFIG
        self._notifier = notifier
        self._resolvers: List[UserResolver] = list(resolvers)

    @property
    def chain_builder(self) -> ChainBuilder:
        return self._chain

    # === Create ===

    def create(
        self,
        job_id: str,
        source_company_id: str,
        target_company_id: str,
        proposed_fee: float,
        expires_in_hours: Optional[int] = None,
        *,
        source_user_id: Optional[str] = None,
        target_user_id: Optional[str] = None,
        auto_assigned: bool = False,
        create_carbon_copy: bool = False,
    ) -> ShareRequest:
        """Offer a job to another company.

        If the source's partner entry for the target auto-accepts jobs in
        this zip code, the request is accepted immediately with the proposed
        fee and the returned request is already ``accepted``.

        Args:
            job_id: Job held by the source company
            source_company_id: Company handing the job off
            target_company_id: Company asked to take it
            proposed_fee: Fee offered, must be positive
            expires_in_hours: Acceptance window (None = never expires)
            source_user_id: User sending the request
            target_user_id: User to address at the target (resolved when omitted)
            auto_assigned: Whether zone matching produced this request
            create_carbon_copy: Hand off as a separate job document

        Raises:
            ValidationError: Bad fee, expiry or target user
            NotFoundError: Job or company does not exist
            ForbiddenError: Source does not currently hold the job
            ConflictError: Target already in the chain or already has a
                pending request for the job
            NoResponsibleUserError: No user at the target could be found
        """
        return self._create(
            job_id,
            source_company_id,
            target_company_id,
            proposed_fee,
            expires_in_hours,
            source_user_id=source_user_id,
            target_user_id=target_user_id,
            auto_assigned=auto_assigned,
            create_carbon_copy=create_carbon_copy,
            visited=frozenset(),
            # a zone-matched request is itself the first automatic hop
            depth=1 if auto_assigned else 0,
        )

    def _create(
        self,
        job_id: str,
        source_company_id: str,
        target_company_id: str,
        proposed_fee: float,
        expires_in_hours: Optional[int],
        *,
        source_user_id: Optional[str],
        target_user_id: Optional[str],
        auto_assigned: bool,
        create_carbon_copy: bool,
        visited: FrozenSet[str],
        depth: int,
    ) -> ShareRequest:
        if proposed_fee is None or not math.isfinite(proposed_fee) or proposed_fee <= 0:
            raise ValidationError("Fee must be greater than zero")
        if auto_assigned and expires_in_hours is None:
            expires_in_hours = self._config.auto_assign_expires_in_hours
        if expires_in_hours is not None and expires_in_hours <= 0:
            raise ValidationError("Expiry must be a positive number of hours")
        if source_company_id == target_company_id:
            raise ValidationError("A company cannot share a job with itself")

        now = self._now()
        with self._store.transaction() as tx:
            job = tx.get(JOBS, job_id)
            if job is None:
                raise NotFoundError(f"Job '{job_id}' not found")
            source = require_company(tx, source_company_id)
            target = require_company(tx, target_company_id)

            if create_carbon_copy and detect_encoding(job) == ChainEncoding.EMBEDDED:
                raise ValidationError("This job is already shared without carbon copies")

            links = self._chain.read_links(tx, job)
            holder = links[-1]
            if holder.company_id != source_company_id:
                raise ForbiddenError("Only the company currently assigned to this job can share it")
            if any(link.company_id == target_company_id for link in links):
                raise ConflictError("That company is already part of this job's chain")
            # With carbon copies the source shares its own hop document
            share_job_id = holder.job_id or job_id

            self._expire_or_reject_pending(tx, share_job_id, target_company_id, now)

            if target_user_id is not None:
                if target_user_id not in company_user_ids(target):
                    raise ValidationError("Target user does not belong to the target company")
            else:
                target_user_id = resolve_responsible_user(target, self._resolvers)

            request = ShareRequest(
                id=new_id(),
                job_id=share_job_id,
                source_company_id=source_company_id,
                source_company_name=source.get("name"),
                source_user_id=source_user_id,
                target_company_id=target_company_id,
                target_user_id=target_user_id,
                proposed_fee=proposed_fee,
                expires_at=(
                    now + timedelta(hours=expires_in_hours) if expires_in_hours is not None else None
                ),
                expires_in_hours=expires_in_hours,
                auto_assigned=auto_assigned,
                create_carbon_copy=create_carbon_copy,
                created_at=now,
            )
            tx.insert(SHARE_REQUESTS, request.to_dict())

            shared = tx.get(JOBS, share_job_id)
            shared["shared_job_status"] = SHARED_PENDING
            tx.put(JOBS, shared)
            job_zip = shared.get("zip")

        logger.info(
            f"Share request {request.id}: job {share_job_id} {source_company_id} -> "
            f"{target_company_id} fee={request.proposed_fee} auto={auto_assigned}"
        )
        safe_emit(self._notifier, SHARE_REQUEST_CREATED, request.to_dict())

        partner = self._registry.get_partner(source_company_id, target_company_id)
        if partner is not None and partner.auto_accepts(job_zip):
            logger.info(f"Share request {request.id} auto-accepted by partner settings")
            return self._respond(
                request.id,
                True,
                responder_company_id=target_company_id,
                responder_user_id=None,
                counter_fee=None,
                decline_reason=None,
                visited=visited,
                depth=depth,
            )
        return request

    def _expire_or_reject_pending(
        self, tx: Transaction, job_id: str, target_company_id: str, now
    ) -> None:
        """Enforce one outstanding request per (job, target).

        A pending request past its deadline no longer counts and is marked
        expired here.
        """
        for doc in tx.query(
            SHARE_REQUESTS, job_id=job_id, target_company_id=target_company_id, status=PENDING
        ):
            existing = ShareRequest.from_dict(doc)
            if not existing.is_expired(now):
                raise ConflictError("A share request for this job is already pending with that company")
            doc["status"] = ShareRequestStatus.EXPIRED.value
            tx.put(SHARE_REQUESTS, doc)
            logger.info(f"Share request {existing.id} expired")

    # === Respond ===

    def respond(
        self,
        request_id: str,
        accept: bool,
        responder_company_id: Optional[str] = None,
        counter_fee: Optional[float] = None,
        decline_reason: Optional[str] = None,
        responder_user_id: Optional[str] = None,
    ) -> ShareRequest:
        """Accept or decline a share request.

        Check and mutation happen in one transaction: a second response to
        the same request fails with ConflictError, whichever arrives first.

        Args:
            request_id: Request to answer
            accept: True to accept, False to decline
            responder_company_id: Company answering (must be the target)
            counter_fee: Fee to accept at instead of the proposed one
            decline_reason: Reason recorded on decline
            responder_user_id: User answering

        Raises:
            NotFoundError: Request or job does not exist
            ForbiddenError: Responder is not the target company
            ConflictError: Request already answered, or the source no
                longer holds the job
            ExpiredError: Request deadline has passed
            ValidationError: Counter fee is not positive
        """
        return self._respond(
            request_id,
            accept,
            responder_company_id=responder_company_id,
            responder_user_id=responder_user_id,
            counter_fee=counter_fee,
            decline_reason=decline_reason,
            visited=frozenset(),
            depth=0,
        )

    def _respond(
        self,
        request_id: str,
        accept: bool,
        *,
        responder_company_id: Optional[str],
        responder_user_id: Optional[str],
        counter_fee: Optional[float],
        decline_reason: Optional[str],
        visited: FrozenSet[str],
        depth: int,
    ) -> ShareRequest:
        if accept and counter_fee is not None and (
            not math.isfinite(counter_fee) or counter_fee <= 0
        ):
            raise ValidationError("Fee must be greater than zero")

        now = self._now()
        with self._store.transaction() as tx:
            doc = tx.get(SHARE_REQUESTS, request_id)
            if doc is None:
                raise NotFoundError(f"Share request '{request_id}' not found")
            request = ShareRequest.from_dict(doc)
            if responder_company_id is not None and responder_company_id != request.target_company_id:
                raise ForbiddenError("Only the company the job was offered to can respond")
            if not request.is_pending:
                raise ConflictError(f"Share request already {request.status}")
            if request.is_expired(now):
                raise ExpiredError("This share request has expired")

            if accept:
                self._accept(tx, request, counter_fee)
            else:
                self._decline(tx, request, decline_reason)

            request.responded_at = now
            request.responded_by = responder_user_id or responder_company_id or request.target_company_id
            updated = request.to_dict()
            updated[VERSION_FIELD] = doc[VERSION_FIELD]
            tx.put(SHARE_REQUESTS, updated)

        logger.info(f"Share request {request_id} {request.status}")
        safe_emit(self._notifier, SHARE_REQUEST_RESPONDED, request.to_dict())

        if accept:
            self._cascade(request, visited, depth)
        return request

    def _accept(self, tx: Transaction, request: ShareRequest, counter_fee: Optional[float]) -> None:
        job = tx.get(JOBS, request.job_id)
        if job is None:
            raise NotFoundError(f"Job '{request.job_id}' not found")
        holder = self._chain.current_holder(tx, job)
        if holder.company_id != request.source_company_id:
            raise ConflictError("The job is no longer held by the company that shared it")

        fee = float(counter_fee) if counter_fee is not None else request.proposed_fee
        target = require_company(tx, request.target_company_id)
        link = self._chain.append_link(
            tx,
            request.job_id,
            company_id=request.target_company_id,
            company_name=target.get("name"),
            user_id=request.target_user_id,
            invoice_amount=fee,
            auto_assigned=request.auto_assigned,
            create_carbon_copy=request.create_carbon_copy,
        )

        shared = tx.get(JOBS, request.job_id)
        shared["shared_job_status"] = SHARED_ACCEPTED
        tx.put(JOBS, shared)

        self._registry.activate_partnership(tx, request.source_company_id, request.target_company_id)
        self._registry.record_share(
            tx, request.source_company_id, request.target_company_id, request.auto_assigned
        )

        request.status = ShareRequestStatus.ACCEPTED.value
        request.counter_fee = float(counter_fee) if counter_fee is not None else None
        request.accepted_fee = fee
        request.resulting_job_id = link.job_id

    def _decline(self, tx: Transaction, request: ShareRequest, decline_reason: Optional[str]) -> None:
        request.status = ShareRequestStatus.DECLINED.value
        request.decline_reason = decline_reason

        others = [
            doc
            for doc in tx.query(SHARE_REQUESTS, job_id=request.job_id, status=PENDING)
            if doc["id"] != request.id
        ]
        job = tx.get(JOBS, request.job_id)
        if job is not None and not others:
            job["shared_job_status"] = SHARED_DECLINED
            tx.put(JOBS, job)

    # === Cascade ===

    def _cascade(self, accepted: ShareRequest, visited: FrozenSet[str], depth: int) -> None:
        """Pass a just-accepted job on through the receiver's own zones."""
        if depth >= self._config.max_cascade_depth:
            logger.info(
                f"Cascade stopped at depth {depth} for job {accepted.resulting_job_id}"
            )
            return

        holder_id = accepted.target_company_id
        job_id = accepted.resulting_job_id
        try:
            job = self._store.get(JOBS, job_id)
            if job is None:
                return
            chain_companies = {link.company_id for link in self._chain.build_chain(job)}
            visited = frozenset(visited | chain_companies)

            match = select_match(
                self._registry.get_partners(holder_id), job.get("zip"), exclude_company_ids=visited
            )
            if match is None:
                return
            logger.info(
                f"Cascading job {job_id} from {holder_id} to {match.partner_company_id} "
                f"(hop {depth + 1})"
            )
            self._create(
                job_id,
                holder_id,
                match.partner_company_id,
                match.default_fee,
                None,
                source_user_id=None,
                target_user_id=None,
                auto_assigned=True,
                create_carbon_copy=accepted.create_carbon_copy,
                visited=visited,
                depth=depth + 1,
            )
        except JobShareError as e:
            logger.warning(f"Cascade from {holder_id} for job {job_id} stopped: {e}")

    # === Job-centric responses ===

    def update_shared_job_status(
        self,
        job_id: str,
        new_status: str,
        responder_company_id: str,
        decline_reason: Optional[str] = None,
        counter_fee: Optional[float] = None,
        responder_user_id: Optional[str] = None,
    ) -> ShareRequest:
        """Accept or decline the caller's pending request for a job.

        Raises:
            ValidationError: ``new_status`` is not accepted or declined
            NotFoundError: No pending request for this job and company
        """
        if new_status not in (SHARED_ACCEPTED, SHARED_DECLINED):
            raise ValidationError("Status must be 'accepted' or 'declined'")
        pending = self.list_incoming(responder_company_id, status=None, job_id=job_id)
        pending = [r for r in pending if r.is_pending]
        if not pending:
            raise NotFoundError("No pending share request for this job")
        request = pending[0]
        return self.respond(
            request.id,
            new_status == SHARED_ACCEPTED,
            responder_company_id=responder_company_id,
            counter_fee=counter_fee,
            decline_reason=decline_reason,
            responder_user_id=responder_user_id,
        )

    # === Queries ===

    def get(self, request_id: str) -> ShareRequest:
        doc = self._store.get(SHARE_REQUESTS, request_id)
        if doc is None:
            raise NotFoundError(f"Share request '{request_id}' not found")
        return ShareRequest.from_dict(doc)

    def effective_status(self, request: ShareRequest, now=None) -> str:
        return request.effective_status(now or self._now())

    def has_pending(self, job_id: str) -> bool:
        """Whether any unexpired request for the job awaits an answer."""
        now = self._now()
        return any(
            not ShareRequest.from_dict(doc).is_expired(now)
            for doc in self._store.query(SHARE_REQUESTS, job_id=job_id, status=PENDING)
        )

    def _list(self, field_name: str, company_id: str, status: Optional[str], **filters: Any) -> List[ShareRequest]:
        now = self._now()
        query: Dict[str, Any] = {field_name: company_id, **filters}
        requests = [ShareRequest.from_dict(d) for d in self._store.query(SHARE_REQUESTS, **query)]
        if status is not None:
            requests = [r for r in requests if r.effective_status(now) == status]
        requests.sort(key=lambda r: r.created_at or now, reverse=True)
        return requests

    def list_incoming(
        self, company_id: str, status: Optional[str] = PENDING, **filters: Any
    ) -> List[ShareRequest]:
        """Requests offered to a company, newest first.

        ``status`` is compared against the effective status, so expired
        requests never show up as pending.
        """
        return self._list("target_company_id", company_id, status, **filters)

    def list_outgoing(
        self, company_id: str, status: Optional[str] = None, **filters: Any
    ) -> List[ShareRequest]:
        """Requests a company has sent, newest first."""
        return self._list("source_company_id", company_id, status, **filters)
