"""
Chain builder and privacy view.

Reconstructs a job's chain of custody regardless of how it is stored, and
cuts it down to what one participant may see: itself and its immediate
neighbours. Nobody learns who sits two hops away, or what they are paid.
"""

import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from jobshare.chain.encodings import Reader, adapter_for
from jobshare.chain.models import ChainLink, ChainView
from jobshare.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from jobshare.storage import COMPANIES, JOBS, DocumentStore, Transaction, utc_now

logger = logging.getLogger(__name__)

JobRef = Union[str, Dict[str, Any]]


def get_visible_chain(chain: Sequence[ChainLink], viewer_company_id: str) -> List[ChainLink]:
    """Return the viewer's link and its immediate neighbours.

    Raises:
        ForbiddenError: If the viewer is not part of the chain
    """
    index = next(
        (i for i, link in enumerate(chain) if link.company_id == viewer_company_id), None
    )
    if index is None:
        raise ForbiddenError("You are not part of this job's chain")
    return list(chain[max(index - 1, 0) : index + 2])


class ChainBuilder:
    """Reads, extends and filters chains of custody."""

    def __init__(self, store: DocumentStore, now_fn: Callable = utc_now):
        self._store = store
        self._now = now_fn

    def _load(self, reader: Reader, job: JobRef) -> Dict[str, Any]:
        if isinstance(job, dict):
            return job
        doc = reader.get(JOBS, job)
        if doc is None:
            raise NotFoundError(f"Job '{job}' not found")
        return doc

    def _fill_company_names(self, reader: Reader, links: List[ChainLink]) -> List[ChainLink]:
        for link in links:
            if not link.company_name:
                company = reader.get(COMPANIES, link.company_id)
                link.company_name = company.get("name") if company else None
        return links

    def read_links(self, reader: Reader, job: JobRef) -> List[ChainLink]:
        """Chain of ``job`` as seen through ``reader`` (a store or a transaction)."""
        doc = self._load(reader, job)
        links = adapter_for(doc).read(reader, doc)
        return self._fill_company_names(reader, links)

    def build_chain(self, job: JobRef) -> List[ChainLink]:
        """Ordered chain of custody, level 0 first.

        A job that was never shared yields a single originator link.
        """
        return self.read_links(self._store, job)

    def current_holder(self, reader: Reader, job: JobRef) -> ChainLink:
        """The last link: the company currently responsible for the job."""
        return self.read_links(reader, job)[-1]

    def append_link(
        self,
        tx: Transaction,
        job_id: str,
        *,
        company_id: str,
        company_name: Optional[str] = None,
        user_id: Optional[str] = None,
        invoice_amount: Optional[float] = None,
        auto_assigned: bool = False,
        create_carbon_copy: bool = False,
    ) -> ChainLink:
        """Hand the job to ``company_id`` by appending a link at the next level.

        Args:
            tx: Open transaction the write belongs to
            job_id: Job document held by the current last link
            company_id: Company receiving the job
            company_name: Its display name
            user_id: Responsible user at the receiving company
            invoice_amount: Fee the current holder pays the receiver
            auto_assigned: Whether the hand-off was automatic
            create_carbon_copy: Store the chain as per-hop documents if the
                job has not been shared before

        Returns:
            The written ChainLink (``job_id`` is the receiver's job document)

        Raises:
            ConflictError: The company is already in the chain
        """
        job = self._load(tx, job_id)
        adapter = adapter_for(job, create_carbon_copy)
        links = self._fill_company_names(tx, adapter.read(tx, job))
        if any(link.company_id == company_id for link in links):
            raise ConflictError("That company is already part of this job's chain")
        tail = links[-1]
        if tail.job_id and tail.job_id != job["id"]:
            raise ConflictError("Only the last job in the chain can be shared further")

        link = ChainLink(
            level=tail.level + 1,
            company_id=company_id,
            company_name=company_name,
            user_id=user_id,
            invoice_amount=invoice_amount,
            sees_client_as=tail.company_name,
            auto_assigned=auto_assigned,
            created_at=self._now(),
        )
        adapter.append(tx, job, link)
        logger.info(
            f"Chain {job['id']}: level {link.level} -> {company_id} ({adapter.encoding.value})"
        )
        return link

    def get_visible_chain(self, chain: Sequence[ChainLink], viewer_company_id: str) -> List[ChainLink]:
        return get_visible_chain(chain, viewer_company_id)

    def view(self, job_id: str, viewer_company_id: str) -> ChainView:
        """Privacy-filtered chain for one participant.

        The upstream neighbour is shown without its invoice amount and
        client name, which describe the company two hops up.
        """
        chain = self.build_chain(job_id)
        visible = get_visible_chain(chain, viewer_company_id)
        viewer = next(link for link in visible if link.company_id == viewer_company_id)
        links = [
            link.redacted() if link.level < viewer.level else link
            for link in visible
        ]
        return ChainView(
            job_id=job_id,
            viewer_company_id=viewer_company_id,
            viewer_level=viewer.level,
            links=links,
            total_levels=len(chain) - 1,
            is_currently_assigned=chain[-1].company_id == viewer_company_id,
        )

    def correct_invoice_amount(
        self,
        job_id: str,
        company_id: str,
        amount: float,
        actor_company_id: Optional[str] = None,
    ) -> ChainLink:
        """Fix the invoice amount on ``company_id``'s link.

        Allowed only while that link is still the last one, and only for the
        company itself or the company paying it.

        Raises:
            ValidationError: Amount is not positive
            ForbiddenError: Actor may not edit this link
            ConflictError: The job has been shared further since
        """
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise ValidationError("Invoice amount must be greater than zero")
        actor = actor_company_id or company_id

        with self._store.transaction() as tx:
            job = self._load(tx, job_id)
            adapter = adapter_for(job)
            links = adapter.read(tx, job)
            index = next(
                (i for i, link in enumerate(links) if link.company_id == company_id), None
            )
            if index is None:
                raise ForbiddenError("You are not part of this job's chain")
            link = links[index]
            allowed = {company_id}
            if index > 0:
                allowed.add(links[index - 1].company_id)
            if actor not in allowed:
                raise ForbiddenError("Only the company or its client can correct this invoice")
            if index != len(links) - 1:
                raise ConflictError("Invoice can no longer be changed once the job was shared on")

            adapter.set_invoice_amount(tx, job, link, float(amount))
            link.invoice_amount = float(amount)

        logger.info(f"Chain {job_id}: level {link.level} invoice corrected to {amount}")
        return link
