"""
Chain encodings.

A chain of custody is persisted in one of two shapes:

- EMBEDDED: the job document carries the whole chain under
  ``job_share_chain.chain``; every company works on the same document.
- CARBON_COPY: each hop is a separate job document in the receiving
  company's namespace. Documents point at each other through
  ``share_chain.parent_job_id`` / ``share_chain.child_job_id`` and share a
  ``shared_job_number``; the root document keeps ``all_job_ids``.

Both adapters read into the same ``List[ChainLink]`` and append a link
through the same call, so chain logic never has to know which shape it is
working on.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Union

from jobshare.chain.models import CarbonCopyChain, ChainEncoding, ChainLink, JobShareChain
from jobshare.errors import ConflictError
from jobshare.storage import JOBS, DocumentStore, Transaction, format_datetime, new_id, parse_datetime

logger = logging.getLogger(__name__)

Reader = Union[DocumentStore, Transaction]

EMBEDDED_FIELD = "job_share_chain"
CARBON_COPY_FIELD = "share_chain"

# Job fields a downstream carbon copy inherits from the job it was shared from
COPIED_JOB_FIELDS = (
    "zip",
    "due_date",
    "recipient",
    "addresses",
    "service_type",
    "service_instructions",
    "priority",
    "case_number",
    "court_name",
    "plaintiff",
    "defendant",
)


def detect_encoding(job: Dict[str, Any]) -> Optional[ChainEncoding]:
    """Encoding a job already uses, or None if it was never shared."""
    if job.get(CARBON_COPY_FIELD):
        return ChainEncoding.CARBON_COPY
    embedded = job.get(EMBEDDED_FIELD) or {}
    if embedded.get("chain"):
        return ChainEncoding.EMBEDDED
    return None


def originator_link(job: Dict[str, Any]) -> ChainLink:
    """Level 0 link for a job that has not been shared yet."""
    fee = job.get("total_fee", job.get("service_fee"))
    return ChainLink(
        level=0,
        company_id=job["company_id"],
        company_name=job.get("company_name"),
        user_id=job.get("created_by"),
        invoice_amount=fee,
        sees_client_as=job.get("client_name"),
        auto_assigned=False,
        job_id=job["id"],
        created_at=parse_datetime(job.get("created_at")),
    )


class ChainAdapter(Protocol):
    """Reads and extends one physical chain encoding."""

    encoding: ChainEncoding

    def read(self, reader: Reader, job: Dict[str, Any]) -> List[ChainLink]: ...

    def append(self, tx: Transaction, job: Dict[str, Any], link: ChainLink) -> str: ...

    def set_invoice_amount(
        self, tx: Transaction, job: Dict[str, Any], link: ChainLink, amount: float
    ) -> None: ...


class EmbeddedChainAdapter:
    """Chain stored as an array on a single job document."""

    encoding = ChainEncoding.EMBEDDED

    def _chain_of(self, job: Dict[str, Any]) -> JobShareChain:
        embedded = job.get(EMBEDDED_FIELD) or {}
        chain = JobShareChain.from_dict(embedded)
        if not chain.chain:
            chain.chain = [originator_link(job)]
        for link in chain.chain:
            link.job_id = link.job_id or job["id"]
        if not chain.currently_assigned_to_company_id:
            chain.currently_assigned_to_company_id = chain.chain[-1].company_id
        return chain

    def read(self, reader: Reader, job: Dict[str, Any]) -> List[ChainLink]:
        return self._chain_of(job).chain

    def currently_assigned_to(self, job: Dict[str, Any]) -> str:
        return self._chain_of(job).currently_assigned_to_company_id

    def append(self, tx: Transaction, job: Dict[str, Any], link: ChainLink) -> str:
        """Append ``link`` and hand the job to its company. Returns the job id."""
        chain = self._chain_of(job)
        link.job_id = job["id"]
        chain.chain.append(link)
        chain.currently_assigned_to_company_id = link.company_id
        job[EMBEDDED_FIELD] = chain.to_dict()
        job["assigned_server_id"] = link.user_id
        tx.put(JOBS, job)
        return job["id"]

    def set_invoice_amount(
        self, tx: Transaction, job: Dict[str, Any], link: ChainLink, amount: float
    ) -> None:
        chain = self._chain_of(job)
        for existing in chain.chain:
            if existing.level == link.level:
                existing.invoice_amount = amount
        job[EMBEDDED_FIELD] = chain.to_dict()
        tx.put(JOBS, job)


class CarbonCopyChainAdapter:
    """Chain stored as one job document per hop, linked by pointers."""

    encoding = ChainEncoding.CARBON_COPY

    def _metadata(self, job: Dict[str, Any]) -> Optional[CarbonCopyChain]:
        data = job.get(CARBON_COPY_FIELD)
        return CarbonCopyChain.from_dict(data) if data else None

    def _link_of(self, job: Dict[str, Any]) -> ChainLink:
        meta = self._metadata(job)
        if meta is None:
            return originator_link(job)
        link = meta.to_link(job["id"], job["company_id"])
        if link.level == 0:
            link.company_name = link.company_name or job.get("company_name")
            link.sees_client_as = link.sees_client_as or job.get("client_name")
        return link

    def find_root(self, reader: Reader, job: Dict[str, Any]) -> Dict[str, Any]:
        """Follow ``parent_job_id`` pointers up to the level 0 document."""
        current = job
        seen = {job["id"]}
        while True:
            meta = self._metadata(current)
            if meta is None or not meta.parent_job_id:
                return current
            if meta.parent_job_id in seen:
                raise ConflictError(f"Carbon copy chain of job {job['id']} loops back on itself")
            parent = reader.get(JOBS, meta.parent_job_id)
            if parent is None:
                logger.warning(
                    f"Carbon copy {current['id']} points at missing parent {meta.parent_job_id}"
                )
                return current
            seen.add(parent["id"])
            current = parent

    def documents(self, reader: Reader, job: Dict[str, Any]) -> List[Dict[str, Any]]:
        """All hop documents from the root down, in chain order."""
        root = self.find_root(reader, job)
        docs = [root]
        seen = {root["id"]}
        meta = self._metadata(root)
        while meta is not None and meta.child_job_id:
            if meta.child_job_id in seen:
                raise ConflictError(f"Carbon copy chain of job {root['id']} loops back on itself")
            child = reader.get(JOBS, meta.child_job_id)
            if child is None:
                logger.warning(f"Carbon copy {docs[-1]['id']} points at missing child {meta.child_job_id}")
                break
            docs.append(child)
            seen.add(child["id"])
            meta = self._metadata(child)
        return docs

    def read(self, reader: Reader, job: Dict[str, Any]) -> List[ChainLink]:
        return [self._link_of(doc) for doc in self.documents(reader, job)]

    def append(self, tx: Transaction, job: Dict[str, Any], link: ChainLink) -> str:
        """Create the next hop's job document. Returns the new document's id.

        ``job`` must be the last document of the chain.
        """
        meta = self._metadata(job)
        if meta is not None and meta.child_job_id:
            raise ConflictError("This job has already been shared downstream")
        if meta is None:
            # First hand-off: the job becomes the root of a new carbon copy chain
            origin = originator_link(job)
            meta = CarbonCopyChain(
                root_job_id=job["id"],
                shared_job_number=job.get("job_number") or job["id"][:8].upper(),
                level=0,
                all_job_ids=[job["id"]],
                company_name=origin.company_name,
                user_id=origin.user_id,
                invoice_amount=origin.invoice_amount,
                sees_client_as=origin.sees_client_as,
                created_at=origin.created_at,
            )

        child_id = new_id()
        child_meta = CarbonCopyChain(
            root_job_id=meta.root_job_id,
            shared_job_number=meta.shared_job_number,
            level=link.level,
            parent_job_id=job["id"],
            sync_enabled=meta.sync_enabled,
            company_name=link.company_name,
            user_id=link.user_id,
            invoice_amount=link.invoice_amount,
            sees_client_as=link.sees_client_as,
            auto_assigned=link.auto_assigned,
            created_at=link.created_at,
        )
        child = {field: job[field] for field in COPIED_JOB_FIELDS if field in job}
        child.update(
            {
                "id": child_id,
                "company_id": link.company_id,
                "job_number": meta.shared_job_number,
                "client_name": link.sees_client_as,
                "status": "pending",
                "is_closed": False,
                "assigned_server_id": link.user_id,
                "service_fee": link.invoice_amount,
                "shared_job_status": "accepted",
                "created_at": format_datetime(link.created_at),
                CARBON_COPY_FIELD: child_meta.to_dict(),
            }
        )
        tx.insert(JOBS, child)

        meta.child_job_id = child_id
        if meta.root_job_id == job["id"]:
            meta.all_job_ids.append(child_id)
            job[CARBON_COPY_FIELD] = meta.to_dict()
            tx.put(JOBS, job)
        else:
            job[CARBON_COPY_FIELD] = meta.to_dict()
            tx.put(JOBS, job)
            root = tx.get(JOBS, meta.root_job_id)
            if root is not None:
                root_meta = self._metadata(root)
                root_meta.all_job_ids.append(child_id)
                root[CARBON_COPY_FIELD] = root_meta.to_dict()
                tx.put(JOBS, root)

        link.job_id = child_id
        return child_id

    def set_invoice_amount(
        self, tx: Transaction, job: Dict[str, Any], link: ChainLink, amount: float
    ) -> None:
        doc = tx.get(JOBS, link.job_id)
        meta = self._metadata(doc) if doc else None
        if meta is None:
            return
        meta.invoice_amount = amount
        doc[CARBON_COPY_FIELD] = meta.to_dict()
        if link.level > 0:
            doc["service_fee"] = amount
        tx.put(JOBS, doc)


EMBEDDED = EmbeddedChainAdapter()
CARBON_COPY = CarbonCopyChainAdapter()

ADAPTERS: Dict[ChainEncoding, ChainAdapter] = {
    ChainEncoding.EMBEDDED: EMBEDDED,
    ChainEncoding.CARBON_COPY: CARBON_COPY,
}


def adapter_for(job: Dict[str, Any], create_carbon_copy: bool = False) -> ChainAdapter:
    """Pick the adapter for a job, or for its first hand-off."""
    encoding = detect_encoding(job)
    if encoding is None:
        encoding = ChainEncoding.CARBON_COPY if create_carbon_copy else ChainEncoding.EMBEDDED
    return ADAPTERS[encoding]
