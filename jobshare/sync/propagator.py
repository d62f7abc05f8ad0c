"""
Status sync propagator.

When the originating job of a carbon-copy chain reaches a terminal status,
every downstream copy is brought to the same status together with the
service date and affidavit references. Propagation only flows downwards, and
a copy that already reached a terminal status of its own is left alone.

Each copy is written in its own transaction so that one unreachable copy
does not hold back the others. Copies that keep failing are queued in the
``sync_queue`` collection and retried later; after too many retries they
are parked as dead letters for manual attention.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from jobshare.chain.models import CarbonCopyChain
from jobshare.config import DEFAULT_CONFIG, JobShareConfig
from jobshare.errors import NotFoundError
from jobshare.notifications import JOB_STATUS_SYNCED, Notifier, safe_emit
from jobshare.storage import JOBS, SYNC_QUEUE, DocumentStore, format_datetime, new_id, utc_now

logger = logging.getLogger(__name__)

# Fields copied alongside the status
SYNC_FIELDS = ("service_date", "affidavit_ids")

QUEUE_PENDING = "pending"
QUEUE_DEAD_LETTER = "dead_letter"


@dataclass
class SyncResult:
    """Outcome of one propagation run."""

    updated: List[str] = field(default_factory=list)  # Copies written
    skipped: List[str] = field(default_factory=list)  # Copies already terminal
    failed: List[str] = field(default_factory=list)  # Copies queued for retry

    @property
    def success(self) -> bool:
        return len(self.failed) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated": list(self.updated),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }


class StatusSyncPropagator:
    """Pushes terminal statuses down a carbon-copy chain."""

    def __init__(
        self,
        store: DocumentStore,
        config: Optional[JobShareConfig] = None,
        notifier: Optional[Notifier] = None,
        now_fn: Callable = utc_now,
    ):
        self._store = store
        self._config = config or DEFAULT_CONFIG
        self._notifier = notifier
        self._now = now_fn

    def propagate(self, job_id: str) -> SyncResult:
        """Propagate the status of ``job_id`` to its downstream copies.

        Does nothing unless the job is the root of a carbon-copy chain with
        sync enabled and its status is terminal.
        """
        result = SyncResult()
        job = self._store.get(JOBS, job_id)
        if job is None:
            raise NotFoundError(f"Job '{job_id}' not found")

        data = job.get("share_chain")
        if not data:
            logger.debug(f"Job {job_id} is not a carbon copy chain, nothing to sync")
            return result
        meta = CarbonCopyChain.from_dict(data)
        if meta.level != 0 or meta.parent_job_id:
            logger.debug(f"Job {job_id} is a downstream copy; status does not flow upwards")
            return result
        if not meta.sync_enabled:
            logger.debug(f"Status sync disabled for chain {meta.shared_job_number}")
            return result
        if not self._config.is_terminal(job.get("status")):
            return result

        payload = self._payload(job)
        for target_id in meta.all_job_ids:
            if target_id == job_id:
                continue
            self._sync_target(job_id, target_id, payload, result)

        logger.info(
            f"Status sync from {job_id} ({payload['status']}): updated={len(result.updated)}, "
            f"skipped={len(result.skipped)}, failed={len(result.failed)}"
        )
        safe_emit(
            self._notifier,
            JOB_STATUS_SYNCED,
            {"job_id": job_id, "status": payload["status"], **result.to_dict()},
        )
        return result

    def _payload(self, job: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "status": job["status"],
            "is_closed": True,
            "synced_from_job_id": job["id"],
        }
        for name in SYNC_FIELDS:
            if name in job:
                payload[name] = job[name]
        return payload

    def _apply(self, target_id: str, payload: Dict[str, Any]) -> bool:
        """Write ``payload`` to one copy. Returns False if the copy was skipped."""
        with self._store.transaction() as tx:
            doc = tx.get(JOBS, target_id)
            if doc is None:
                raise NotFoundError(f"Job '{target_id}' not found")
            if self._config.is_terminal(doc.get("status")):
                return False
            doc.update(payload)
            doc["synced_at"] = format_datetime(self._now())
            tx.put(JOBS, doc)
        return True

    def _sync_target(
        self, root_id: str, target_id: str, payload: Dict[str, Any], result: SyncResult
    ) -> None:
        last_error = None
        for attempt in range(1, self._config.sync_max_attempts + 1):
            try:
                if self._apply(target_id, payload):
                    result.updated.append(target_id)
                else:
                    result.skipped.append(target_id)
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Sync {root_id} -> {target_id} failed "
                    f"(attempt {attempt}/{self._config.sync_max_attempts}): {e}"
                )

        result.failed.append(target_id)
        self._enqueue(root_id, target_id, payload, str(last_error)[:500])

    # === Retry queue ===

    def _enqueue(self, root_id: str, target_id: str, payload: Dict[str, Any], error: str) -> None:
        now = format_datetime(self._now())
        with self._store.transaction() as tx:
            existing = tx.query(SYNC_QUEUE, target_job_id=target_id, status=QUEUE_PENDING)
            if existing:
                entry = existing[0]
                entry.update({"payload": payload, "last_error": error, "updated_at": now})
                tx.put(SYNC_QUEUE, entry)
                return
            tx.insert(
                SYNC_QUEUE,
                {
                    "id": new_id(),
                    "root_job_id": root_id,
                    "target_job_id": target_id,
                    "payload": payload,
                    "status": QUEUE_PENDING,
                    "retry_count": 0,
                    "last_error": error,
                    "created_at": now,
                    "updated_at": now,
                },
            )
        logger.info(f"Queued status sync {root_id} -> {target_id} for retry")

    def pending(self) -> List[Dict[str, Any]]:
        return self._store.query(SYNC_QUEUE, status=QUEUE_PENDING)

    def dead_letters(self) -> List[Dict[str, Any]]:
        return self._store.query(SYNC_QUEUE, status=QUEUE_DEAD_LETTER)

    def retry_failed(self) -> SyncResult:
        """Retry every queued sync once.

        Entries that still fail have their retry count bumped; once it
        reaches ``sync_max_retries`` they move to the dead letter state.
        """
        result = SyncResult()
        for entry in self.pending():
            target_id = entry["target_job_id"]
            try:
                applied = self._apply(target_id, entry["payload"])
            except Exception as e:
                result.failed.append(target_id)
                self._record_failure(entry, str(e)[:500])
                continue

            (result.updated if applied else result.skipped).append(target_id)
            with self._store.transaction() as tx:
                tx.delete(SYNC_QUEUE, entry["id"])

        if result.updated or result.failed:
            logger.info(
                f"Sync retry: updated={len(result.updated)}, skipped={len(result.skipped)}, "
                f"failed={len(result.failed)}"
            )
        return result

    def _record_failure(self, entry: Dict[str, Any], error: str) -> None:
        retry_count = int(entry.get("retry_count") or 0) + 1
        entry["retry_count"] = retry_count
        entry["last_error"] = error
        entry["updated_at"] = format_datetime(self._now())
        if retry_count >= self._config.sync_max_retries:
            entry["status"] = QUEUE_DEAD_LETTER
            logger.warning(
                f"Status sync to {entry['target_job_id']} exceeded max retries, "
                f"moving to dead letter queue"
            )
        else:
            logger.warning(
                f"Status sync to {entry['target_job_id']} failed "
                f"(retry {retry_count}/{self._config.sync_max_retries}): {error}"
            )
        with self._store.transaction() as tx:
            tx.put(SYNC_QUEUE, entry)

    def requeue_dead_letters(self) -> int:
        """Move dead letters back to the retry queue with a fresh count."""
        count = 0
        with self._store.transaction() as tx:
            for entry in tx.query(SYNC_QUEUE, status=QUEUE_DEAD_LETTER):
                entry["status"] = QUEUE_PENDING
                entry["retry_count"] = 0
                tx.put(SYNC_QUEUE, entry)
                count += 1
        return count
