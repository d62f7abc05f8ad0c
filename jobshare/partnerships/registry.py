"""
Partnership registry.

Manages the trust relationships between companies:
- Partnership requests and their responses
- Symmetric partner entries on both companies
- Per-partner auto-assignment zones and acceptance rules

Partner entries live in an array on the company document. The counterpart
company can touch the same array (for example when it accepts a share and
activates the partnership), so edits never overwrite the whole array: the
exact entry that was read is located again inside the transaction and only
that element is replaced.
"""

import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from jobshare.config import DEFAULT_CONFIG, JobShareConfig
from jobshare.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from jobshare.notifications import (
    PARTNERSHIP_REQUESTED,
    PARTNERSHIP_RESPONDED,
    Notifier,
    safe_emit,
)
from jobshare.partnerships.models import (
    AutoAssignmentZone,
    Partnership,
    PartnershipRequest,
    PartnershipRequestStatus,
    PartnershipStatus,
)
from jobshare.storage import (
    COMPANIES,
    PARTNERSHIP_REQUESTS,
    DocumentStore,
    Transaction,
    format_datetime,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)

PARTNERS_FIELD = "job_share_partners"

ZoneInput = Union[AutoAssignmentZone, Dict[str, Any]]


def find_partner_entry(
    company: Dict[str, Any], partner_company_id: str
) -> Tuple[Optional[int], Optional[Dict[str, Any]]]:
    """Locate a partner entry in a company document."""
    for index, entry in enumerate(company.get(PARTNERS_FIELD) or []):
        if entry.get("partner_company_id") == partner_company_id:
            return index, entry
    return None, None


def require_company(reader: Union[DocumentStore, Transaction], company_id: str) -> Dict[str, Any]:
    company = reader.get(COMPANIES, company_id) if company_id else None
    if company is None:
        raise NotFoundError(f"Company '{company_id}' not found")
    return company


class PartnershipRegistry:
    """Registry of partnerships between companies."""

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

    # === Partnership requests ===

    def request_partnership(
        self,
        requester_company_id: str,
        target_company_id: str,
        message: str = "",
        requester_user_id: Optional[str] = None,
    ) -> PartnershipRequest:
        """Ask another company to become a partner.

        Args:
            requester_company_id: Company sending the request
            target_company_id: Company receiving the request
            message: Optional note shown to the target
            requester_user_id: User sending the request

        Returns:
            The pending PartnershipRequest

        Raises:
            ValidationError: Self-request or oversized message
            NotFoundError: Either company does not exist
            ConflictError: A request is already pending, or the companies
                are already active partners
        """
        message = (message or "").strip()
        if len(message) > self._config.max_message_length:
            raise ValidationError(
                f"Message too long (max {self._config.max_message_length} characters)"
            )
        if requester_company_id == target_company_id:
            raise ValidationError("A company cannot partner with itself")

        with self._store.transaction() as tx:
            requester = require_company(tx, requester_company_id)
            require_company(tx, target_company_id)

            for doc in tx.query(PARTNERSHIP_REQUESTS, status=PartnershipRequestStatus.PENDING.value):
                if PartnershipRequest.from_dict(doc).involves(
                    requester_company_id, target_company_id
                ):
                    raise ConflictError("A partnership request has already been sent")

            _, entry = find_partner_entry(requester, target_company_id)
            if entry and entry.get("relationship_status") == PartnershipStatus.ACTIVE.value:
                raise ConflictError("These companies are already partners")

            request = PartnershipRequest(
                id=new_id(),
                requesting_company_id=requester_company_id,
                requesting_company_name=requester.get("name"),
                requesting_user_id=requester_user_id,
                target_company_id=target_company_id,
                message=message,
                created_at=self._now(),
            )
            tx.insert(PARTNERSHIP_REQUESTS, request.to_dict())

        logger.info(
            f"Partnership requested: {requester_company_id} -> {target_company_id} ({request.id})"
        )
        safe_emit(self._notifier, PARTNERSHIP_REQUESTED, request.to_dict())
        return request

    def respond_to_partnership_request(
        self,
        request_id: str,
        accept: bool,
        responder_company_id: str,
        responder_user_id: Optional[str] = None,
    ) -> PartnershipRequest:
        """Accept or decline a partnership request.

        Accepting activates partner entries on both companies. Declining is
        terminal and has no other effect.

        Raises:
            NotFoundError: Request does not exist
            ForbiddenError: Responder is not the target company
            ConflictError: Request was already answered
        """
        with self._store.transaction() as tx:
            doc = tx.get(PARTNERSHIP_REQUESTS, request_id)
            if doc is None:
                raise NotFoundError(f"Partnership request '{request_id}' not found")
            request = PartnershipRequest.from_dict(doc)
            if request.target_company_id != responder_company_id:
                raise ForbiddenError("Only the invited company can respond to this request")
            if not request.is_pending:
                raise ConflictError(f"Partnership request already {request.status}")

            now = self._now()
            request.status = (
                PartnershipRequestStatus.ACCEPTED.value
                if accept
                else PartnershipRequestStatus.DECLINED.value
            )
            request.responded_at = now
            request.responded_by = responder_user_id or responder_company_id
            updated = request.to_dict()
            updated["_version"] = doc["_version"]
            tx.put(PARTNERSHIP_REQUESTS, updated)

            if accept:
                self.activate_partnership(
                    tx, request.requesting_company_id, request.target_company_id
                )

        logger.info(f"Partnership request {request_id} {request.status}")
        safe_emit(self._notifier, PARTNERSHIP_RESPONDED, request.to_dict())
        return request

    def list_partnership_requests(
        self,
        company_id: str,
        incoming: bool = True,
        status: Optional[str] = PartnershipRequestStatus.PENDING.value,
    ) -> List[PartnershipRequest]:
        """List requests received (or sent, with ``incoming=False``) by a company."""
        field_name = "target_company_id" if incoming else "requesting_company_id"
        filters: Dict[str, Any] = {field_name: company_id}
        if status is not None:
            filters["status"] = status
        requests = [PartnershipRequest.from_dict(d) for d in self._store.query(PARTNERSHIP_REQUESTS, **filters)]
        requests.sort(key=lambda r: r.created_at or self._now(), reverse=True)
        return requests

    # === Partner entries ===

    def activate_partnership(self, tx: Transaction, company_a_id: str, company_b_id: str) -> bool:
        """Create or activate the partner entries on both sides.

        Runs inside the caller's transaction so that it commits or rolls
        back together with whatever triggered it.

        Returns:
            True if either side changed
        """
        changed = False
        for owner_id, partner_id in ((company_a_id, company_b_id), (company_b_id, company_a_id)):
            if self._activate_entry(tx, owner_id, partner_id):
                changed = True
        if changed:
            logger.info(f"Partnership active: {company_a_id} <-> {company_b_id}")
        return changed

    def _activate_entry(self, tx: Transaction, owner_id: str, partner_id: str) -> bool:
        owner = require_company(tx, owner_id)
        partner = require_company(tx, partner_id)
        now = self._now()
        index, entry = find_partner_entry(owner, partner_id)
        partners = list(owner.get(PARTNERS_FIELD) or [])

        if entry is None:
            partners.append(
                Partnership(
                    company_id=owner_id,
                    partner_company_id=partner_id,
                    partner_company_name=partner.get("name"),
                    status=PartnershipStatus.ACTIVE,
                    established_at=now,
                    created_at=now,
                    updated_at=now,
                ).to_dict()
            )
        elif entry.get("relationship_status") != PartnershipStatus.ACTIVE.value:
            revived = dict(entry)
            revived["relationship_status"] = PartnershipStatus.ACTIVE.value
            revived["established_at"] = format_datetime(now)
            revived["updated_at"] = format_datetime(now)
            partners[index] = revived
        else:
            return False

        owner[PARTNERS_FIELD] = partners
        tx.put(COMPANIES, owner)
        return True

    def record_share(
        self, tx: Transaction, company_id: str, partner_company_id: str, auto_assigned: bool
    ) -> None:
        """Bump hand-off counters on the sharing company's entry."""
        company = require_company(tx, company_id)
        index, entry = find_partner_entry(company, partner_company_id)
        if entry is None:
            return
        updated = dict(entry)
        updated["total_jobs_shared"] = int(entry.get("total_jobs_shared") or 0) + 1
        if auto_assigned:
            updated["auto_assigned_count"] = int(entry.get("auto_assigned_count") or 0) + 1
        updated["last_shared_at"] = format_datetime(self._now())
        company[PARTNERS_FIELD][index] = updated
        tx.put(COMPANIES, company)

    def get_partners(self, company_id: str, status: Optional[str] = None) -> List[Partnership]:
        """List a company's partners, optionally filtered by status."""
        company = require_company(self._store, company_id)
        partners = [
            Partnership.from_dict(entry, company_id=company_id)
            for entry in company.get(PARTNERS_FIELD) or []
        ]
        if status is not None:
            partners = [p for p in partners if p.status == status]
        return partners

    def get_partner(self, company_id: str, partner_company_id: str) -> Optional[Partnership]:
        company = require_company(self._store, company_id)
        _, entry = find_partner_entry(company, partner_company_id)
        return Partnership.from_dict(entry, company_id=company_id) if entry else None

    def are_partners(self, company_a_id: str, company_b_id: str) -> bool:
        partner = self.get_partner(company_a_id, company_b_id)
        return partner is not None and partner.is_active

    def update_partner_settings(
        self,
        company_id: str,
        partner_company_id: str,
        *,
        auto_assignment_enabled: Optional[bool] = None,
        zones: Optional[Sequence[ZoneInput]] = None,
        requires_acceptance: Optional[bool] = None,
        email_notifications_enabled: Optional[bool] = None,
        expected_entry: Optional[Dict[str, Any]] = None,
    ) -> Partnership:
        """Replace one partner's auto-assignment settings.

        Args:
            company_id: Company editing its settings
            partner_company_id: Partner whose entry is edited
            auto_assignment_enabled: New flag (None = no change)
            zones: New zone list (None = no change)
            requires_acceptance: New flag (None = no change)
            email_notifications_enabled: New flag (None = no change)
            expected_entry: The entry as the caller last saw it. Defaults to
                the entry read at the start of this call.

        Returns:
            The updated Partnership

        Raises:
            NotFoundError: Company or partner entry does not exist
            ValidationError: Enabled without zip codes or with a non-positive fee
            ConflictError: The entry changed since it was read
        """
        company = require_company(self._store, company_id)
        _, current = find_partner_entry(company, partner_company_id)
        if current is None:
            raise NotFoundError(f"Partner '{partner_company_id}' not found")
        snapshot = expected_entry if expected_entry is not None else current

        existing = Partnership.from_dict(snapshot, company_id=company_id)
        enabled = (
            existing.auto_assignment_enabled
            if auto_assignment_enabled is None
            else auto_assignment_enabled
        )
        if zones is None:
            new_zones = existing.auto_assignment_zones
        else:
            new_zones = [
                z if isinstance(z, AutoAssignmentZone) else AutoAssignmentZone.from_dict(z)
                for z in zones
            ]
        if enabled:
            self._validate_zones(new_zones)
        else:
            new_zones = []

        updated = dict(snapshot)
        updated["auto_assignment_enabled"] = enabled
        updated["auto_assignment_zones"] = [z.to_dict() for z in new_zones]
        if requires_acceptance is not None:
            updated["requires_acceptance"] = requires_acceptance
        if email_notifications_enabled is not None:
            updated["email_notifications_enabled"] = email_notifications_enabled
        updated["updated_at"] = format_datetime(self._now())

        with self._store.transaction() as tx:
            fresh = require_company(tx, company_id)
            partners = list(fresh.get(PARTNERS_FIELD) or [])
            index = next((i for i, entry in enumerate(partners) if entry == snapshot), None)
            if index is None:
                logger.warning(
                    f"Partner entry {company_id}->{partner_company_id} changed concurrently"
                )
                raise ConflictError(
                    "Partner settings were changed by someone else; reload and try again"
                )
            partners[index] = updated
            fresh[PARTNERS_FIELD] = partners
            tx.put(COMPANIES, fresh)

        logger.info(
            f"Updated partner settings {company_id}->{partner_company_id} "
            f"(auto_assign={enabled}, zones={len(new_zones)})"
        )
        return Partnership.from_dict(updated, company_id=company_id)

    def _validate_zones(self, zones: Sequence[AutoAssignmentZone]) -> None:
        if not zones:
            raise ValidationError("Please enter at least one ZIP code for auto-assignment")
        for zone in zones:
            if not zone.zip_codes:
                raise ValidationError("Please enter at least one ZIP code for auto-assignment")
            short = [z for z in zone.zip_codes if len(z) < self._config.min_zip_length]
            if short:
                raise ValidationError(f"Invalid ZIP code(s): {', '.join(short)}")
            if not math.isfinite(zone.default_fee) or zone.default_fee <= 0:
                raise ValidationError("Default fee must be greater than zero")

    def remove_partner(self, company_id: str, partner_company_id: str) -> None:
        """End a partnership on both sides.

        Entries are kept with status ``declined`` and auto-assignment off, so
        history counters survive a later re-activation.
        """
        with self._store.transaction() as tx:
            for owner_id, partner_id in (
                (company_id, partner_company_id),
                (partner_company_id, company_id),
            ):
                owner = require_company(tx, owner_id)
                index, entry = find_partner_entry(owner, partner_id)
                if entry is None:
                    if owner_id == company_id:
                        raise NotFoundError(f"Partner '{partner_id}' not found")
                    continue
                ended = dict(entry)
                ended["relationship_status"] = PartnershipStatus.DECLINED.value
                ended["auto_assignment_enabled"] = False
                ended["auto_assignment_zones"] = []
                ended["updated_at"] = format_datetime(self._now())
                owner[PARTNERS_FIELD][index] = ended
                tx.put(COMPANIES, owner)
        logger.info(f"Partnership ended: {company_id} <-> {partner_company_id}")
