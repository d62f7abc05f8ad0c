"""Tests for the share request lifecycle."""

import pytest

from jobshare.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    NoResponsibleUserError,
    NotFoundError,
    ValidationError,
)
from jobshare.notifications import SHARE_REQUEST_CREATED, SHARE_REQUEST_RESPONDED
from jobshare.requests import (
    ShareRequest,
    ShareRequestStatus,
    admin_resolver,
    company_user_ids,
    first_user_resolver,
    resolve_responsible_user,
)
from jobshare.storage import JOBS, SHARE_REQUESTS

PENDING = ShareRequestStatus.PENDING_ACCEPTANCE.value


@pytest.fixture
def job(companies, add_job):
    return add_job("job-1", "acme")


def share(sharing, source="acme", job_id="job-1", target="beta", fee=75.0, **kwargs):
    return sharing.create_job_share_request(source, job_id, target, proposed_fee=fee, **kwargs)


# =============================================================================
# Creating requests
# =============================================================================


class TestCreateShareRequest:
    def test_creates_pending_request(self, sharing, job, store, notifier):
        """A manual share request waits for the target and marks the job."""
        request = share(sharing, user_id="owner-acme")

        assert request.status == PENDING
        assert request.proposed_fee == 75.0
        assert request.source_company_name == "Acme"
        assert request.source_user_id == "owner-acme"
        assert request.target_user_id == "owner-beta"
        assert request.expires_at is None
        assert store.get(JOBS, "job-1")["shared_job_status"] == "pending_acceptance"
        assert notifier.of_type(SHARE_REQUEST_CREATED)[0]["id"] == request.id

    def test_expiry_window(self, sharing, job, clock):
        request = share(sharing, expires_in_hours=24)
        assert request.expires_in_hours == 24
        assert (request.expires_at - clock.now()).total_seconds() == 24 * 3600

    @pytest.mark.parametrize("fee", [0, -10, None, float("nan"), float("inf")])
    def test_fee_must_be_positive(self, sharing, job, fee):
        with pytest.raises(ValidationError):
            share(sharing, fee=fee)

    def test_expiry_must_be_positive(self, sharing, job):
        with pytest.raises(ValidationError):
            share(sharing, expires_in_hours=0)

    def test_cannot_share_with_self(self, sharing, job):
        with pytest.raises(ValidationError):
            share(sharing, target="acme")

    def test_unknown_job_or_company(self, sharing, job):
        with pytest.raises(NotFoundError):
            share(sharing, job_id="missing")
        with pytest.raises(NotFoundError):
            share(sharing, target="nobody")

    def test_only_holder_can_share(self, sharing, job):
        """A company that does not hold the job cannot hand it off."""
        with pytest.raises(ForbiddenError):
            share(sharing, source="beta", target="gamma")

    def test_duplicate_pending_request_conflicts(self, sharing, job):
        share(sharing)
        with pytest.raises(ConflictError, match="already pending"):
            share(sharing)

    def test_expired_request_does_not_block(self, sharing, job, clock, store):
        """Once the old request lapses, a new one may be sent and the old one is closed out."""
        old = share(sharing, expires_in_hours=1)
        clock.advance(hours=2)

        new = share(sharing)
        assert new.id != old.id
        assert store.get(SHARE_REQUESTS, old.id)["status"] == ShareRequestStatus.EXPIRED.value

    def test_declined_request_does_not_block(self, sharing, job):
        first = share(sharing)
        sharing.respond_to_share_request("beta", first.id, accept=False)
        second = share(sharing)
        assert second.status == PENDING

    def test_target_already_in_chain_conflicts(self, sharing, job):
        request = share(sharing)
        sharing.respond_to_share_request("beta", request.id, accept=True)
        with pytest.raises(ConflictError, match="already part"):
            share(sharing, source="beta", target="acme")

    def test_explicit_target_user_must_belong_to_target(self, sharing, job, add_company):
        add_company("echo", users=[{"id": "u-server", "role": "server"}])
        with pytest.raises(ValidationError):
            share(sharing, target="echo", target_user_id="owner-beta")
        request = share(sharing, target="echo", target_user_id="u-server")
        assert request.target_user_id == "u-server"

    def test_no_responsible_user(self, sharing, job, add_company):
        add_company("ghost", owner_id=None, users=[])
        with pytest.raises(NoResponsibleUserError):
            share(sharing, target="ghost")
        # The failed attempt left nothing behind
        assert sharing.outgoing_share_requests("acme") == []


# =============================================================================
# Auto-accept
# =============================================================================


class TestAutoAccept:
    def test_partner_without_acceptance_takes_job_at_proposed_fee(
        self, sharing, job, partner, set_zone
    ):
        """The proposer's fee is kept even when the zone default differs."""
        partner("acme", "beta")
        set_zone("acme", "beta", fee=60, requires_acceptance=False)

        request = share(sharing, fee=75)

        assert request.status == ShareRequestStatus.ACCEPTED.value
        assert request.accepted_fee == 75
        chain = sharing.chains.build_chain("job-1")
        assert [link.company_id for link in chain] == ["acme", "beta"]
        assert chain[1].invoice_amount == 75

    def test_zone_outside_zip_still_needs_acceptance(self, sharing, job, partner, set_zone):
        partner("acme", "beta")
        set_zone("acme", "beta", zip_codes=("10001",), requires_acceptance=False)
        assert share(sharing).status == PENDING

    def test_acceptance_required_by_default(self, sharing, job, partner, set_zone):
        partner("acme", "beta")
        set_zone("acme", "beta")
        assert share(sharing).status == PENDING


# =============================================================================
# Responding
# =============================================================================


class TestRespond:
    def test_accept_hands_job_over(self, sharing, job, store, notifier):
        request = share(sharing)
        accepted = sharing.respond_to_share_request("beta", request.id, accept=True)

        assert accepted.status == ShareRequestStatus.ACCEPTED.value
        assert accepted.accepted_fee == 75.0
        assert accepted.counter_fee is None
        assert accepted.responded_by == "beta"
        assert accepted.resulting_job_id == "job-1"

        doc = store.get(JOBS, "job-1")
        assert doc["shared_job_status"] == "accepted"
        assert doc["assigned_server_id"] == "owner-beta"
        assert doc["job_share_chain"]["currently_assigned_to_company_id"] == "beta"

        link = sharing.chains.build_chain("job-1")[1]
        assert link.level == 1
        assert link.company_name == "Beta"
        assert link.sees_client_as == "Acme"
        assert link.invoice_amount == 75.0
        assert notifier.of_type(SHARE_REQUEST_RESPONDED)[0]["status"] == "accepted"

    def test_accept_creates_partnership_and_counts_share(self, sharing, job):
        assert not sharing.partnerships.are_partners("acme", "beta")
        request = share(sharing)
        sharing.respond_to_share_request("beta", request.id, accept=True)

        assert sharing.partnerships.are_partners("acme", "beta")
        assert sharing.partnerships.get_partner("acme", "beta").total_jobs_shared == 1
        assert sharing.partnerships.get_partner("beta", "acme").total_jobs_shared == 0

    def test_counter_fee_becomes_invoice(self, sharing, job):
        request = share(sharing)
        accepted = sharing.respond_to_share_request("beta", request.id, True, counter_fee=90)

        assert accepted.counter_fee == 90
        assert accepted.accepted_fee == 90
        assert accepted.proposed_fee == 75
        assert sharing.chains.build_chain("job-1")[1].invoice_amount == 90

    @pytest.mark.parametrize("counter_fee", [0, float("nan")])
    def test_counter_fee_must_be_positive(self, sharing, job, counter_fee):
        request = share(sharing)
        with pytest.raises(ValidationError):
            sharing.respond_to_share_request("beta", request.id, True, counter_fee=counter_fee)
        assert sharing.requests.get(request.id).is_pending

    def test_only_target_can_respond(self, sharing, job):
        request = share(sharing)
        with pytest.raises(ForbiddenError):
            sharing.respond_to_share_request("gamma", request.id, accept=True)
        with pytest.raises(NotFoundError):
            sharing.respond_to_share_request("beta", "missing", accept=True)

    def test_second_response_conflicts(self, sharing, job):
        request = share(sharing)
        sharing.respond_to_share_request("beta", request.id, accept=True)
        with pytest.raises(ConflictError):
            sharing.respond_to_share_request("beta", request.id, accept=False)

    def test_expired_request_cannot_be_accepted(self, sharing, job, clock, store):
        """Expiry is checked at response time, with the deadline itself counting as expired."""
        request = share(sharing, expires_in_hours=1)
        clock.advance(hours=1)

        with pytest.raises(ExpiredError):
            sharing.respond_to_share_request("beta", request.id, accept=True)
        assert len(sharing.chains.build_chain("job-1")) == 1
        assert store.get(SHARE_REQUESTS, request.id)["status"] == PENDING

    def test_decline_records_reason(self, sharing, job, store):
        request = share(sharing)
        declined = sharing.respond_to_share_request(
            "beta", request.id, accept=False, decline_reason="Too far"
        )
        assert declined.status == ShareRequestStatus.DECLINED.value
        assert declined.decline_reason == "Too far"
        assert store.get(JOBS, "job-1")["shared_job_status"] == "declined"
        assert len(sharing.chains.build_chain("job-1")) == 1

    def test_decline_keeps_pending_status_while_others_wait(self, sharing, job, store):
        first = share(sharing, target="beta")
        share(sharing, target="gamma")
        sharing.respond_to_share_request("beta", first.id, accept=False)
        assert store.get(JOBS, "job-1")["shared_job_status"] == "pending_acceptance"

    def test_losing_offer_cannot_be_accepted(self, sharing, job):
        """Once another company took the job, remaining offers fail on acceptance."""
        to_beta = share(sharing, target="beta")
        to_gamma = share(sharing, target="gamma")
        sharing.respond_to_share_request("gamma", to_gamma.id, accept=True)

        with pytest.raises(ConflictError, match="no longer held"):
            sharing.respond_to_share_request("beta", to_beta.id, accept=True)
        assert [link.company_id for link in sharing.chains.build_chain("job-1")] == ["acme", "gamma"]


class TestUpdateSharedJobStatus:
    def test_accept_by_job_id(self, sharing, job):
        share(sharing)
        accepted = sharing.update_shared_job_status("beta", "job-1", "accepted", user_id="owner-beta")
        assert accepted.status == "accepted"
        assert accepted.responded_by == "owner-beta"

    def test_decline_by_job_id(self, sharing, job):
        share(sharing)
        declined = sharing.update_shared_job_status("beta", "job-1", "declined", decline_reason="Busy")
        assert declined.decline_reason == "Busy"

    def test_invalid_status(self, sharing, job):
        share(sharing)
        with pytest.raises(ValidationError):
            sharing.update_shared_job_status("beta", "job-1", "served")

    def test_no_pending_request(self, sharing, job):
        with pytest.raises(NotFoundError):
            sharing.update_shared_job_status("beta", "job-1", "accepted")


class TestListing:
    def test_incoming_excludes_expired(self, sharing, job, add_job, clock):
        add_job("job-2", "acme")
        share(sharing, expires_in_hours=1)
        live = share(sharing, job_id="job-2")
        clock.advance(hours=3)

        assert [r.id for r in sharing.incoming_share_requests("beta")] == [live.id]
        expired = sharing.requests.list_incoming("beta", status="expired")
        assert len(expired) == 1
        assert sharing.requests.effective_status(expired[0]) == "expired"

    def test_outgoing_newest_first(self, sharing, job, clock):
        first = share(sharing, target="beta")
        clock.advance(minutes=5)
        second = share(sharing, target="gamma")
        assert [r.id for r in sharing.outgoing_share_requests("acme")] == [second.id, first.id]
        assert sharing.outgoing_share_requests("beta") == []

    def test_has_pending(self, sharing, job, clock):
        assert not sharing.requests.has_pending("job-1")
        share(sharing, expires_in_hours=1)
        assert sharing.requests.has_pending("job-1")
        clock.advance(hours=1)
        assert not sharing.requests.has_pending("job-1")


# =============================================================================
# Carbon copies
# =============================================================================


class TestCarbonCopyShare:
    def test_accept_creates_copy_for_receiver(self, sharing, job, store):
        request = share(sharing, create_carbon_copy=True)
        accepted = sharing.respond_to_share_request("beta", request.id, accept=True)

        copy_id = accepted.resulting_job_id
        assert copy_id != "job-1"
        copy = store.get(JOBS, copy_id)
        assert copy["company_id"] == "beta"
        assert copy["client_name"] == "Acme"
        assert copy["service_fee"] == 75.0
        assert copy["job_number"] == "JOB-1"
        assert copy["share_chain"]["parent_job_id"] == "job-1"

        root = store.get(JOBS, "job-1")
        assert root["share_chain"]["all_job_ids"] == ["job-1", copy_id]
        assert root["share_chain"]["child_job_id"] == copy_id
        assert root["company_id"] == "acme"

    def test_receiver_shares_its_own_copy(self, sharing, job, store):
        """Sharing by the root id is redirected to the sharer's own copy."""
        first = share(sharing, create_carbon_copy=True)
        beta_copy = sharing.respond_to_share_request("beta", first.id, True).resulting_job_id

        second = share(sharing, source="beta", target="gamma", fee=50, create_carbon_copy=True)
        assert second.job_id == beta_copy
        gamma_copy = sharing.respond_to_share_request("gamma", second.id, True).resulting_job_id

        chain = sharing.chains.build_chain(gamma_copy)
        assert [link.company_id for link in chain] == ["acme", "beta", "gamma"]
        assert [link.job_id for link in chain] == ["job-1", beta_copy, gamma_copy]
        assert store.get(JOBS, "job-1")["share_chain"]["all_job_ids"] == [
            "job-1",
            beta_copy,
            gamma_copy,
        ]

    def test_carbon_copy_of_embedded_chain_rejected(self, sharing, job):
        request = share(sharing)
        sharing.respond_to_share_request("beta", request.id, True)
        with pytest.raises(ValidationError):
            share(sharing, source="beta", target="gamma", create_carbon_copy=True)


class TestSQLiteBackend:
    @pytest.fixture
    def store(self, sqlite_store):
        return sqlite_store

    def test_full_hand_off(self, sharing, job):
        request = share(sharing, expires_in_hours=48)
        accepted = sharing.respond_to_share_request("beta", request.id, True, counter_fee=80)

        assert accepted.accepted_fee == 80
        assert sharing.requests.get(request.id).status == "accepted"
        assert [link.company_id for link in sharing.chains.build_chain("job-1")] == ["acme", "beta"]
        assert sharing.partnerships.are_partners("beta", "acme")


# =============================================================================
# Models and resolvers
# =============================================================================


class TestShareRequestModel:
    def test_effective_status(self, clock):
        request = ShareRequest(
            id="r1",
            job_id="j1",
            source_company_id="a",
            target_company_id="b",
            proposed_fee=10,
            expires_at=clock.now(),
        )
        assert request.effective_status(clock.now()) == "expired"
        request.status = "accepted"
        assert request.effective_status(clock.now()) == "accepted"

    def test_invalid_status(self):
        with pytest.raises(ValidationError):
            ShareRequest("r1", "j1", "a", "b", 10, status="maybe")

    def test_round_trip(self, clock):
        request = ShareRequest("r1", "j1", "a", "b", 10, created_at=clock.now(), auto_assigned=True)
        restored = ShareRequest.from_dict(request.to_dict())
        assert restored == request


class TestResolvers:
    def test_order(self):
        company = {
            "id": "c",
            "owner_id": None,
            "primary_user_id": "primary",
            "created_by": "creator",
            "users": [{"id": "u1"}, {"id": "u2", "employee_role": "admin"}],
        }
        assert resolve_responsible_user(company) == "primary"
        company["primary_user_id"] = None
        assert resolve_responsible_user(company) == "creator"
        company["created_by"] = None
        assert resolve_responsible_user(company) == "u2"

    def test_admin_then_first_user(self):
        company = {"users": [{"id": "u1", "role": "server"}, {"id": "u2", "role": "admin"}]}
        assert admin_resolver(company) == "u2"
        assert first_user_resolver(company) == "u1"
        assert admin_resolver({"users": [{"id": "u1"}]}) is None

    def test_no_user(self):
        with pytest.raises(NoResponsibleUserError):
            resolve_responsible_user({"id": "empty", "users": []})

    def test_custom_resolvers(self):
        assert resolve_responsible_user({"id": "c"}, [lambda c: "dispatcher"]) == "dispatcher"

    def test_company_user_ids(self):
        company = {"owner_id": "o", "users": [{"id": "u1"}, {}]}
        assert company_user_ids(company) == {"o", "u1"}
