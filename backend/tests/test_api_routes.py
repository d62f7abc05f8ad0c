"""Test the sharing API routes."""

from datetime import datetime, timedelta, timezone

from jobshare.storage import COMPANIES, DIRECTORY, SHARE_REQUESTS, seed

API = "/api/v1"


def make_partners(client, auth_headers, a="acme", b="beta"):
    created = client.post(
        f"{API}/partnerships/requests",
        json={"target_company_id": b, "message": "hello"},
        headers=auth_headers(a),
    )
    assert created.status_code == 201
    answered = client.post(
        f"{API}/partnerships/requests/{created.json()['id']}/respond",
        json={"accept": True},
        headers=auth_headers(b),
    )
    assert answered.status_code == 200


def offer(client, auth_headers, **overrides):
    body = {"job_id": "job-1", "target_company_id": "beta", "proposed_fee": 75}
    body.update(overrides)
    return client.post(f"{API}/share-requests", json=body, headers=auth_headers("acme"))


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health_touches_store(self, client):
        response = client.get("/health")
        assert response.json() == {"status": "healthy", "database": "connected"}


class TestAuthRequired:
    def test_missing_token(self, client, seeded):
        response = client.get(f"{API}/share-requests/incoming")
        assert response.status_code == 401

    def test_invalid_token(self, client, seeded):
        response = client.get(
            f"{API}/share-requests/incoming", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401


# =============================================================================
# Partnerships
# =============================================================================


class TestPartnershipRoutes:
    def test_request_and_accept(self, client, seeded, auth_headers):
        created = client.post(
            f"{API}/partnerships/requests",
            json={"target_company_id": "beta", "message": "Cover LA?"},
            headers=auth_headers("acme"),
        )
        assert created.status_code == 201
        assert created.json()["status"] == "pending"

        incoming = client.get(f"{API}/partnerships/requests", headers=auth_headers("beta"))
        assert [r["id"] for r in incoming.json()] == [created.json()["id"]]

        answered = client.post(
            f"{API}/partnerships/requests/{created.json()['id']}/respond",
            json={"accept": True},
            headers=auth_headers("beta"),
        )
        assert answered.json()["status"] == "accepted"

        partners = client.get(f"{API}/partnerships", headers=auth_headers("acme")).json()
        assert [p["partner_company_id"] for p in partners] == ["beta"]
        assert partners[0]["status"] == "active"

    def test_duplicate_request_conflicts(self, client, seeded, auth_headers):
        make_partners(client, auth_headers)
        response = client.post(
            f"{API}/partnerships/requests",
            json={"target_company_id": "acme"},
            headers=auth_headers("beta"),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    def test_only_target_responds(self, client, seeded, auth_headers):
        created = client.post(
            f"{API}/partnerships/requests",
            json={"target_company_id": "beta"},
            headers=auth_headers("acme"),
        )
        response = client.post(
            f"{API}/partnerships/requests/{created.json()['id']}/respond",
            json={"accept": True},
            headers=auth_headers("gamma"),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_update_settings(self, client, seeded, auth_headers):
        make_partners(client, auth_headers)
        response = client.put(
            f"{API}/partnerships/beta",
            json={
                "auto_assignment_enabled": True,
                "zones": [{"zip_codes": ["90210"], "default_fee": 60, "priority": 1}],
                "requires_acceptance": False,
            },
            headers=auth_headers("acme"),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["auto_assignment_enabled"] is True
        assert data["auto_assignment_zones"][0]["default_fee"] == 60
        assert data["requires_acceptance"] is False

    def test_enabling_without_zones_rejected(self, client, seeded, auth_headers):
        make_partners(client, auth_headers)
        response = client.put(
            f"{API}/partnerships/beta",
            json={"auto_assignment_enabled": True, "zones": []},
            headers=auth_headers("acme"),
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_remove_partner(self, client, seeded, auth_headers):
        make_partners(client, auth_headers)
        response = client.delete(f"{API}/partnerships/beta", headers=auth_headers("acme"))
        assert response.status_code == 200
        active = client.get(
            f"{API}/partnerships", params={"status_filter": "active"}, headers=auth_headers("beta")
        )
        assert active.json() == []


# =============================================================================
# Share requests
# =============================================================================


class TestShareRequestRoutes:
    def test_offer_and_accept_with_counter_fee(self, client, seeded, auth_headers):
        created = offer(client, auth_headers, expires_in_hours=24)
        assert created.status_code == 201
        request_id = created.json()["id"]
        assert created.json()["status"] == "pending_acceptance"
        assert created.json()["target_user_id"] == "owner-beta"

        incoming = client.get(f"{API}/share-requests/incoming", headers=auth_headers("beta"))
        assert [r["id"] for r in incoming.json()] == [request_id]

        answered = client.post(
            f"{API}/share-requests/{request_id}/respond",
            json={"accept": True, "counter_fee": 90},
            headers=auth_headers("beta"),
        )
        assert answered.status_code == 200
        assert answered.json()["status"] == "accepted"
        assert answered.json()["accepted_fee"] == 90

        again = client.post(
            f"{API}/share-requests/{request_id}/respond",
            json={"accept": False},
            headers=auth_headers("beta"),
        )
        assert again.status_code == 409

        outgoing = client.get(f"{API}/share-requests/outgoing", headers=auth_headers("acme"))
        assert outgoing.json()[0]["status"] == "accepted"

    def test_auto_accepted_offer(self, client, seeded, auth_headers, sharing):
        make_partners(client, auth_headers)
        sharing.update_partner_settings(
            "acme",
            "beta",
            auto_assignment_enabled=True,
            zones=[{"zip_codes": ["90210"], "default_fee": 60}],
            requires_acceptance=False,
        )
        created = offer(client, auth_headers)
        assert created.status_code == 201
        assert created.json()["status"] == "accepted"
        assert created.json()["accepted_fee"] == 75

    def test_get_is_limited_to_parties(self, client, seeded, auth_headers):
        request_id = offer(client, auth_headers).json()["id"]
        assert (
            client.get(f"{API}/share-requests/{request_id}", headers=auth_headers("beta")).status_code
            == 200
        )
        response = client.get(f"{API}/share-requests/{request_id}", headers=auth_headers("gamma"))
        assert response.status_code == 403

    def test_unknown_request(self, client, seeded, auth_headers):
        response = client.get(f"{API}/share-requests/missing", headers=auth_headers("beta"))
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_expired_request(self, client, seeded, auth_headers, store):
        request_id = offer(client, auth_headers, expires_in_hours=1).json()["id"]
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        with store.transaction() as tx:
            doc = tx.get(SHARE_REQUESTS, request_id)
            doc["expires_at"] = past.isoformat()
            tx.put(SHARE_REQUESTS, doc)

        fetched = client.get(f"{API}/share-requests/{request_id}", headers=auth_headers("acme"))
        assert fetched.json()["status"] == "expired"
        response = client.post(
            f"{API}/share-requests/{request_id}/respond",
            json={"accept": True},
            headers=auth_headers("beta"),
        )
        assert response.status_code == 410
        assert response.json()["code"] == "expired"

    def test_invalid_fee(self, client, seeded, auth_headers):
        response = offer(client, auth_headers, proposed_fee=0)
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_not_holder(self, client, seeded, auth_headers):
        response = client.post(
            f"{API}/share-requests",
            json={"job_id": "job-1", "target_company_id": "gamma", "proposed_fee": 50},
            headers=auth_headers("beta"),
        )
        assert response.status_code == 403

    def test_no_responsible_user(self, client, seeded, auth_headers, store):
        seed(store, COMPANIES, [{"id": "ghost", "name": "Ghost", "users": []}])
        response = offer(client, auth_headers, target_company_id="ghost")
        assert response.status_code == 422
        assert response.json()["code"] == "no_responsible_user"


# =============================================================================
# Jobs
# =============================================================================


class TestJobRoutes:
    def test_shared_status_and_chain(self, client, seeded, auth_headers):
        offer(client, auth_headers)
        answered = client.post(
            f"{API}/jobs/job-1/shared-status",
            json={"shared_job_status": "accepted"},
            headers=auth_headers("beta"),
        )
        assert answered.status_code == 200
        assert answered.json()["status"] == "accepted"

        chain = client.get(f"{API}/jobs/job-1/chain", headers=auth_headers("beta")).json()
        assert chain["viewer_level"] == 1
        assert chain["is_currently_assigned"] is True
        assert [link["company_id"] for link in chain["links"]] == ["acme", "beta"]
        assert chain["links"][0]["invoice_amount"] is None

        outsider = client.get(f"{API}/jobs/job-1/chain", headers=auth_headers("gamma"))
        assert outsider.status_code == 403

    def test_shared_status_rejects_other_values(self, client, seeded, auth_headers):
        offer(client, auth_headers)
        response = client.post(
            f"{API}/jobs/job-1/shared-status",
            json={"shared_job_status": "served"},
            headers=auth_headers("beta"),
        )
        assert response.status_code == 422

    def test_status_sync(self, client, seeded, auth_headers):
        request_id = offer(client, auth_headers, create_carbon_copy=True).json()["id"]
        copy_id = client.post(
            f"{API}/share-requests/{request_id}/respond",
            json={"accept": True},
            headers=auth_headers("beta"),
        ).json()["resulting_job_id"]

        response = client.post(
            f"{API}/jobs/job-1/status",
            json={"status": "served", "affidavit_ids": ["aff-1"]},
            headers=auth_headers("acme"),
        )
        assert response.status_code == 200
        assert response.json() == {"updated": [copy_id], "skipped": [], "failed": []}

    def test_status_update_requires_ownership(self, client, seeded, auth_headers):
        response = client.post(
            f"{API}/jobs/job-1/status", json={"status": "served"}, headers=auth_headers("beta")
        )
        assert response.status_code == 403

    def test_auto_assign(self, client, seeded, auth_headers, sharing):
        none = client.post(f"{API}/jobs/job-1/auto-assign", headers=auth_headers("acme"))
        assert none.json() == {"matched": False, "request": None}

        make_partners(client, auth_headers)
        sharing.update_partner_settings(
            "acme",
            "beta",
            auto_assignment_enabled=True,
            zones=[{"zip_codes": ["90210"], "default_fee": 55}],
        )
        matched = client.post(f"{API}/jobs/job-1/auto-assign", headers=auth_headers("acme"))
        assert matched.json()["matched"] is True
        assert matched.json()["request"]["proposed_fee"] == 55
        assert matched.json()["request"]["auto_assigned"] is True


class TestDirectoryRoutes:
    def test_search(self, client, seeded, auth_headers, store):
        seed(
            store,
            DIRECTORY,
            [
                {"id": "d1", "name": "Bravo Process", "zip": "90210", "is_active": True, "rating_average": 4.1},
                {"id": "d2", "name": "Alpha Serve", "zip": "90210", "is_active": True, "rating_average": 4.8},
                {"id": "d3", "name": "Closed Co", "zip": "90210", "is_active": False, "rating": 5.0},
            ],
        )
        response = client.get(f"{API}/directory", params={"zip": "90210"}, headers=auth_headers("acme"))
        assert [e["name"] for e in response.json()] == ["Alpha Serve", "Bravo Process"]

    def test_short_zip(self, client, seeded, auth_headers):
        response = client.get(f"{API}/directory", params={"zip": "90"}, headers=auth_headers("acme"))
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"
