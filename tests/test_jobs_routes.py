"""Tests for job and proposal routes."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from ajira.payments import CheckoutResult
from ajira.routes.jobs import can_transition, filter_by_skills

OWNER_ID = "usr_TEST_CUSTOMER_000"
FREELANCER_ID = "usr_TEST_OTHER_000"
NOW = datetime.now(timezone.utc).isoformat()


def _job(**overrides) -> dict:
    job = {
        "id": "job-123",
        "client_id": OWNER_ID,
        "freelancer_id": None,
        "title": "Build a booking website",
        "description": "We need a responsive booking website for a guest house in Arusha.",
        "budget_type": "fixed",
        "budget_amount": 500000,
        "skills_required": ["Python", "React"],
        "status": "open",
        "escrow_status": "unfunded",
        "proposal_count": 0,
        "created_at": NOW,
        "updated_at": NOW,
    }
    job.update(overrides)
    return job


def _proposal(**overrides) -> dict:
    proposal = {
        "id": "prop-1",
        "job_id": "job-123",
        "freelancer_id": FREELANCER_ID,
        "freelancer_name": "Juma",
        "cover_letter": "I have built three booking sites for lodges in Moshi.",
        "proposed_rate": 450000,
        "status": "submitted",
        "created_at": NOW,
    }
    proposal.update(overrides)
    return proposal


class TestJobHelpers:
    def test_transitions(self):
        assert can_transition("open", "in-progress")
        assert can_transition("in-progress", "completed")
        assert not can_transition("completed", "open")
        assert not can_transition("open", "completed")

    def test_filter_by_skills_requires_all(self):
        jobs = [_job(id="a"), _job(id="b", skills_required=["python"])]
        assert [j["id"] for j in filter_by_skills(jobs, ["PYTHON", "react"])] == ["a"]
        assert len(filter_by_skills(jobs, [" "])) == 2


class TestJobRoutes:
    def test_create_job_success(self, client, auth_headers):
        with patch("ajira.routes.jobs.create_job", new_callable=AsyncMock) as mock_create:
            mock_create.return_value = _job()
            response = client.post(
                "/api/jobs",
                json={
                    "title": "Build a booking website",
                    "description": _job()["description"],
                    "budget_type": "fixed",
                    "budget_amount": 500000,
                    "skills_required": ["Python", "React"],
                },
                headers=auth_headers,
            )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "open"
        assert data["escrow_status"] == "unfunded"

    def test_create_job_validation(self, client, auth_headers):
        response = client.post(
            "/api/jobs",
            json={
                "title": "Too short",
                "description": "Short",
                "budget_type": "fixed",
                "budget_amount": -1,
                "skills_required": [],
            },
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_create_job_requires_auth(self, client):
        response = client.post("/api/jobs", json={})
        assert response.status_code == 401

    def test_list_jobs_with_skill_filter(self, client):
        with patch("ajira.routes.jobs.list_jobs", new_callable=AsyncMock) as mock_list:
            mock_list.return_value = [_job(id="a"), _job(id="b", skills_required=["Go"])]
            response = client.get("/api/jobs?skills=python")

        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_get_job_not_found(self, client):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = None
            response = client.get("/api/jobs/missing")
        assert response.status_code == 404


class TestEscrow:
    def test_fund_requires_owner(self, client, other_headers):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _job(status="in-progress")
            response = client.post("/api/jobs/job-123/fund", headers=other_headers)
        assert response.status_code == 403

    def test_fund_open_job_conflicts(self, client, auth_headers):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _job(status="open")
            response = client.post("/api/jobs/job-123/fund", headers=auth_headers)
        assert response.status_code == 409

    def test_fund_already_funded_conflicts(self, client, auth_headers):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _job(status="in-progress", escrow_status="funded")
            response = client.post("/api/jobs/job-123/fund", headers=auth_headers)
        assert response.status_code == 409
        assert "already" in response.json()["detail"]

    def test_fund_lost_race(self, client, auth_headers):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get, patch(
            "ajira.routes.jobs.atomic_update_job", new_callable=AsyncMock
        ) as mock_update:
            mock_get.return_value = _job(status="in-progress")
            mock_update.return_value = (None, "conflict")
            response = client.post("/api/jobs/job-123/fund", headers=auth_headers)
        assert response.status_code == 409
        assert "another request" in response.json()["detail"]

    def test_fund_success(self, client, auth_headers):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get, patch(
            "ajira.routes.jobs.atomic_update_job", new_callable=AsyncMock
        ) as mock_update:
            mock_get.return_value = _job(status="in-progress")
            mock_update.return_value = (_job(status="in-progress", escrow_status="funded"), None)
            response = client.post("/api/jobs/job-123/fund", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["job"]["escrow_status"] == "funded"
        assert mock_update.call_args.kwargs["expected"] == {
            "status": "in-progress",
            "escrow_status": "unfunded",
        }

    def test_fund_with_mobile_money_failure_leaves_escrow(self, client, auth_headers):
        gateway = AsyncMock()
        gateway.mno_checkout.return_value = CheckoutResult(success=False, message="Declined")
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get, patch(
            "ajira.routes.jobs.atomic_update_job", new_callable=AsyncMock
        ) as mock_update, patch(
            "ajira.routes.jobs.get_azampay_client", return_value=gateway
        ):
            mock_get.return_value = _job(status="in-progress")
            response = client.post(
                "/api/jobs/job-123/fund",
                json={"phone_number": "255712345678"},
                headers=auth_headers,
            )

        assert response.status_code == 400
        assert response.json()["detail"] == "Declined"
        mock_update.assert_not_awaited()

    def test_release_requires_completed(self, client, auth_headers):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _job(status="in-progress", escrow_status="funded")
            response = client.post("/api/jobs/job-123/release", headers=auth_headers)
        assert response.status_code == 409

    def test_release_success(self, client, auth_headers):
        with patch("ajira.routes.jobs.get_job", new_callable=AsyncMock) as mock_get, patch(
            "ajira.routes.jobs.atomic_update_job", new_callable=AsyncMock
        ) as mock_update:
            mock_get.return_value = _job(status="completed", escrow_status="funded")
            mock_update.return_value = (_job(status="completed", escrow_status="released"), None)
            response = client.post("/api/jobs/job-123/release", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["job"]["escrow_status"] == "released"

    def test_status_update_only_completed_or_cancelled(self, client, auth_headers):
        response = client.put(
            "/api/jobs/job-123/status", json={"status": "open"}, headers=auth_headers
        )
        assert response.status_code == 400


class TestProposals:
    BODY = {
        "cover_letter": "I have built three booking sites for lodges in Moshi.",
        "proposed_rate": 450000,
    }

    def test_submit_proposal(self, client, other_headers):
        with patch("ajira.routes.proposals.get_job", new_callable=AsyncMock) as mock_job, patch(
            "ajira.routes.proposals.find_existing_proposal", new_callable=AsyncMock
        ) as mock_existing, patch(
            "ajira.routes.proposals.create_proposal", new_callable=AsyncMock
        ) as mock_create, patch(
            "ajira.routes.proposals.increment_proposal_count", new_callable=AsyncMock
        ) as mock_increment:
            mock_job.return_value = _job()
            mock_existing.return_value = None
            mock_create.return_value = _proposal()
            response = client.post(
                "/api/jobs/job-123/proposals", json=self.BODY, headers=other_headers
            )

        assert response.status_code == 201
        assert response.json()["status"] == "submitted"
        mock_increment.assert_awaited_once()

    def test_owner_cannot_bid(self, client, auth_headers):
        with patch("ajira.routes.proposals.get_job", new_callable=AsyncMock) as mock_job:
            mock_job.return_value = _job()
            response = client.post(
                "/api/jobs/job-123/proposals", json=self.BODY, headers=auth_headers
            )
        assert response.status_code == 403

    def test_duplicate_proposal(self, client, other_headers):
        with patch("ajira.routes.proposals.get_job", new_callable=AsyncMock) as mock_job, patch(
            "ajira.routes.proposals.find_existing_proposal", new_callable=AsyncMock
        ) as mock_existing:
            mock_job.return_value = _job()
            mock_existing.return_value = _proposal()
            response = client.post(
                "/api/jobs/job-123/proposals", json=self.BODY, headers=other_headers
            )
        assert response.status_code == 409

    def test_closed_job(self, client, other_headers):
        with patch("ajira.routes.proposals.get_job", new_callable=AsyncMock) as mock_job:
            mock_job.return_value = _job(status="in-progress")
            response = client.post(
                "/api/jobs/job-123/proposals", json=self.BODY, headers=other_headers
            )
        assert response.status_code == 409

    def test_accept_assigns_freelancer_and_rejects_others(self, client, auth_headers):
        with patch(
            "ajira.routes.proposals.get_proposal", new_callable=AsyncMock
        ) as mock_prop, patch(
            "ajira.routes.proposals.get_job", new_callable=AsyncMock
        ) as mock_job, patch(
            "ajira.routes.proposals.atomic_update_job", new_callable=AsyncMock
        ) as mock_update, patch(
            "ajira.routes.proposals.set_proposal_status", new_callable=AsyncMock
        ) as mock_set, patch(
            "ajira.routes.proposals.reject_other_proposals", new_callable=AsyncMock
        ) as mock_reject:
            mock_prop.return_value = _proposal()
            mock_job.return_value = _job()
            mock_update.return_value = (_job(status="in-progress"), None)
            mock_set.return_value = _proposal(status="accepted")
            response = client.put(
                "/api/proposals/prop-1/status", json={"status": "accepted"}, headers=auth_headers
            )

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"
        assert mock_update.call_args.kwargs["updates"] == {
            "status": "in-progress",
            "freelancer_id": FREELANCER_ID,
        }
        mock_reject.assert_awaited_once()

    def test_non_owner_cannot_accept(self, client, other_headers):
        with patch(
            "ajira.routes.proposals.get_proposal", new_callable=AsyncMock
        ) as mock_prop, patch("ajira.routes.proposals.get_job", new_callable=AsyncMock) as mock_job:
            mock_prop.return_value = _proposal()
            mock_job.return_value = _job()
            response = client.put(
                "/api/proposals/prop-1/status", json={"status": "accepted"}, headers=other_headers
            )
        assert response.status_code == 403
