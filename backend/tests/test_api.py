"""
Tests for the matching API

Tests cover:
- Trigger and re-notify return 202 and schedule a run
- Status endpoint reads the run status store
- Results endpoint lists written applications and notifications
- Ranking preview has no side effects and rejects invalid missions
"""

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from nurselink.api.matching import get_repository, get_status_store
from nurselink.main import app
from nurselink.services.entities import ApplicationStatus
from nurselink.services.run_store import InMemoryRunStatusStore

from tests.fakes import InMemoryMatchingRepository, make_mission


@pytest.fixture
def repo():
    return InMemoryMatchingRepository(missions=[make_mission()])


@pytest.fixture
def store():
    return InMemoryRunStatusStore()


@pytest.fixture
def client(repo, store):
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_status_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def ranking_payload(**mission_overrides):
    mission = {
        "id": "preview-1",
        "establishment_id": "est-1",
        "title": "Night shift ER",
        "specialization": "urgences",
        "start_date": "2026-11-02T20:00:00",
        "end_date": "2026-11-03T08:00:00",
        "location": {"lat": 45.7640, "lng": 4.8357},
        "hourly_rate": 32.0,
        "required_certifications": ["AFGSU2"],
        "max_candidates": 2,
    }
    mission.update(mission_overrides)
    return {
        "mission": mission,
        "candidates": [
            {
                "id": "N1",
                "specializations": ["urgences"],
                "experience_years": 8,
                "rating": 4.8,
                "certifications": ["AFGSU2"],
                "location": {"lat": 45.7820, "lng": 4.8357},
            },
            {
                "id": "N2",
                "specializations": ["pediatrie"],
                "experience_years": 3,
                "rating": 4.0,
                "location": {"lat": 45.8540, "lng": 4.8357},
            },
            {"id": "N9", "specializations": ["urgences"], "rating": 4.5},
        ],
    }


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestTrigger:
    @patch("nurselink.api.matching.trigger_matching")
    def test_trigger_schedules_run(self, mock_trigger, client):
        response = client.post("/matching/missions/mission-1/trigger")

        assert response.status_code == 202
        assert response.json() == {"mission_id": "mission-1", "status": "scheduled", "delivery_attempt": 0}
        mock_trigger.assert_called_once_with("mission-1", 0)

    @patch("nurselink.api.matching.trigger_matching")
    def test_trigger_survives_broker_outage(self, mock_trigger, client):
        mock_trigger.return_value = None

        response = client.post("/matching/missions/mission-1/trigger")

        assert response.status_code == 202

    @pytest.mark.asyncio
    @patch("nurselink.api.matching.trigger_matching")
    async def test_renotify_uses_next_attempt(self, mock_trigger, client, repo):
        await repo.upsert_notification("mission-1", "N1", 98.6, 2.0)

        response = client.post("/matching/missions/mission-1/renotify")

        assert response.status_code == 202
        assert response.json()["delivery_attempt"] == 1
        mock_trigger.assert_called_once_with("mission-1", 1)

    @patch("nurselink.api.matching.trigger_matching")
    def test_renotify_unknown_mission(self, mock_trigger, client):
        response = client.post("/matching/missions/nope/renotify")

        assert response.status_code == 404
        mock_trigger.assert_not_called()


class TestStatus:
    def test_unknown_run_is_404(self, client):
        assert client.get("/matching/missions/mission-1/status").status_code == 404

    @pytest.mark.asyncio
    async def test_returns_stored_status(self, client, store):
        await store.set(
            "mission-1",
            {
                "mission_id": "mission-1",
                "delivery_attempt": 0,
                "state": "completed",
                "history": ["scheduled", "filtering", "scoring", "ranked", "writing", "notifying", "completed"],
                "ranked": 2,
                "ranked_nurse_ids": ["N1", "N3"],
                "applications_created": 1,
                "notifications_created": 2,
            },
        )

        response = client.get("/matching/missions/mission-1/status")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "completed"
        assert body["ranked_nurse_ids"] == ["N1", "N3"]
        assert body["failure_reason"] is None


class TestResults:
    @pytest.mark.asyncio
    async def test_lists_applications_and_notifications(self, client, repo):
        await repo.upsert_application("mission-1", "N1", ApplicationStatus.PENDING, 98.6)
        await repo.upsert_notification("mission-1", "N1", 98.6, 2.0)
        await repo.upsert_notification("mission-1", "N3", 60.5, 45.0)

        response = client.get("/matching/missions/mission-1/results")

        assert response.status_code == 200
        body = response.json()
        assert [a["nurse_id"] for a in body["applications"]] == ["N1"]
        assert body["applications"][0]["status"] == "pending"
        assert {n["nurse_id"]: n["urgency_bucket"] for n in body["notifications"]} == {
            "N1": "high",
            "N3": "medium",
        }
        assert all(n["delivered_at"] is None for n in body["notifications"])

    def test_empty_results(self, client):
        body = client.get("/matching/missions/mission-1/results").json()
        assert body == {"mission_id": "mission-1", "applications": [], "notifications": []}


class TestRankingPreview:
    def test_ranks_without_side_effects(self, client, repo):
        response = client.post("/matching/ranking", json=ranking_payload())

        assert response.status_code == 200
        body = response.json()
        assert body["total_matches"] == 1
        assert body["matches"][0]["nurse_id"] == "N1"
        assert body["matches"][0]["total_score"] == pytest.approx(98.6, abs=0.05)
        assert body["matches"][0]["confidence"] == "high"
        assert repo.upsert_calls == 0

    def test_end_before_start_is_rejected(self, client):
        payload = ranking_payload(end_date="2026-11-01T08:00:00")
        assert client.post("/matching/ranking", json=payload).status_code == 422

    def test_non_positive_distance_is_rejected(self, client):
        payload = ranking_payload(max_distance_km=0)
        assert client.post("/matching/ranking", json=payload).status_code == 422
