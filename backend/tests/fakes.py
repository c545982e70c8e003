"""
Shared test doubles for the matching engine.

InMemoryMatchingRepository implements MatchingRepository with dicts keyed
the same way as the SQL unique constraints, plus switches to inject
failures and latency.
"""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from nurselink.exceptions import PersistenceUnavailableError
from nurselink.services.channels import NotificationChannel, NotificationMessage
from nurselink.services.entities import (
    Application,
    ApplicationStatus,
    Coordinates,
    Mission,
    Notification,
    NurseCandidate,
    urgency_bucket,
)
from nurselink.services.repository import CandidateHints, MatchingRepository

LYON = Coordinates(lat=45.7640, lng=4.8357)

# Kilometres per degree of latitude on a 6371 km sphere
KM_PER_DEGREE = 111.19492664455873


def at_distance(km: float, origin: Coordinates = LYON) -> Coordinates:
    """Point due north of origin, exactly km away along the meridian."""
    return Coordinates(lat=origin.lat + km / KM_PER_DEGREE, lng=origin.lng)


def make_mission(**overrides) -> Mission:
    fields = dict(
        id="mission-1",
        establishment_id="est-1",
        title="Infirmier(e) urgences - nuit",
        specialization="urgences",
        start_date=datetime(2026, 11, 2, 20, 0),
        end_date=datetime(2026, 11, 3, 8, 0),
        location=LYON,
        hourly_rate=32.0,
        required_certifications=frozenset({"AFGSU2"}),
        max_candidates=10,
        max_distance_km=50.0,
        min_rating=3.0,
    )
    fields.update(overrides)
    return Mission(**fields)


def make_candidate(id: str, distance: float = 2.0, **overrides) -> NurseCandidate:
    fields = dict(
        id=id,
        specializations=frozenset({"urgences"}),
        experience_years=8,
        rating=4.8,
        certifications=frozenset({"AFGSU2"}),
        location=at_distance(distance),
        is_available=True,
    )
    fields.update(overrides)
    return NurseCandidate(**fields)


def example_pool() -> List[NurseCandidate]:
    """N1 strong match, N2 wrong specialization, N3 barely qualifies."""
    return [
        make_candidate("N1", distance=2.0, experience_years=8, rating=4.8),
        make_candidate(
            "N2",
            distance=10.0,
            specializations=frozenset({"pediatrie"}),
            experience_years=3,
            rating=4.0,
            certifications=frozenset(),
        ),
        make_candidate(
            "N3",
            distance=45.0,
            experience_years=2,
            rating=3.5,
            certifications=frozenset(),
        ),
    ]


class InMemoryMatchingRepository(MatchingRepository):
    def __init__(
        self,
        missions: Optional[List[Mission]] = None,
        candidates: Optional[List[NurseCandidate]] = None,
    ):
        self.missions: Dict[str, Mission] = {m.id: m for m in (missions or [])}
        self.candidates: List[NurseCandidate] = list(candidates or [])
        self.applications: Dict[Tuple[str, str], Application] = {}
        self.notifications: Dict[Tuple[str, str, int], Notification] = {}

        # Failure injection
        self.fail_fetch = False
        self.fetch_delay = 0.0
        self.failing_application_nurses: Set[str] = set()
        self.failing_notification_nurses: Set[str] = set()
        self.fail_all_applications = False
        self.fail_all_notifications = False
        self.fail_delivery_marks = False
        self.upsert_calls = 0
        self.mark_calls = 0

    async def get_mission(self, mission_id: str) -> Optional[Mission]:
        if self.fail_fetch:
            raise PersistenceUnavailableError("database is down")
        return self.missions.get(mission_id)

    async def list_available_nurse_candidates(self, hints: CandidateHints) -> List[NurseCandidate]:
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fail_fetch:
            raise PersistenceUnavailableError("database is down")
        return list(self.candidates)

    async def upsert_application(
        self, mission_id: str, nurse_id: str, status: ApplicationStatus, score: float
    ) -> Tuple[Application, bool]:
        self.upsert_calls += 1
        if self.fail_all_applications or nurse_id in self.failing_application_nurses:
            raise PersistenceUnavailableError(f"cannot write application for {nurse_id}")

        key = (mission_id, nurse_id)
        if key in self.applications:
            return self.applications[key], False

        application = Application(
            id=f"app-{len(self.applications) + 1}",
            mission_id=mission_id,
            nurse_id=nurse_id,
            source="auto-matched",
            status=status,
            ai_match_score=score,
            created_at=datetime(2026, 10, 17, 12, 0),
        )
        self.applications[key] = application
        return application, True

    async def upsert_notification(
        self,
        mission_id: str,
        nurse_id: str,
        score: float,
        distance_km: float,
        delivery_attempt: int = 0,
    ) -> Tuple[Notification, bool]:
        self.upsert_calls += 1
        if self.fail_all_notifications or nurse_id in self.failing_notification_nurses:
            raise PersistenceUnavailableError(f"cannot write notification for {nurse_id}")

        key = (mission_id, nurse_id, delivery_attempt)
        if key in self.notifications:
            return self.notifications[key], False

        notification = Notification(
            id=f"notif-{len(self.notifications) + 1}",
            mission_id=mission_id,
            nurse_id=nurse_id,
            score=score,
            distance_km=distance_km,
            urgency_bucket=urgency_bucket(score),
            delivery_attempt=delivery_attempt,
            created_at=datetime(2026, 10, 17, 12, 0),
        )
        self.notifications[key] = notification
        return notification, True

    async def mark_notification_delivered(self, notification_id: str) -> bool:
        self.mark_calls += 1
        if self.fail_delivery_marks:
            raise PersistenceUnavailableError("cannot mark delivery")
        for key, notification in self.notifications.items():
            if notification.id == notification_id and not notification.delivered:
                self.notifications[key] = replace(notification, delivered_at=datetime(2026, 10, 17, 12, 1))
                return True
        return False

    async def list_applications(self, mission_id: str) -> List[Application]:
        return [a for (m, _), a in self.applications.items() if m == mission_id]

    async def list_notifications(self, mission_id: str) -> List[Notification]:
        return [n for (m, _, _), n in self.notifications.items() if m == mission_id]

    async def next_delivery_attempt(self, mission_id: str) -> int:
        attempts = [attempt for (m, _, attempt) in self.notifications if m == mission_id]
        return max(attempts) + 1 if attempts else 0


class RecordingChannel(NotificationChannel):
    """Channel that remembers what it sent; can be told to refuse some nurses."""

    channel_type = "recording"

    def __init__(self, refuse: Optional[Set[str]] = None):
        self.sent: List[NotificationMessage] = []
        self.refuse = refuse or set()

    async def send(self, message: NotificationMessage) -> bool:
        if message.nurse_id in self.refuse:
            return False
        self.sent.append(message)
        return True
