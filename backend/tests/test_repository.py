"""
Tests for SqlMatchingRepository against a SQLite database

Tests cover:
- Mission and candidate mapping (settings defaults, exclusions)
- Malformed rows skipped
- Keyed upserts, including two writers racing on the same key
- Listing results and the next delivery attempt
"""

import asyncio
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nurselink import models
from nurselink.database import Base
from nurselink.exceptions import PersistenceUnavailableError
from nurselink.services.entities import ApplicationStatus
from nurselink.services.repository import CandidateHints, SqlMatchingRepository

from tests.fakes import at_distance, make_mission


async def setup_repository(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/matching.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, session_factory, SqlMatchingRepository(session_factory)


async def seed(session_factory, *rows):
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def mission_row(**overrides):
    fields = dict(
        id="mission-1",
        establishment_id="est-1",
        title="Night shift ER",
        specialization="urgences",
        required_experience_years=2,
        required_certifications=["AFGSU2"],
        shift="night",
        urgency="high",
        start_date=datetime(2026, 11, 2, 20, 0),
        end_date=datetime(2026, 11, 3, 8, 0),
        latitude=45.7640,
        longitude=4.8357,
        hourly_rate=32.0,
    )
    fields.update(overrides)
    return models.Mission(**fields)


def nurse_row(id, distance=2.0, **overrides):
    location = at_distance(distance)
    fields = dict(
        id=id,
        specializations=["urgences"],
        certifications=["AFGSU2"],
        experience_years=5,
        rating=4.5,
        latitude=location.lat,
        longitude=location.lng,
        is_available=True,
    )
    fields.update(overrides)
    return models.NurseProfile(**fields)


class TestGetMission:
    @pytest.mark.asyncio
    async def test_maps_row_and_applies_defaults(self, tmp_path):
        engine, sessions, repo = await setup_repository(tmp_path)
        await seed(sessions, mission_row())

        mission = await repo.get_mission("mission-1")

        assert mission.specialization == "urgences"
        assert mission.required_certifications == frozenset({"AFGSU2"})
        assert mission.shift.value == "night"
        assert mission.max_candidates == 10
        assert mission.max_distance_km == 50.0
        assert mission.min_rating == 3.0
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_missing_mission_returns_none(self, tmp_path):
        engine, _, repo = await setup_repository(tmp_path)
        assert await repo.get_mission("nope") is None
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_invalid_mission_returns_none(self, tmp_path):
        engine, sessions, repo = await setup_repository(tmp_path)
        await seed(sessions, mission_row(hourly_rate=0.0))

        assert await repo.get_mission("mission-1") is None
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_database_error_is_persistence_unavailable(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/empty.db")
        repo = SqlMatchingRepository(async_sessionmaker(engine, class_=AsyncSession))

        with pytest.raises(PersistenceUnavailableError):
            await repo.get_mission("mission-1")
        await engine.dispose()


class TestListCandidates:
    @pytest.mark.asyncio
    async def test_loads_available_candidates_with_exclusions(self, tmp_path):
        engine, sessions, repo = await setup_repository(tmp_path)
        await seed(
            sessions,
            nurse_row("n1"),
            nurse_row("n2", is_available=False),
            nurse_row("n3", rating=2.0),
            nurse_row("n4", latitude=None, longitude=None),
            nurse_row("n5"),
            models.EstablishmentExclusion(establishment_id="est-1", nurse_id="n5"),
            models.EstablishmentExclusion(establishment_id="est-2", nurse_id="n1"),
        )

        candidates = await repo.list_available_nurse_candidates(CandidateHints.for_mission(make_mission()))
        by_id = {c.id: c for c in candidates}

        assert sorted(by_id) == ["n1", "n4", "n5"]
        assert by_id["n1"].excluded_by == frozenset()
        assert by_id["n5"].excluded_by == frozenset({"est-1"})
        assert by_id["n4"].location is None
        assert by_id["n1"].specializations == frozenset({"urgences"})
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_malformed_profile_is_skipped(self, tmp_path):
        engine, sessions, repo = await setup_repository(tmp_path)
        await seed(sessions, nurse_row("good"), nurse_row("bad", specializations="urgences"))

        candidates = await repo.list_available_nurse_candidates(CandidateHints.for_mission(make_mission()))

        assert [c.id for c in candidates] == ["good"]
        await engine.dispose()


class TestUpserts:
    @pytest.mark.asyncio
    async def test_application_upsert_is_keyed(self, tmp_path):
        engine, _, repo = await setup_repository(tmp_path)

        first, created = await repo.upsert_application("mission-1", "n1", ApplicationStatus.PENDING, 91.5)
        second, created_again = await repo.upsert_application("mission-1", "n1", ApplicationStatus.PENDING, 50.0)

        assert created is True
        assert created_again is False
        assert second.id == first.id
        assert second.ai_match_score == 91.5
        assert first.source == "auto-matched"
        assert len(await repo.list_applications("mission-1")) == 1
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_concurrent_application_upserts_create_one_row(self, tmp_path):
        engine, _, repo = await setup_repository(tmp_path)

        results = await asyncio.gather(
            *(repo.upsert_application("mission-1", "n1", ApplicationStatus.PENDING, 80.0) for _ in range(4))
        )

        assert sum(1 for _, created in results if created) == 1
        assert len({application.id for application, _ in results}) == 1
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_notification_upsert_per_delivery_attempt(self, tmp_path):
        engine, _, repo = await setup_repository(tmp_path)

        assert await repo.next_delivery_attempt("mission-1") == 0

        notification, created = await repo.upsert_notification("mission-1", "n1", 98.6, 2.0)
        _, duplicate = await repo.upsert_notification("mission-1", "n1", 98.6, 2.0)
        _, renotified = await repo.upsert_notification("mission-1", "n1", 98.6, 2.0, delivery_attempt=1)

        assert created is True
        assert duplicate is False
        assert renotified is True
        assert notification.urgency_bucket == "high"
        assert await repo.next_delivery_attempt("mission-1") == 2
        assert [n.delivery_attempt for n in await repo.list_notifications("mission-1")] == [0, 1]
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_results_are_scoped_to_mission(self, tmp_path):
        engine, _, repo = await setup_repository(tmp_path)

        await repo.upsert_application("mission-1", "n1", ApplicationStatus.PENDING, 75.0)
        await repo.upsert_application("mission-2", "n1", ApplicationStatus.PENDING, 72.0)

        applications = await repo.list_applications("mission-2")
        assert [(a.mission_id, a.ai_match_score) for a in applications] == [("mission-2", 72.0)]
        await engine.dispose()


class TestDeliveryState:
    @pytest.mark.asyncio
    async def test_mark_delivered_once(self, tmp_path):
        engine, _, repo = await setup_repository(tmp_path)

        notification, _ = await repo.upsert_notification("mission-1", "n1", 98.6, 2.0)
        assert notification.delivered is False

        assert await repo.mark_notification_delivered(notification.id) is True
        assert await repo.mark_notification_delivered(notification.id) is False

        stored, created = await repo.upsert_notification("mission-1", "n1", 98.6, 2.0)
        assert created is False
        assert stored.delivered is True
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_unknown_notification_is_not_marked(self, tmp_path):
        engine, _, repo = await setup_repository(tmp_path)
        assert await repo.mark_notification_delivered("missing") is False
        await engine.dispose()


class TestReadErrors:
    """Reads against a database without the schema surface as PersistenceUnavailableError."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "operation",
        ["list_applications", "list_notifications", "next_delivery_attempt", "mark_notification_delivered"],
    )
    async def test_driver_errors_are_wrapped(self, tmp_path, operation):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/empty.db")
        repo = SqlMatchingRepository(async_sessionmaker(engine, class_=AsyncSession))

        with pytest.raises(PersistenceUnavailableError):
            await getattr(repo, operation)("mission-1")
        await engine.dispose()
