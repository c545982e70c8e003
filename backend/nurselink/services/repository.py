"""
Matching Repository - persistence collaborator of the matching engine

MatchingRepository is the interface the orchestrator depends on;
SqlMatchingRepository implements it on the SQLAlchemy async session.

Upsert contract:
    upsert_application is keyed on (mission_id, nurse_id) and
    upsert_notification on (mission_id, nurse_id, delivery_attempt). Both
    return (record, created). An existing row is returned untouched; a
    concurrent insert that loses the race on the unique constraint falls
    back to the winner's row instead of failing.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from nurselink import models
from nurselink.config import get_settings
from nurselink.exceptions import PersistenceUnavailableError
from nurselink.services.entities import (
    Application,
    ApplicationStatus,
    Coordinates,
    Mission,
    Notification,
    NurseCandidate,
    Shift,
    Urgency,
    urgency_bucket,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateHints:
    """Pre-filter hints a backend may use to narrow the candidate query."""

    establishment_id: str
    location: Coordinates
    max_distance_km: float
    min_rating: float
    start_date: datetime
    end_date: datetime

    @classmethod
    def for_mission(cls, mission: Mission) -> "CandidateHints":
        return cls(
            establishment_id=mission.establishment_id,
            location=mission.location,
            max_distance_km=mission.max_distance_km,
            min_rating=mission.min_rating,
            start_date=mission.start_date,
            end_date=mission.end_date,
        )


class MatchingRepository(ABC):
    """Persistence operations consumed by the matching engine."""

    @abstractmethod
    async def get_mission(self, mission_id: str) -> Optional[Mission]:
        """Return the mission snapshot, or None when it does not exist."""
        pass

    @abstractmethod
    async def list_available_nurse_candidates(self, hints: CandidateHints) -> List[NurseCandidate]:
        """Return a read snapshot of the candidate pool."""
        pass

    @abstractmethod
    async def upsert_application(
        self, mission_id: str, nurse_id: str, status: ApplicationStatus, score: float
    ) -> Tuple[Application, bool]:
        pass

    @abstractmethod
    async def upsert_notification(
        self,
        mission_id: str,
        nurse_id: str,
        score: float,
        distance_km: float,
        delivery_attempt: int = 0,
    ) -> Tuple[Notification, bool]:
        pass

    @abstractmethod
    async def mark_notification_delivered(self, notification_id: str) -> bool:
        """Record that the channel accepted the notification; False if already marked."""
        pass

    @abstractmethod
    async def list_applications(self, mission_id: str) -> List[Application]:
        pass

    @abstractmethod
    async def list_notifications(self, mission_id: str) -> List[Notification]:
        pass

    @abstractmethod
    async def next_delivery_attempt(self, mission_id: str) -> int:
        """Attempt number for an explicit re-notification of a mission."""
        pass


def _string_set(value, column: str) -> frozenset:
    if value is None:
        return frozenset()
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{column} must be a list of strings, got {value!r}")
    return frozenset(value)


def mission_from_row(row: models.Mission) -> Mission:
    settings = get_settings()
    return Mission(
        id=row.id,
        establishment_id=row.establishment_id,
        title=row.title,
        specialization=row.specialization,
        start_date=row.start_date,
        end_date=row.end_date,
        location=Coordinates(lat=row.latitude, lng=row.longitude),
        hourly_rate=row.hourly_rate,
        required_experience_years=row.required_experience_years or 0,
        required_certifications=_string_set(row.required_certifications, "required_certifications"),
        shift=Shift(row.shift),
        urgency=Urgency(row.urgency),
        max_candidates=(
            row.max_candidates if row.max_candidates is not None else settings.default_max_candidates
        ),
        max_distance_km=(
            row.max_distance_km if row.max_distance_km is not None else settings.default_max_distance_km
        ),
        min_rating=row.min_rating if row.min_rating is not None else settings.default_min_rating,
    )


def candidate_from_row(row: models.NurseProfile, excluded_by: frozenset = frozenset()) -> NurseCandidate:
    location = None
    if row.latitude is not None and row.longitude is not None:
        location = Coordinates(lat=row.latitude, lng=row.longitude)

    return NurseCandidate(
        id=row.id,
        specializations=_string_set(row.specializations, "specializations"),
        experience_years=row.experience_years or 0,
        rating=row.rating or 0.0,
        certifications=_string_set(row.certifications, "certifications"),
        location=location,
        is_available=bool(row.is_available),
        available_from=row.available_from,
        available_until=row.available_until,
        excluded_by=excluded_by,
    )


def application_from_row(row: models.MissionApplication) -> Application:
    return Application(
        id=row.id,
        mission_id=row.mission_id,
        nurse_id=row.nurse_id,
        source=row.source,
        status=ApplicationStatus(row.status),
        ai_match_score=row.ai_match_score,
        created_at=row.created_at,
    )


def notification_from_row(row: models.Notification) -> Notification:
    return Notification(
        id=row.id,
        mission_id=row.mission_id,
        nurse_id=row.nurse_id,
        score=row.score,
        distance_km=row.distance_km,
        urgency_bucket=row.urgency_bucket,
        delivery_attempt=row.delivery_attempt,
        created_at=row.created_at,
        delivered_at=row.delivered_at,
    )


class SqlMatchingRepository(MatchingRepository):
    """
    SQLAlchemy implementation of MatchingRepository.

    Each operation opens its own session so one failed write never poisons
    the next. Driver and connection errors surface as
    PersistenceUnavailableError.

    Example:
        >>> from nurselink.database import async_session
        >>> repo = SqlMatchingRepository(async_session)
        >>> mission = await repo.get_mission("mission-123")
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def get_mission(self, mission_id: str) -> Optional[Mission]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(models.Mission).where(models.Mission.id == mission_id)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(f"Failed to load mission {mission_id}: {e}") from e

        if row is None:
            return None

        try:
            return mission_from_row(row)
        except ValueError as e:
            logger.warning(f"Mission {mission_id} is not matchable: {e}")
            return None

    async def list_available_nurse_candidates(self, hints: CandidateHints) -> List[NurseCandidate]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(models.NurseProfile).where(
                        models.NurseProfile.is_available.is_(True),
                        models.NurseProfile.rating >= hints.min_rating,
                    ).order_by(models.NurseProfile.id)
                )
                rows = result.scalars().all()

                excluded_result = await session.execute(
                    select(models.EstablishmentExclusion.nurse_id).where(
                        models.EstablishmentExclusion.establishment_id == hints.establishment_id
                    )
                )
                excluded_ids = {row[0] for row in excluded_result.all()}
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(f"Failed to load nurse candidates: {e}") from e

        candidates = []
        skipped = 0
        for row in rows:
            excluded_by = frozenset({hints.establishment_id}) if row.id in excluded_ids else frozenset()
            try:
                candidates.append(candidate_from_row(row, excluded_by=excluded_by))
            except ValueError as e:
                skipped += 1
                logger.warning(f"Skipping malformed nurse profile {row.id}: {e}")

        if skipped:
            logger.info(f"Loaded {len(candidates)} candidates, skipped {skipped} malformed profiles")
        return candidates

    async def upsert_application(
        self, mission_id: str, nurse_id: str, status: ApplicationStatus, score: float
    ) -> Tuple[Application, bool]:
        try:
            async with self._session_factory() as session:
                existing = await self._find_application(session, mission_id, nurse_id)
                if existing is not None:
                    return application_from_row(existing), False

                row = models.MissionApplication(
                    mission_id=mission_id,
                    nurse_id=nurse_id,
                    source=models.AUTO_MATCHED_SOURCE,
                    status=status.value,
                    ai_match_score=score,
                )
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError:
                    # Another writer inserted the same pair first
                    await session.rollback()
                    existing = await self._find_application(session, mission_id, nurse_id)
                    if existing is None:
                        raise
                    return application_from_row(existing), False

                await session.refresh(row)
                return application_from_row(row), True
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(
                f"Failed to upsert application ({mission_id}, {nurse_id}): {e}"
            ) from e

    async def upsert_notification(
        self,
        mission_id: str,
        nurse_id: str,
        score: float,
        distance_km: float,
        delivery_attempt: int = 0,
    ) -> Tuple[Notification, bool]:
        try:
            async with self._session_factory() as session:
                existing = await self._find_notification(session, mission_id, nurse_id, delivery_attempt)
                if existing is not None:
                    return notification_from_row(existing), False

                row = models.Notification(
                    mission_id=mission_id,
                    nurse_id=nurse_id,
                    delivery_attempt=delivery_attempt,
                    score=score,
                    distance_km=distance_km,
                    urgency_bucket=urgency_bucket(score),
                )
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    existing = await self._find_notification(
                        session, mission_id, nurse_id, delivery_attempt
                    )
                    if existing is None:
                        raise
                    return notification_from_row(existing), False

                await session.refresh(row)
                return notification_from_row(row), True
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(
                f"Failed to upsert notification ({mission_id}, {nurse_id}): {e}"
            ) from e

    async def mark_notification_delivered(self, notification_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(models.Notification)
                    .where(
                        models.Notification.id == notification_id,
                        models.Notification.delivered_at.is_(None),
                    )
                    .values(delivered_at=datetime.now(timezone.utc).replace(tzinfo=None))
                )
                await session.commit()
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(
                f"Failed to mark notification {notification_id} delivered: {e}"
            ) from e

    async def list_applications(self, mission_id: str) -> List[Application]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(models.MissionApplication)
                    .where(models.MissionApplication.mission_id == mission_id)
                    .order_by(models.MissionApplication.ai_match_score.desc(), models.MissionApplication.nurse_id)
                )
                return [application_from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(f"Failed to list applications for {mission_id}: {e}") from e

    async def list_notifications(self, mission_id: str) -> List[Notification]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(models.Notification)
                    .where(models.Notification.mission_id == mission_id)
                    .order_by(
                        models.Notification.delivery_attempt,
                        models.Notification.score.desc(),
                        models.Notification.nurse_id,
                    )
                )
                return [notification_from_row(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(f"Failed to list notifications for {mission_id}: {e}") from e

    async def next_delivery_attempt(self, mission_id: str) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.max(models.Notification.delivery_attempt)).where(
                        models.Notification.mission_id == mission_id
                    )
                )
                current = result.scalar()
        except SQLAlchemyError as e:
            raise PersistenceUnavailableError(f"Failed to read delivery attempts for {mission_id}: {e}") from e
        return 0 if current is None else current + 1

    @staticmethod
    async def _find_application(session, mission_id: str, nurse_id: str):
        result = await session.execute(
            select(models.MissionApplication).where(
                models.MissionApplication.mission_id == mission_id,
                models.MissionApplication.nurse_id == nurse_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _find_notification(session, mission_id: str, nurse_id: str, delivery_attempt: int):
        result = await session.execute(
            select(models.Notification).where(
                models.Notification.mission_id == mission_id,
                models.Notification.nurse_id == nurse_id,
                models.Notification.delivery_attempt == delivery_attempt,
            )
        )
        return result.scalar_one_or_none()
