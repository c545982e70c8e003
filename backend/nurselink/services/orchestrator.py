"""
Matching Orchestrator - entry point run in the background after a mission is created

State machine (sequential, no state re-entered):

    Scheduled → Filtering → Scoring → Ranked → Writing → Notifying → Completed
         └───────────┴──────────┴────────┴─────────┴──────────┴──→ Failed(reason)

- Filtering: load mission and candidate pool (time bounded), apply hard rules
- Scoring: score survivors, threshold, sort, truncate
- Ranked: ranking is final; the same list feeds both write phases
- Writing: provisional applications for matches ≥ auto-apply threshold
- Notifying: one notification per ranked match

Failure model:
    - Missing mission or empty pool → Completed with zero matches
    - One candidate's write fails, or every application write fails →
      recorded, run continues to Notifying
    - Fetch timeout / persistence down / no ranked nurse getting a stored
      notification → Failed; nothing already written is rolled back

Every write is a keyed upsert, so running the orchestrator again for the
same mission (retry after a crash, duplicate trigger, concurrent runs)
converges to the same rows without duplicates.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from nurselink.config import get_settings
from nurselink.middleware.metrics import (
    record_created,
    record_filtered,
    record_run,
    record_write_failure,
)
from nurselink.services.applications import ApplicationWriter
from nurselink.services.candidate_filter import filter_candidates
from nurselink.services.channels import NotificationChannel, get_channel
from nurselink.services.entities import MatchScore
from nurselink.services.notifications import NotificationDispatcher
from nurselink.services.ranker import QUALIFICATION_THRESHOLD, rank_eligible
from nurselink.services.repository import CandidateHints, MatchingRepository
from nurselink.services.run_store import RunStatusStore
from nurselink.services.scoring import DEFAULT_WEIGHTS, ScoringWeights
from nurselink.services.writes import WriteReport, with_timeout

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    SCHEDULED = "scheduled"
    FILTERING = "filtering"
    SCORING = "scoring"
    RANKED = "ranked"
    WRITING = "writing"
    NOTIFYING = "notifying"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RunState.COMPLETED, RunState.FAILED})

_NEXT_STATE = {
    RunState.SCHEDULED: RunState.FILTERING,
    RunState.FILTERING: RunState.SCORING,
    RunState.SCORING: RunState.RANKED,
    RunState.RANKED: RunState.WRITING,
    RunState.WRITING: RunState.NOTIFYING,
    RunState.NOTIFYING: RunState.COMPLETED,
}


class _RunFailed(Exception):
    pass


@dataclass
class MatchingRunReport:
    mission_id: str
    delivery_attempt: int = 0
    state: RunState = RunState.SCHEDULED
    failure_reason: Optional[str] = None
    detail: Optional[str] = None
    history: List[RunState] = field(default_factory=lambda: [RunState.SCHEDULED])
    matches: List[MatchScore] = field(default_factory=list)
    filtered_out: Dict[str, int] = field(default_factory=dict)
    candidates_fetched: int = 0
    applications: WriteReport = field(default_factory=WriteReport)
    notifications: WriteReport = field(default_factory=WriteReport)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.COMPLETED

    def to_status(self) -> dict:
        """JSON-serializable summary stored in the run status store."""
        return {
            "mission_id": self.mission_id,
            "delivery_attempt": self.delivery_attempt,
            "state": self.state.value,
            "failure_reason": self.failure_reason,
            "detail": self.detail,
            "history": [state.value for state in self.history],
            "candidates_fetched": self.candidates_fetched,
            "filtered_out": dict(self.filtered_out),
            "ranked": len(self.matches),
            "ranked_nurse_ids": [match.nurse_id for match in self.matches],
            "applications_created": self.applications.created,
            "applications_existing": self.applications.existing,
            "notifications_created": self.notifications.created,
            "notifications_existing": self.notifications.existing,
            "notifications_delivered": self.notifications.delivered,
            "failures": [
                {"nurse_id": f.nurse_id, "operation": f.operation, "error": f.error}
                for f in self.applications.failures + self.notifications.failures
            ],
            "duration_seconds": round(self.duration_seconds, 3),
        }


class MatchingOrchestrator:
    """
    Runs filter → score → rank → write → notify for one mission.

    Example:
        >>> orchestrator = MatchingOrchestrator.from_settings(SqlMatchingRepository(async_session))
        >>> report = await orchestrator.run("mission-123")
        >>> report.state
        <RunState.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        repository: MatchingRepository,
        writer: Optional[ApplicationWriter] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        run_store: Optional[RunStatusStore] = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        qualification_threshold: float = QUALIFICATION_THRESHOLD,
        fetch_timeout: float = 10.0,
    ):
        self.repository = repository
        self.writer = writer or ApplicationWriter(repository)
        self.dispatcher = dispatcher or NotificationDispatcher(repository)
        self.run_store = run_store
        self.weights = weights
        self.qualification_threshold = qualification_threshold
        self.fetch_timeout = fetch_timeout

    @classmethod
    def from_settings(
        cls,
        repository: MatchingRepository,
        run_store: Optional[RunStatusStore] = None,
        channel: Optional[NotificationChannel] = None,
    ) -> "MatchingOrchestrator":
        settings = get_settings()
        return cls(
            repository,
            writer=ApplicationWriter(
                repository,
                auto_apply_threshold=settings.auto_apply_threshold,
                write_timeout=settings.write_timeout_seconds,
            ),
            dispatcher=NotificationDispatcher(
                repository,
                channel=channel or get_channel(),
                write_timeout=settings.write_timeout_seconds,
            ),
            run_store=run_store,
            weights=ScoringWeights.from_settings(),
            qualification_threshold=settings.qualification_threshold,
            fetch_timeout=settings.candidate_fetch_timeout_seconds,
        )

    async def run(self, mission_id: str, delivery_attempt: int = 0) -> MatchingRunReport:
        """
        Execute one matching run. Never raises: the outcome, including
        failures, is in the returned report.
        """
        report = MatchingRunReport(mission_id=mission_id, delivery_attempt=delivery_attempt)
        start_time = time.perf_counter()
        await self._publish(report)

        try:
            await self._execute(report)
        except _RunFailed:
            pass
        except Exception as e:
            logger.exception(f"Unexpected error while matching mission {mission_id}")
            await self._mark_failed(report, f"{type(e).__name__}: {e}")
        finally:
            report.duration_seconds = time.perf_counter() - start_time
            record_run(report.state.value, report.duration_seconds, len(report.matches))

        if report.succeeded:
            logger.info(
                f"Matching for mission {mission_id} completed: {len(report.matches)} ranked, "
                f"{report.applications.created} applications, {report.notifications.created} notifications "
                f"in {report.duration_seconds:.2f}s"
            )
        else:
            logger.error(f"Matching for mission {mission_id} failed: {report.failure_reason}")

        return report

    async def _execute(self, report: MatchingRunReport) -> None:
        await self._advance(report)  # filtering

        try:
            mission = await with_timeout(
                self.repository.get_mission(report.mission_id), self.fetch_timeout, step="mission fetch"
            )
        except Exception as e:
            await self._fail(report, f"mission fetch: {e}")

        if mission is None:
            logger.warning(f"Mission {report.mission_id} not found; nothing to match")
            report.detail = "mission not found"
            await self._complete_empty(report)
            return

        try:
            pool = await with_timeout(
                self.repository.list_available_nurse_candidates(CandidateHints.for_mission(mission)),
                self.fetch_timeout,
                step="candidate fetch",
            )
        except Exception as e:
            await self._fail(report, f"candidate fetch: {e}")

        report.candidates_fetched = len(pool)
        if not pool:
            logger.info(f"Mission {mission.id}: candidate pool is empty")
            report.detail = "no available candidates"
            await self._complete_empty(report)
            return

        filtered = filter_candidates(mission, pool)
        report.filtered_out = filtered.dropped
        record_filtered(filtered.dropped)

        await self._advance(report)  # scoring
        ranking = rank_eligible(mission, filtered, self.weights, self.qualification_threshold)
        report.matches = ranking.matches

        await self._advance(report)  # ranked
        logger.info(
            f"Mission {mission.id}: ranked {len(ranking.matches)} of {len(pool)} candidates "
            f"({filtered.dropped_total} filtered, {ranking.below_threshold} below threshold, "
            f"{ranking.truncated} truncated)"
        )

        await self._advance(report)  # writing
        report.applications = await self.writer.write_auto_applications(mission, ranking.matches)
        self._record_writes("application", report.applications)
        if report.applications.all_failed:
            logger.warning(
                f"Mission {mission.id}: all {len(report.applications.failures)} application writes failed, "
                f"notifying ranked nurses anyway"
            )

        await self._advance(report)  # notifying
        report.notifications = await self.dispatcher.notify(
            mission, ranking.matches, delivery_attempt=report.delivery_attempt
        )
        self._record_writes("notification", report.notifications)
        if report.notifications.all_failed:
            # No ranked nurse has a stored notification: treat as an outage
            await self._fail(report, self._persistence_failure(report))

        await self._advance(report)  # completed

    async def _complete_empty(self, report: MatchingRunReport) -> None:
        """Input errors end the run successfully with zero matches."""
        while report.state not in TERMINAL_STATES:
            await self._advance(report)

    async def _advance(self, report: MatchingRunReport) -> None:
        report.state = _NEXT_STATE[report.state]
        report.history.append(report.state)
        logger.debug(f"Mission {report.mission_id}: → {report.state.value}")
        await self._publish(report)

    async def _mark_failed(self, report: MatchingRunReport, reason: str) -> None:
        report.state = RunState.FAILED
        report.history.append(RunState.FAILED)
        report.failure_reason = reason
        await self._publish(report)

    async def _fail(self, report: MatchingRunReport, reason: str) -> None:
        await self._mark_failed(report, reason)
        raise _RunFailed(reason)

    async def _publish(self, report: MatchingRunReport) -> None:
        if self.run_store is None:
            return
        try:
            await self.run_store.set(report.mission_id, report.to_status())
        except Exception as e:
            logger.warning(f"Could not record run status for mission {report.mission_id}: {e}")

    @staticmethod
    def _record_writes(kind: str, write_report: WriteReport) -> None:
        record_created(kind, write_report.created)
        for failure in write_report.failures:
            record_write_failure(failure.operation)

    @staticmethod
    def _persistence_failure(report: MatchingRunReport) -> str:
        failed = [("notification", report.notifications)]
        if report.applications.all_failed:
            failed.insert(0, ("application", report.applications))
        summary = ", ".join(f"all {len(w.failures)} {kind} writes failed" for kind, w in failed)
        return f"persistence unavailable: {summary} ({report.notifications.failures[0].error})"
