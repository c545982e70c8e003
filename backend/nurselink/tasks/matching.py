"""
Background Matching Task

run_matching executes one MatchingOrchestrator run for a mission inside a
Celery worker. trigger_matching is the fire-and-forget entry point used
right after a mission is durably created.

Guarantees:
- The caller never waits for, or sees an error from, a matching run
- Failed runs are retried (max 3) and logged; retries are safe because
  every write is a keyed upsert
- Task duration and failures are exported to Prometheus
"""

import asyncio
import logging
import time
from typing import Optional

from prometheus_client import Histogram, Counter

from nurselink.celery import celery_app
from nurselink.database import create_worker_session_factory
from nurselink.exceptions import MatchingError
from nurselink.middleware.metrics import record_trigger_failure
from nurselink.services.orchestrator import MatchingOrchestrator, MatchingRunReport, RunState
from nurselink.services.repository import SqlMatchingRepository
from nurselink.services.run_store import get_run_store

logger = logging.getLogger(__name__)

RETRY_COUNTDOWN_SECONDS = 60

# ==================== Prometheus Metrics ====================

TASK_DURATION = Histogram(
    "celery_task_duration_seconds",
    "Time spent executing Celery tasks",
    ["task_name"]
)

TASK_FAILURES = Counter(
    "celery_task_failures_total",
    "Number of Celery task failures",
    ["task_name"]
)


# ==================== Helper Functions ====================

async def _run_orchestrator_async(mission_id: str, delivery_attempt: int) -> MatchingRunReport:
    engine, session_factory = create_worker_session_factory()
    run_store = get_run_store()
    try:
        orchestrator = MatchingOrchestrator.from_settings(
            SqlMatchingRepository(session_factory),
            run_store=run_store,
        )
        return await orchestrator.run(mission_id, delivery_attempt=delivery_attempt)
    finally:
        await run_store.close()
        await engine.dispose()


def run_orchestrator(mission_id: str, delivery_attempt: int = 0) -> MatchingRunReport:
    """Run the async orchestrator synchronously for Celery."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(_run_orchestrator_async(mission_id, delivery_attempt))
    finally:
        loop.close()


# ==================== Celery Tasks ====================

@celery_app.task(bind=True, max_retries=3, default_retry_delay=RETRY_COUNTDOWN_SECONDS)
def run_matching(self, mission_id: str, delivery_attempt: int = 0) -> dict:
    """
    Match nurses to a newly created mission.

    Args:
        mission_id: Mission UUID
        delivery_attempt: 0 for the creation-time run and its retries;
            a higher number re-notifies already notified nurses

    Returns:
        Run status dict (same shape as the status endpoint)
    """
    start_time = time.time()

    try:
        report = run_orchestrator(mission_id, delivery_attempt)
    finally:
        duration = time.time() - start_time
        TASK_DURATION.labels(task_name="run_matching").observe(duration)

    if report.state == RunState.FAILED:
        TASK_FAILURES.labels(task_name="run_matching").inc()
        logger.error(
            f"Matching run for mission {mission_id} failed "
            f"(retry {self.request.retries}/{self.max_retries}): {report.failure_reason}"
        )
        raise self.retry(exc=MatchingError(report.failure_reason), countdown=RETRY_COUNTDOWN_SECONDS)

    return report.to_status()


def trigger_matching(mission_id: str, delivery_attempt: int = 0) -> Optional[str]:
    """
    Enqueue a matching run and return immediately.

    Returns:
        Celery task id, or None when the run could not be enqueued (the
        failure is logged and counted, never raised)
    """
    try:
        result = run_matching.apply_async(
            args=[mission_id],
            kwargs={"delivery_attempt": delivery_attempt},
        )
    except Exception as e:
        record_trigger_failure()
        logger.error(f"Could not enqueue matching for mission {mission_id}: {e}")
        return None

    logger.info(f"Matching scheduled for mission {mission_id} (attempt {delivery_attempt}): task {result.id}")
    return result.id
