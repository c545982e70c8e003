"""
Matching API

Endpoints:
    POST /matching/missions/{mission_id}/trigger   - schedule a matching run (202)
    POST /matching/missions/{mission_id}/renotify  - re-notify with a new delivery attempt (202)
    GET  /matching/missions/{mission_id}/status    - last known run state
    GET  /matching/missions/{mission_id}/results   - applications and notifications written
    POST /matching/ranking                         - preview a ranking, no side effects

Scheduling goes through BackgroundTasks, so the response is sent before the
run is enqueued and a broker outage never fails the request.
"""

import logging
from functools import lru_cache

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from nurselink.config import get_settings
from nurselink.database import async_session
from nurselink.schemas import (
    ApplicationResponse,
    MatchScoreResponse,
    MatchingResultsResponse,
    NotificationResponse,
    RankingRequest,
    RankingResponse,
    RunStatusResponse,
    TriggerResponse,
)
from nurselink.services.ranker import compute_ranking
from nurselink.services.repository import MatchingRepository, SqlMatchingRepository
from nurselink.services.run_store import RunStatusStore, get_run_store
from nurselink.services.scoring import ScoringWeights
from nurselink.tasks.matching import trigger_matching

logger = logging.getLogger(__name__)

router = APIRouter()


def get_repository() -> MatchingRepository:
    return SqlMatchingRepository(async_session)


@lru_cache
def get_status_store() -> RunStatusStore:
    return get_run_store()


@router.post("/missions/{mission_id}/trigger", response_model=TriggerResponse, status_code=202)
async def trigger_mission_matching(mission_id: str, background_tasks: BackgroundTasks):
    background_tasks.add_task(trigger_matching, mission_id, 0)
    logger.info(f"Matching requested for mission {mission_id}")
    return TriggerResponse(mission_id=mission_id, delivery_attempt=0)


@router.post("/missions/{mission_id}/renotify", response_model=TriggerResponse, status_code=202)
async def renotify_mission(
    mission_id: str,
    background_tasks: BackgroundTasks,
    repository: MatchingRepository = Depends(get_repository),
):
    mission = await repository.get_mission(mission_id)
    if mission is None:
        raise HTTPException(status_code=404, detail="Mission not found")

    attempt = await repository.next_delivery_attempt(mission_id)
    background_tasks.add_task(trigger_matching, mission_id, attempt)
    logger.info(f"Re-notification requested for mission {mission_id} (attempt {attempt})")
    return TriggerResponse(mission_id=mission_id, delivery_attempt=attempt)


@router.get("/missions/{mission_id}/status", response_model=RunStatusResponse)
async def get_matching_status(
    mission_id: str,
    store: RunStatusStore = Depends(get_status_store),
):
    status = await store.get(mission_id)
    if status is None:
        raise HTTPException(status_code=404, detail="No matching run recorded for this mission")
    return RunStatusResponse(**status)


@router.get("/missions/{mission_id}/results", response_model=MatchingResultsResponse)
async def get_matching_results(
    mission_id: str,
    repository: MatchingRepository = Depends(get_repository),
):
    applications = await repository.list_applications(mission_id)
    notifications = await repository.list_notifications(mission_id)
    return MatchingResultsResponse(
        mission_id=mission_id,
        applications=[ApplicationResponse.model_validate(a) for a in applications],
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
    )


@router.post("/ranking", response_model=RankingResponse)
async def preview_ranking(request: RankingRequest):
    settings = get_settings()
    try:
        mission = request.mission.to_entity()
        candidates = [candidate.to_entity() for candidate in request.candidates]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    matches = compute_ranking(
        mission,
        candidates,
        weights=ScoringWeights.from_settings(),
        qualification_threshold=settings.qualification_threshold,
    )
    return RankingResponse(
        mission_id=mission.id,
        total_matches=len(matches),
        matches=[MatchScoreResponse.model_validate(m) for m in matches],
    )
