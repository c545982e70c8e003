from nurselink.schemas.matching import (
    CoordinatesSchema,
    MissionInput,
    CandidateInput,
    RankingRequest,
    MatchScoreResponse,
    RankingResponse,
    ApplicationResponse,
    NotificationResponse,
    MatchingResultsResponse,
    TriggerResponse,
    RunStatusResponse,
)

__all__ = [
    "CoordinatesSchema",
    "MissionInput",
    "CandidateInput",
    "RankingRequest",
    "MatchScoreResponse",
    "RankingResponse",
    "ApplicationResponse",
    "NotificationResponse",
    "MatchingResultsResponse",
    "TriggerResponse",
    "RunStatusResponse",
]
