"""
Match Ranker - filter → score → threshold → sort → truncate

Ordering (total order, reproducible for equal scores):
    1. total_score descending
    2. distance_km ascending
    3. candidate rating descending
    4. candidate id ascending

compute_ranking() is the side-effect-free seam used by the orchestrator,
the preview endpoint and the tests.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from nurselink.services.candidate_filter import FilterResult, filter_candidates
from nurselink.services.entities import Mission, NurseCandidate, MatchScore
from nurselink.services.scoring import DEFAULT_WEIGHTS, ScoringWeights, score_candidate

logger = logging.getLogger(__name__)

QUALIFICATION_THRESHOLD = 60.0


@dataclass
class Ranking:
    matches: List[MatchScore] = field(default_factory=list)
    filtered_out: Dict[str, int] = field(default_factory=dict)
    below_threshold: int = 0
    truncated: int = 0


def _sort_key(pair: Tuple[MatchScore, NurseCandidate]):
    match, candidate = pair
    return (-match.total_score, match.distance_km, -candidate.rating, candidate.id)


def rank_eligible(
    mission: Mission,
    filtered: FilterResult,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    qualification_threshold: float = QUALIFICATION_THRESHOLD,
) -> Ranking:
    """Score, threshold, sort and truncate candidates that passed the filter."""
    scored = [
        (score_candidate(mission, item.candidate, weights, distance=item.distance_km), item.candidate)
        for item in filtered.eligible
    ]
    qualified = [pair for pair in scored if pair[0].total_score >= qualification_threshold]
    qualified.sort(key=_sort_key)

    limit = max(0, mission.max_candidates)
    ranking = Ranking(
        matches=[match for match, _ in qualified[:limit]],
        filtered_out=filtered.dropped,
        below_threshold=len(scored) - len(qualified),
        truncated=max(0, len(qualified) - limit),
    )

    logger.debug(
        f"Mission {mission.id}: {len(filtered.eligible)} eligible, "
        f"{len(qualified)} qualified, {len(ranking.matches)} ranked"
    )
    return ranking


def rank_candidates(
    mission: Mission,
    pool: Iterable[NurseCandidate],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    qualification_threshold: float = QUALIFICATION_THRESHOLD,
    excluded_ids: Iterable[str] = (),
) -> Ranking:
    """
    Build the bounded, ordered match list for a mission.

    Args:
        mission: Mission snapshot
        pool: Candidate snapshots
        weights: Scoring weights
        qualification_threshold: Minimum total score to be offered the mission
        excluded_ids: Nurse ids the establishment excludes

    Returns:
        Ranking with at most mission.max_candidates matches and counters
        describing what was left out
    """
    filtered = filter_candidates(mission, pool, excluded_ids=excluded_ids)
    return rank_eligible(mission, filtered, weights, qualification_threshold)


def compute_ranking(
    mission: Mission,
    candidates: Iterable[NurseCandidate],
    weights: Optional[ScoringWeights] = None,
    qualification_threshold: float = QUALIFICATION_THRESHOLD,
) -> List[MatchScore]:
    """Pure ranking of candidates for a mission; no persistence, no notifications."""
    return rank_candidates(
        mission,
        candidates,
        weights=weights or DEFAULT_WEIGHTS,
        qualification_threshold=qualification_threshold,
    ).matches
