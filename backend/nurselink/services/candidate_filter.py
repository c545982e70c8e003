"""
Candidate Filter - hard eligibility rules applied before scoring

A candidate is dropped when any of these holds:
    - unavailable: is_available is false
    - no_location: no coordinates on the profile
    - too_far: further than the mission's max distance
    - low_rating: rating below the mission's minimum
    - excluded: blacklisted by (or declined for) the mission's establishment
    - schedule_conflict: availability window does not overlap the mission
    - malformed: the record itself could not be evaluated, or carries a
      non-finite rating, experience or coordinate

The filter never raises on a candidate record. Distances computed here are
handed to the scorer so each candidate is measured once per run.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from nurselink.services.entities import Mission, NurseCandidate
from nurselink.services.geo import distance_km

logger = logging.getLogger(__name__)


@dataclass
class EligibleCandidate:
    candidate: NurseCandidate
    distance_km: float


@dataclass
class FilterResult:
    eligible: List[EligibleCandidate] = field(default_factory=list)
    dropped: Dict[str, int] = field(default_factory=dict)

    @property
    def candidates(self) -> List[NurseCandidate]:
        return [item.candidate for item in self.eligible]

    @property
    def dropped_total(self) -> int:
        return sum(self.dropped.values())


def _window_overlaps(mission: Mission, candidate: NurseCandidate) -> bool:
    """Open-ended windows overlap everything on their open side."""
    if candidate.available_from is not None and candidate.available_from > mission.end_date:
        return False
    if candidate.available_until is not None and candidate.available_until < mission.start_date:
        return False
    return True


def _rejection_reason(
    mission: Mission,
    candidate: NurseCandidate,
    excluded_ids: FrozenSet[str],
) -> Optional[str]:
    if not candidate.is_available:
        return "unavailable"
    if candidate.location is None:
        return "no_location"
    if candidate.id in excluded_ids or mission.establishment_id in candidate.excluded_by:
        return "excluded"
    if not math.isfinite(candidate.rating) or not math.isfinite(candidate.experience_years):
        return "malformed"
    if candidate.rating < mission.min_rating:
        return "low_rating"
    if not _window_overlaps(mission, candidate):
        return "schedule_conflict"
    return None


def filter_candidates(
    mission: Mission,
    pool: Iterable[NurseCandidate],
    excluded_ids: Iterable[str] = (),
) -> FilterResult:
    """
    Split a candidate pool into eligible candidates and drop counts.

    Args:
        mission: Mission snapshot
        pool: Candidate snapshots (any iterable, consumed once)
        excluded_ids: Extra nurse ids the establishment excludes

    Returns:
        FilterResult; eligible candidates keep the pool's order
    """
    excluded = frozenset(excluded_ids)
    result = FilterResult()
    dropped: Counter = Counter()

    for candidate in pool:
        try:
            reason = _rejection_reason(mission, candidate, excluded)
            if reason is None:
                distance = distance_km(mission.location, candidate.location)
                if not math.isfinite(distance):
                    reason = "malformed"
                elif distance > mission.max_distance_km:
                    reason = "too_far"
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(
                f"Dropping malformed candidate {getattr(candidate, 'id', '?')} "
                f"for mission {mission.id}: {e}"
            )
            reason = "malformed"

        if reason:
            dropped[reason] += 1
            continue

        result.eligible.append(EligibleCandidate(candidate=candidate, distance_km=distance))

    result.dropped = dict(dropped)
    if dropped:
        logger.debug(f"Mission {mission.id}: dropped candidates {result.dropped}")
    return result
