"""
Application Writer - provisional applications for high-confidence matches

Only matches at or above the auto-apply threshold (default 70, above the
60-point qualification threshold) get an application. Writes are upserts
keyed on (mission_id, nurse_id), so invoking the writer again for the same
mission creates nothing new. A failed write is recorded and the remaining
candidates are still processed.
"""

import logging
from typing import List

from nurselink.services.entities import ApplicationStatus, MatchScore, Mission
from nurselink.services.repository import MatchingRepository
from nurselink.services.writes import WriteFailure, WriteReport, with_timeout

logger = logging.getLogger(__name__)

AUTO_APPLY_THRESHOLD = 70.0


class ApplicationWriter:
    def __init__(
        self,
        repository: MatchingRepository,
        auto_apply_threshold: float = AUTO_APPLY_THRESHOLD,
        write_timeout: float = 5.0,
    ):
        self.repository = repository
        self.auto_apply_threshold = auto_apply_threshold
        self.write_timeout = write_timeout

    def eligible(self, matches: List[MatchScore]) -> List[MatchScore]:
        return [m for m in matches if m.total_score >= self.auto_apply_threshold]

    async def write_auto_applications(self, mission: Mission, matches: List[MatchScore]) -> WriteReport:
        """
        Upsert a pending, auto-matched application per eligible match.

        Returns:
            WriteReport whose records are the applications now stored for
            each eligible pair (new or pre-existing) and whose failures list
            the pairs that could not be written
        """
        report = WriteReport()

        for match in self.eligible(matches):
            try:
                application, created = await with_timeout(
                    self.repository.upsert_application(
                        mission.id, match.nurse_id, ApplicationStatus.PENDING, match.total_score
                    ),
                    self.write_timeout,
                    step=f"application write for nurse {match.nurse_id}",
                )
            except Exception as e:
                logger.error(f"Application write failed for mission {mission.id}, nurse {match.nurse_id}: {e}")
                report.failures.append(WriteFailure(match.nurse_id, "application", str(e)))
                continue

            report.records.append(application)
            if created:
                report.created += 1
            else:
                report.existing += 1

        logger.info(
            f"Mission {mission.id}: {report.created} applications created, "
            f"{report.existing} already present, {len(report.failures)} failed"
        )
        return report
