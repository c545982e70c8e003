"""
Notification Dispatcher - one notification per ranked nurse

Every ranked match (qualification is enough, no auto-apply needed) gets a
notification row keyed on (mission_id, nurse_id, delivery_attempt). The row
means "should be delivered": it is pushed to the channel whenever it is not
yet marked delivered, then marked with a keyed update. Delivery is therefore
at-least-once; re-running the orchestrator for a mission never creates a
second row and never re-sends an already delivered one. An explicit
re-notify uses a fresh delivery_attempt.
"""

import logging
from typing import List

from nurselink.services.channels import LogChannel, NotificationChannel, build_match_message
from nurselink.services.entities import MatchScore, Mission, Notification
from nurselink.services.repository import MatchingRepository
from nurselink.services.writes import WriteFailure, WriteReport, with_timeout

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        repository: MatchingRepository,
        channel: NotificationChannel = None,
        write_timeout: float = 5.0,
    ):
        self.repository = repository
        self.channel = channel or LogChannel()
        self.write_timeout = write_timeout

    async def notify(
        self, mission: Mission, matches: List[MatchScore], delivery_attempt: int = 0
    ) -> WriteReport:
        """
        Record and deliver notifications for ranked matches.

        Returns:
            WriteReport; failures holds both record write failures
            ("notification") and channel failures ("delivery"). A delivery
            failure keeps its record in report.records, still undelivered.
        """
        report = WriteReport()

        for match in matches:
            try:
                notification, created = await with_timeout(
                    self.repository.upsert_notification(
                        mission.id,
                        match.nurse_id,
                        match.total_score,
                        match.distance_km,
                        delivery_attempt=delivery_attempt,
                    ),
                    self.write_timeout,
                    step=f"notification write for nurse {match.nurse_id}",
                )
            except Exception as e:
                logger.error(f"Notification write failed for mission {mission.id}, nurse {match.nurse_id}: {e}")
                report.failures.append(WriteFailure(match.nurse_id, "notification", str(e)))
                continue

            report.records.append(notification)
            if created:
                report.created += 1
            else:
                report.existing += 1

            if not notification.delivered:
                await self._deliver(mission, notification, report)

        logger.info(
            f"Mission {mission.id} (attempt {delivery_attempt}): {report.created} notifications created, "
            f"{report.existing} already present, {report.delivered} delivered, "
            f"{len(report.failures)} failures"
        )
        return report

    async def _deliver(self, mission: Mission, notification: Notification, report: WriteReport) -> None:
        message = build_match_message(mission, notification)
        try:
            delivered = await with_timeout(
                self.channel.send(message),
                self.write_timeout,
                step=f"delivery to nurse {notification.nurse_id}",
            )
        except Exception as e:
            delivered = False
            logger.warning(f"Delivery to nurse {notification.nurse_id} raised: {e}")

        if not delivered:
            report.failures.append(
                WriteFailure(notification.nurse_id, "delivery", f"{self.channel.channel_type} delivery failed")
            )
            return

        report.delivered += 1
        try:
            await with_timeout(
                self.repository.mark_notification_delivered(notification.id),
                self.write_timeout,
                step=f"delivery mark for nurse {notification.nurse_id}",
            )
        except Exception as e:
            # Message went out; an unmarked row is sent again on the next run
            logger.warning(f"Could not mark notification {notification.id} delivered: {e}")
