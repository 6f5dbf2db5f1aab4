"""
Runs the matcher when reports are created or resolved and queues the
resulting notifications.

Both entry points are meant to be handed to a background task after the
HTTP request has committed its change (FastAPI BackgroundTasks); the request
never waits for them. They open their own session, and any error is logged
here instead of reaching the request that triggered them.
"""

import logging
from typing import Callable

from sqlmodel import Session

from app.db.db import new_session
from app.matching.matcher import evaluate
from app.notifications.jobs import JobType, NotificationJob
from app.notifications.queue import NotificationQueue
from app.services.report_store import find_active_by_type, find_by_id, find_user, opposite_type

logger = logging.getLogger(__name__)


class MatchTrigger:
    def __init__(self, queue: NotificationQueue, session_factory: Callable[[], Session] = new_session):
        self.queue = queue
        self.session_factory = session_factory

    def _scan(self, session: Session, report, report_type: str):
        """Yield (lost, found, match) for every active counterpart matching the report."""
        for candidate in find_active_by_type(session, opposite_type(report_type)):
            if report_type == "lost":
                lost, found = report, candidate
            else:
                lost, found = candidate, report

            result = evaluate(lost, found)
            if result:
                yield lost, found, result

    async def on_report_created(self, report_id, report_type: str):
        try:
            with self.session_factory() as session:
                report = find_by_id(session, report_type, report_id)
                if not report:
                    logger.warning(f"Match check skipped, {report_type} report {report_id} not found")
                    return

                logger.info(f"Checking for matches for new {report_type} item: '{report.item_name}'")

                match_count = 0
                for lost, found, result in self._scan(session, report, report_type):
                    lost_user = find_user(session, lost.user_id)
                    found_user = find_user(session, found.user_id)

                    if not lost_user or not found_user:
                        logger.warning(f"Match {lost.unique_id} / {found.unique_id} has a missing reporter, skipped")
                        continue

                    match_count += 1
                    logger.info(
                        f"Match found: '{lost.item_name}' <-> '{found.item_name}' "
                        f"({result.details.name_similarity}% similar, score {result.confidence_score})"
                    )

                    self.queue.enqueue(
                        NotificationJob(
                            job_type=JobType.MATCH,
                            lost_item=lost,
                            found_item=found,
                            lost_user=lost_user,
                            found_user=found_user,
                            match=result,
                        )
                    )

                if match_count == 0:
                    logger.info(f"No matches found for '{report.item_name}'")
                else:
                    logger.info(f"Found {match_count} match(es) for '{report.item_name}'")
        except Exception:
            logger.exception(f"Error checking for matches for {report_type} report {report_id}")

    async def on_report_resolved(self, report_id, report_type: str):
        """
        Tell the other side of every match that the report is resolved.

        A recovered lost report notifies the finders of matching found
        reports; a closed found report notifies the owners of matching lost
        reports.
        """
        job_type = JobType.ITEM_RECOVERED if report_type == "lost" else JobType.FOUND_ITEM_CLOSED

        try:
            with self.session_factory() as session:
                report = find_by_id(session, report_type, report_id)
                if not report:
                    logger.warning(f"Resolution notice skipped, {report_type} report {report_id} not found")
                    return

                for lost, found, result in self._scan(session, report, report_type):
                    lost_user = find_user(session, lost.user_id)
                    found_user = find_user(session, found.user_id)

                    if not lost_user or not found_user:
                        continue

                    self.queue.enqueue(
                        NotificationJob(
                            job_type=job_type,
                            lost_item=lost,
                            found_item=found,
                            lost_user=lost_user,
                            found_user=found_user,
                            match=result,
                        )
                    )
        except Exception:
            logger.exception(f"Error sending resolution notices for {report_type} report {report_id}")
