"""
Rate-limited, deduplicating queue for notification emails.

Jobs are sent one at a time in FIFO order, with a delay between emails and a
longer pause between fixed-size batches, so the mail provider is never
flooded. A match between the same two reports is emailed at most once for
the life of the process (until clear_history is called).

Everything runs on the event loop. Queue state is only mutated between
awaits, so enqueue, batch removal and registry updates never interleave;
the only suspension points are the delays and the mail send itself.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set

from app.notifications.jobs import NotificationJob, pair_key
from app.notifications.mail_sender import MailSender, render_job_emails
from app.services.audit_log import AuditLog, EmailType

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_DELAY = 2.0  # seconds between emails
DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_DELAY = 5.0  # seconds between batches


class NotificationQueue:
    """
    Attributes:
        pending: jobs waiting to be picked into a batch, oldest first
        draining: True while the drain task is running
        sent_pairs: pair keys of match jobs that were delivered
        drain_task: the running (or last) drain task
    """

    def __init__(
        self,
        mail_sender: MailSender,
        audit_log: AuditLog,
        client_url: str = "http://localhost:5173",
        email_delay: float = DEFAULT_EMAIL_DELAY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.mail_sender = mail_sender
        self.audit_log = audit_log
        self.client_url = client_url
        self.email_delay = email_delay
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep

        self.pending: List[NotificationJob] = []
        self.draining = False
        self.sent_pairs: Set[str] = set()
        self.drain_task: Optional[asyncio.Task] = None

        # current batch, not yet dispatched
        self._batch: List[NotificationJob] = []
        self._dispatching: Optional[NotificationJob] = None

    def __repr__(self):
        return (
            f"<NotificationQueue pending={self.pending_count} draining={self.draining} "
            f"sent_pairs={len(self.sent_pairs)}>"
        )

    @property
    def pending_count(self) -> int:
        return len(self._batch) + len(self.pending)

    def _is_queued(self, key: str) -> bool:
        if self._dispatching is not None and self._dispatching.pair_key == key:
            return True
        return any(job.pair_key == key for job in self._batch + self.pending)

    def enqueue(self, job: NotificationJob) -> bool:
        """
        Add a job and make sure the drain task is running. Never blocks.

        Returns False, without queuing, for a match whose pair was already
        notified or is still waiting to be sent.
        """
        key = job.pair_key

        if key is not None:
            if key in self.sent_pairs:
                logger.info(f"Skipping duplicate match notification: {key}")
                return False

            if self._is_queued(key):
                logger.info(f"Match already in queue: {key}")
                return False

        self.pending.append(job)
        logger.info(f"Added {job.job_type.value} job to email queue (queue size: {self.pending_count})")

        if not self.draining:
            drain = self._drain()
            try:
                self.drain_task = asyncio.create_task(drain)
            except RuntimeError:
                # no running loop; the job stays pending for the next enqueue
                drain.close()
                raise
            self.draining = True

        return True

    async def _drain(self):
        processed = succeeded = failed = 0
        logger.info(f"Starting email queue processing ({self.pending_count} jobs)")

        try:
            while self.pending:
                self._batch = self.pending[: self.batch_size]
                del self.pending[: self.batch_size]

                while self._batch:
                    job = self._batch.pop(0)

                    self._dispatching = job
                    try:
                        delivered = await self._dispatch(job)
                    finally:
                        self._dispatching = None

                    processed += 1
                    if delivered:
                        succeeded += 1
                    else:
                        failed += 1

                    # no delay after the last job overall
                    if self._batch or self.pending:
                        await self._sleep(self.email_delay)

                if self.pending:
                    logger.info(f"Batch complete, pausing {self.batch_delay}s before next batch")
                    await self._sleep(self.batch_delay)
        finally:
            self._batch = []
            self.draining = False

        logger.info(
            f"Queue processing complete: {processed} processed, {succeeded} successful, "
            f"{failed} failed, {len(self.sent_pairs)} sent matches tracked"
        )

    async def _dispatch(self, job: NotificationJob) -> bool:
        """Send every email of a job. Stops at the first failure; nothing is retried."""
        try:
            emails = render_job_emails(job, self.client_url)
        except Exception as e:
            logger.exception(f"Could not render {job.job_type.value} notification")
            self.audit_log.record_email(
                recipient_email="system",
                recipient_name="system",
                subject="Notification rendering failed",
                content=f"{job.lost_item.item_name} / {job.found_item.item_name}",
                email_type=EmailType.GENERAL,
                status="failed",
                error_message=str(e),
            )
            return False

        for position, email in enumerate(emails):
            if position:
                await self._sleep(self.email_delay)

            try:
                delivered = await self.mail_sender.send(email)
                error = None if delivered else "Mail transport reported a delivery failure"
            except Exception as e:
                delivered, error = False, str(e) or type(e).__name__

            self.audit_log.record_email(
                recipient_email=email.recipient_email,
                recipient_name=email.recipient_name,
                subject=email.subject,
                content=email.html,
                email_type=email.email_type,
                status="sent" if delivered else "failed",
                error_message=error,
            )

            if not delivered:
                logger.error(f"Failed to send {job.job_type.value} email to {email.recipient_email}: {error}")
                return False

        if job.pair_key is not None:
            self.sent_pairs.add(job.pair_key)

        return True

    def status(self) -> dict:
        upcoming = self._batch[0] if self._batch else (self.pending[0] if self.pending else None)

        return {
            "pending_count": self.pending_count,
            "draining": self.draining,
            "total_sent_pairs": len(self.sent_pairs),
            "next_job": upcoming.preview() if upcoming else None,
        }

    def was_notified(self, lost_item_id, found_item_id) -> bool:
        return pair_key(lost_item_id, found_item_id) in self.sent_pairs

    def clear_history(self):
        """Forget delivered pairs so they can be notified again. Pending jobs are kept."""
        self.sent_pairs.clear()
        logger.info("Cleared sent matches history")

    def clear_queue(self) -> int:
        """Drop every job not yet dispatched. A send already in progress still completes."""
        cleared = self.pending_count
        self.pending = []
        self._batch = []
        logger.info(f"Cleared {cleared} jobs from email queue")
        return cleared
