from fastapi import Request

from app.config import Settings
from app.matching.trigger import MatchTrigger
from app.notifications.mail_sender import MailSender
from app.notifications.queue import NotificationQueue
from app.services.audit_log import AuditLog


def build_pipeline(settings: Settings):
    """Construct the single queue and trigger for this process."""
    audit_log = AuditLog()

    queue = NotificationQueue(
        mail_sender=MailSender.from_settings(settings),
        audit_log=audit_log,
        client_url=settings.client_url,
        email_delay=settings.email_delay_ms / 1000,
        batch_size=settings.email_batch_size,
        batch_delay=settings.email_batch_delay_ms / 1000,
    )

    return audit_log, queue, MatchTrigger(queue)


def get_audit_log(request: Request) -> AuditLog:
    return request.app.state.audit_log


def get_notification_queue(request: Request) -> NotificationQueue:
    return request.app.state.notification_queue


def get_match_trigger(request: Request) -> MatchTrigger:
    return request.app.state.match_trigger
