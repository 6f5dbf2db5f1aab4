"""
Outbound email: rendering notification jobs and delivering them over SMTP.
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import List

import jinja2

from app.config import Settings
from app.notifications.jobs import JobType, NotificationJob
from app.services.audit_log import EmailType

logger = logging.getLogger(__name__)

templates_path = Path(__file__).parent / "templates"
template_env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(searchpath=templates_path),
    autoescape=True,
)


class MailDeliveryError(Exception):
    """Raised by the SMTP transport when a message cannot be delivered."""


@dataclass(frozen=True)
class OutboundEmail:
    recipient_email: str
    recipient_name: str
    subject: str
    html: str
    email_type: EmailType


def _render(template_name: str, **context) -> str:
    return template_env.get_template(template_name).render(**context)


def render_job_emails(job: NotificationJob, client_url: str) -> List[OutboundEmail]:
    """Emails for a job, in sending order. A match emails the lost reporter first."""
    context = {
        "lost_item": job.lost_item,
        "found_item": job.found_item,
        "lost_user": job.lost_user,
        "found_user": job.found_user,
        "match": job.match,
        "client_url": client_url.rstrip("/"),
    }

    if job.job_type == JobType.MATCH:
        return [
            OutboundEmail(
                recipient_email=job.lost_user.email,
                recipient_name=job.lost_user.full_name,
                subject="Potential Match Found for Your Lost Item!",
                html=_render("match_lost.html", **context),
                email_type=EmailType.MATCH_NOTIFICATION,
            ),
            OutboundEmail(
                recipient_email=job.found_user.email,
                recipient_name=job.found_user.full_name,
                subject="Potential Match for Item You Found!",
                html=_render("match_found.html", **context),
                email_type=EmailType.MATCH_NOTIFICATION,
            ),
        ]

    if job.job_type == JobType.ITEM_RECOVERED:
        return [
            OutboundEmail(
                recipient_email=job.found_user.email,
                recipient_name=job.found_user.full_name,
                subject=f"Update: '{job.lost_item.item_name}' has been recovered",
                html=_render("item_recovered.html", **context),
                email_type=EmailType.ITEM_RECOVERED_NOTIFICATION,
            )
        ]

    if job.job_type == JobType.FOUND_ITEM_CLOSED:
        return [
            OutboundEmail(
                recipient_email=job.lost_user.email,
                recipient_name=job.lost_user.full_name,
                subject=f"Update: found item '{job.found_item.item_name}' has been closed",
                html=_render("found_item_closed.html", **context),
                email_type=EmailType.FOUND_ITEM_CLOSED_NOTIFICATION,
            )
        ]

    raise ValueError(f"Unsupported job type: {job.job_type}")


class MailSender:
    """SMTP delivery. Without credentials it runs in dev mode and only logs."""

    def __init__(self, smtp_host: str, smtp_port: int, smtp_user: str, smtp_pass: str, from_email: str):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.from_email = from_email

    @classmethod
    def from_settings(cls, settings: Settings) -> "MailSender":
        if not settings.smtp_user or not settings.smtp_pass:
            logger.warning("SMTP credentials not configured, emails will only be logged")

        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_pass=settings.smtp_pass,
            from_email=settings.email_from,
        )

    @property
    def configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    async def send(self, email: OutboundEmail) -> bool:
        """Deliver one email. Ordinary delivery failures return False instead of raising."""
        if not self.configured:
            logger.info(f"DEV MODE - Would send email to {email.recipient_email}")
            logger.info(f"Subject: {email.subject}")
            return True

        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._deliver, email)
        except MailDeliveryError as e:
            logger.error(f"Failed to send email to {email.recipient_email}: {e}")
            return False

        logger.info(f"Email sent successfully to {email.recipient_email}")
        return True

    def _build_message(self, email: OutboundEmail) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = email.subject
        msg["From"] = self.from_email
        msg["To"] = email.recipient_email
        msg.attach(MIMEText(email.html, "html"))
        return msg

    def _deliver(self, email: OutboundEmail):
        msg = self._build_message(email)

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls()
                server.login(self.smtp_user, self.smtp_pass)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(str(e)) from e
