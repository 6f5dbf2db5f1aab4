"""
Append-only audit trail for outbound email and item/user activity.

Writes go through their own short-lived session so that an entry is
committed independently of the caller's transaction (a delete records the
item before it is destroyed). A failed write is logged and swallowed:
auditing must never break the operation it describes.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlmodel import Session

from app.db.db import new_session
from app.models.activity_log import ActivityLog
from app.models.email_log import EmailLog

logger = logging.getLogger(__name__)


class EmailType(str, Enum):
    REGISTRATION_OTP = "registration_otp"
    PASSWORD_RESET_OTP = "password_reset_otp"
    MATCH_NOTIFICATION = "match_notification"
    ITEM_RECOVERED_NOTIFICATION = "item_recovered_notification"
    FOUND_ITEM_CLOSED_NOTIFICATION = "found_item_closed_notification"
    GENERAL = "general"


# Email types whose content embeds a one-time code
SENSITIVE_EMAIL_TYPES = frozenset({EmailType.REGISTRATION_OTP, EmailType.PASSWORD_RESET_OTP})

REDACTED_CONTENT = "[Sensitive content hidden]"


def is_sensitive_type(email_type: str) -> bool:
    return email_type in {t.value for t in SENSITIVE_EMAIL_TYPES}


def redact_email_log(entry: EmailLog) -> dict:
    """Admin-facing view of an email log entry."""
    data = entry.model_dump()
    if entry.is_sensitive:
        data["content"] = REDACTED_CONTENT
    return data


class AuditLog:
    def __init__(self, session_factory: Callable[[], Session] = new_session):
        self.session_factory = session_factory

    def record_email(
        self,
        recipient_email: str,
        recipient_name: str,
        subject: str,
        content: str,
        email_type: str,
        status: str = "sent",
        error_message: Optional[str] = None,
    ) -> Optional[EmailLog]:
        try:
            email_type = EmailType(email_type).value
        except ValueError:
            logger.warning("Unknown email type %r, logging as general", email_type)
            email_type = EmailType.GENERAL.value

        entry = EmailLog(
            recipient_email=recipient_email,
            recipient_name=recipient_name,
            subject=subject,
            content=content,
            email_type=email_type,
            is_sensitive=is_sensitive_type(email_type),
            status=status,
            error_message=error_message,
        )

        return self._write(entry)

    def record_activity(
        self,
        action_type: str,
        item_type: str,
        item_id: Any,
        admin_id: Optional[int] = None,
        user_id: Optional[int] = None,
        item_unique_id: Optional[str] = None,
        item_name: Optional[str] = None,
        description: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityLog]:
        entry = ActivityLog(
            admin_id=admin_id,
            user_id=user_id,
            action_type=action_type,
            item_type=item_type,
            item_id=str(item_id),
            item_unique_id=item_unique_id,
            item_name=item_name,
            description=description,
            details=details,
        )

        return self._write(entry)

    def _write(self, entry):
        try:
            with self.session_factory() as session:
                session.add(entry)
                session.commit()
                session.refresh(entry)
            return entry
        except Exception:
            logger.exception("Failed to write %s", type(entry).__name__)
            return None
