import uuid
from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class EmailLog(SQLModel, table=True):
    __tablename__ = "email_logs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    sent_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    recipient_email: str
    recipient_name: str
    subject: str
    content: str

    # values: "registration_otp", "password_reset_otp", "match_notification",
    # "item_recovered_notification", "found_item_closed_notification", "general"
    email_type: str = Field(default="general", index=True)

    # Emails carrying one-time codes; content is never shown to admins
    is_sensitive: bool = Field(default=False)

    status: str = Field(default="sent")  # "sent" or "failed"
    error_message: Optional[str] = Field(default=None)
