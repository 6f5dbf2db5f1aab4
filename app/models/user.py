from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: str = Field(index=True, unique=True)
    google_id: Optional[str] = Field(default=None, index=True, unique=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    full_name: str
    email: str = Field(index=True, unique=True)
    image: Optional[str] = Field(default=None)

    # Contact details shared with the other party of a match
    phone_number: Optional[str] = Field(default=None)
    whatsapp_number: Optional[str] = Field(default=None)

    role: str = Field(default="user")  # Possible roles: user, admin
    status: str = Field(default="active")  # Possible values: active, banned
