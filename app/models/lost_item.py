import uuid
from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class LostItem(SQLModel, table=True):
    __tablename__ = "lost_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    unique_id: str = Field(index=True, unique=True)  # LNF-LOST-00001
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Owner info
    user_id: int = Field(foreign_key="users.id", index=True)

    # Item fields
    item_name: str = Field(index=True)
    description: str
    category: str = Field(index=True)
    last_known_location: str
    date_lost: datetime
    image: Optional[str] = Field(default=None)

    status: str = Field(default="active", index=True)  # active -> recovered
