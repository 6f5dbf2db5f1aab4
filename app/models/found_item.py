import uuid
from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class FoundItem(SQLModel, table=True):
    __tablename__ = "found_items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    unique_id: str = Field(index=True, unique=True)  # LNF-FOUND-00001
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Finder info
    user_id: int = Field(foreign_key="users.id", index=True)

    # Item fields
    item_name: str = Field(index=True)
    description: str
    category: str = Field(index=True)
    location_found: str
    date_found: datetime
    image: Optional[str] = Field(default=None)

    status: str = Field(default="active", index=True)  # active -> closed
