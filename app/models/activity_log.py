import uuid
from typing import Any, Dict, Optional
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_logs"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    # Actor: admin_id for admin actions, user_id for owner actions
    admin_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    user_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)

    # values: "create_item", "edit_item", "delete_item", "recover_item", "close_item",
    # "ban_user", "unban_user", "system"
    action_type: str = Field(index=True)
    item_type: str  # "lost", "found", "user", "system"

    # Plain strings, the item may no longer exist
    item_id: str = Field(index=True)
    item_unique_id: Optional[str] = Field(default=None, index=True)
    item_name: Optional[str] = Field(default=None)

    description: Optional[str] = Field(default=None)
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
