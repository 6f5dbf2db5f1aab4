import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from app.matching.matcher import MatchResult
from app.models.found_item import FoundItem
from app.models.lost_item import LostItem
from app.models.user import User


class JobType(str, Enum):
    MATCH = "match"
    ITEM_RECOVERED = "item_recovered"
    FOUND_ITEM_CLOSED = "found_item_closed"


def pair_key(first_id: Union[uuid.UUID, str], second_id: Union[uuid.UUID, str]) -> str:
    """
    Order-independent key for a pair of reports.

    Ids are reduced to their canonical UUID string (fixed-width lowercase hex)
    before sorting, so (a, b) and (b, a) give the same key and two different
    pairs can never collide.
    """
    ids = sorted(str(uuid.UUID(str(i))) for i in (first_id, second_id))
    return f"{ids[0]}_{ids[1]}"


@dataclass
class NotificationJob:
    job_type: JobType
    lost_item: LostItem
    found_item: FoundItem
    lost_user: User
    found_user: User
    match: Optional[MatchResult] = None
    queued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def pair_key(self) -> Optional[str]:
        # only match notifications are deduplicated
        if self.job_type != JobType.MATCH:
            return None
        return pair_key(self.lost_item.id, self.found_item.id)

    def preview(self) -> dict:
        return {
            "type": self.job_type.value,
            "lost_item": self.lost_item.item_name,
            "found_item": self.found_item.item_name,
            "queued_at": self.queued_at,
        }
