import uuid
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlmodel import Session, select

from app.models.counter import Counter
from app.models.found_item import FoundItem
from app.models.lost_item import LostItem
from app.models.user import User
from app.services.audit_log import AuditLog

REPORT_TYPES = ("lost", "found")

ACTIVE = "active"
RESOLVED_STATUS = {"lost": "recovered", "found": "closed"}

_MODELS = {"lost": LostItem, "found": FoundItem}
_COUNTER_NAMES = {"lost": "lost_item_id", "found": "found_item_id"}
_PREFIXES = {"lost": "LNF-LOST-", "found": "LNF-FOUND-"}

Report = Union[LostItem, FoundItem]


def report_model(report_type: str):
    try:
        return _MODELS[report_type]
    except KeyError:
        raise ValueError(f"Unknown report type: {report_type}")


def opposite_type(report_type: str) -> str:
    report_model(report_type)
    return "found" if report_type == "lost" else "lost"


def generate_unique_id(session: Session, report_type: str) -> str:
    """
    Next human-readable code for a report type, e.g. LNF-LOST-00001.

    The counter only ever moves forward, so codes of deleted reports are
    never handed out again. The increment is flushed inside the caller's
    transaction and commits together with the new report.
    """
    name = _COUNTER_NAMES[report_type]

    counter = session.exec(
        select(Counter).where(Counter.name == name).with_for_update()
    ).first()

    if not counter:
        counter = Counter(name=name, seq=0)

    counter.seq += 1
    session.add(counter)
    session.flush()

    return f"{_PREFIXES[report_type]}{counter.seq:05d}"


def find_by_id(session: Session, report_type: str, report_id) -> Optional[Report]:
    model = report_model(report_type)

    if not isinstance(report_id, uuid.UUID):
        try:
            report_id = uuid.UUID(str(report_id))
        except ValueError:
            return None

    return session.get(model, report_id)


def find_active_by_type(session: Session, report_type: str) -> List[Report]:
    model = report_model(report_type)
    return list(session.exec(select(model).where(model.status == ACTIVE)).all())


def find_user(session: Session, user_id: int) -> Optional[User]:
    return session.get(User, user_id)


def update_status(session: Session, report: Report, status: str) -> Report:
    report.status = status
    report.updated_at = datetime.now(timezone.utc)

    session.add(report)
    session.commit()
    session.refresh(report)

    return report


def delete_report(
    session: Session,
    report: Report,
    report_type: str,
    audit_log: AuditLog,
    actor: User,
):
    """Hard delete; the activity log is written first and outlives the report."""
    is_admin = actor.role == "admin"

    audit_log.record_activity(
        admin_id=actor.id if is_admin else None,
        user_id=None if is_admin else actor.id,
        action_type="delete_item",
        item_type=report_type,
        item_id=report.id,
        item_unique_id=report.unique_id,
        item_name=report.item_name,
        description=f"Deleted {report_type} item: {report.item_name}",
        details={"category": report.category, "owner_id": report.user_id},
    )

    session.delete(report)
    session.commit()
