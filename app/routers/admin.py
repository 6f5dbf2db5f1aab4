from typing import List, Literal, Optional
from datetime import datetime
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlmodel import Session, select, func
from pydantic import BaseModel

from app.db.db import get_session
from app.matching.matcher import find_all_matches
from app.matching.trigger import MatchTrigger
from app.models.activity_log import ActivityLog
from app.models.email_log import EmailLog
from app.models.found_item import FoundItem
from app.models.lost_item import LostItem
from app.models.user import User
from app.notifications.queue import NotificationQueue
from app.services.audit_log import AuditLog, redact_email_log
from app.services.report_store import (
    ACTIVE,
    RESOLVED_STATUS,
    delete_report,
    find_active_by_type,
    find_by_id,
    update_status,
)
from app.utils.auth_helper import require_admin
from app.utils.pipeline import get_audit_log, get_match_trigger, get_notification_queue
from app.utils.s3_service import delete_report_image

router = APIRouter()

ReportType = Literal["lost", "found"]


# Response Models
class DashboardStats(BaseModel):
    active_lost: int
    active_found: int
    recovered: int
    closed: int


class ActivityEntry(BaseModel):
    id: str
    action_type: str
    item_type: str
    item_id: str
    item_unique_id: Optional[str]
    item_name: Optional[str]
    description: Optional[str]
    performed_by: Optional[str]
    is_admin_action: bool
    created_at: datetime
    details: Optional[dict]


class UserDetail(BaseModel):
    id: int
    public_id: str
    email: str
    full_name: str
    phone_number: Optional[str]
    whatsapp_number: Optional[str]
    role: str
    status: str
    created_at: datetime


class QueueStatus(BaseModel):
    pending_count: int
    draining: bool
    total_sent_pairs: int
    next_job: Optional[dict]


def _recent_items(session: Session, model, report_type: str, limit: int = 10):
    rows = session.exec(
        select(model, User)
        .join(User, User.id == model.user_id)
        .order_by(model.created_at.desc())
        .limit(limit)
    ).all()

    recent = []
    for item, owner in rows:
        data = item.model_dump()
        data["id"] = str(item.id)
        data["type"] = report_type
        data["full_name"] = owner.full_name
        data["email"] = owner.email
        data["user_role"] = owner.role
        data["user_status"] = owner.status
        recent.append(data)

    return recent


def _activity_entries(session: Session, logs) -> List[ActivityEntry]:
    entries = []

    for log in logs:
        actor_id = log.admin_id or log.user_id
        actor = session.get(User, actor_id) if actor_id else None

        entries.append(ActivityEntry(
            id=str(log.id),
            action_type=log.action_type,
            item_type=log.item_type,
            item_id=log.item_id,
            item_unique_id=log.item_unique_id,
            item_name=log.item_name,
            description=log.description,
            performed_by=actor.full_name if actor else None,
            is_admin_action=log.admin_id is not None,
            created_at=log.created_at,
            details=log.details,
        ))

    return entries


@router.get("/dashboard")
def get_dashboard(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Counts by status plus the ten most recent reports of each type"""
    def count(model, status):
        return session.exec(select(func.count(model.id)).where(model.status == status)).one()

    return {
        "stats": DashboardStats(
            active_lost=count(LostItem, ACTIVE),
            active_found=count(FoundItem, ACTIVE),
            recovered=count(LostItem, "recovered"),
            closed=count(FoundItem, "closed"),
        ),
        "recent_lost": _recent_items(session, LostItem, "lost"),
        "recent_found": _recent_items(session, FoundItem, "found"),
    }


@router.get("/history", response_model=List[ActivityEntry])
def get_activity_history(
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    logs = session.exec(
        select(ActivityLog).order_by(ActivityLog.created_at.desc()).limit(limit)
    ).all()

    return _activity_entries(session, logs)


@router.get("/items/{report_type}/{item_id}/activity")
def get_item_activity(
    report_type: ReportType,
    item_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Activity for one item; still answers after the item was deleted"""
    logs = session.exec(
        select(ActivityLog)
        .where(ActivityLog.item_id == item_id)
        .order_by(ActivityLog.created_at.desc())
    ).all()

    if not logs:
        raise HTTPException(status_code=404, detail="No activity logs found for this item")

    item = find_by_id(session, report_type, item_id)

    if item:
        summary = {
            "id": str(item.id),
            "unique_id": item.unique_id,
            "item_name": item.item_name,
            "category": item.category,
            "status": item.status,
            "is_deleted": False,
        }
    else:
        # the log is the only remaining record of the item
        known = next((log for log in logs if log.item_unique_id), logs[0])
        summary = {
            "id": item_id,
            "unique_id": known.item_unique_id,
            "item_name": known.item_name,
            "category": (known.details or {}).get("category"),
            "status": "deleted",
            "is_deleted": True,
        }

    return {
        "item": summary,
        "activity_logs": _activity_entries(session, logs),
    }


@router.get("/users", response_model=List[UserDetail])
def get_users(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return session.exec(select(User).order_by(User.created_at.desc())).all()


@router.get("/users/{user_id}", response_model=UserDetail)
def get_user(
    user_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _set_user_status(session: Session, user_id: int, status: str) -> User:
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user.status = status
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@router.post("/users/{user_id}/ban")
def ban_user(
    user_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    audit_log: AuditLog = Depends(get_audit_log),
):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot ban your own account")

    user = _set_user_status(session, user_id, "banned")

    audit_log.record_activity(
        admin_id=admin.id,
        action_type="ban_user",
        item_type="user",
        item_id=user.id,
        item_name=user.full_name,
        description="User account banned",
    )

    return {"message": "User banned successfully"}


@router.post("/users/{user_id}/unban")
def unban_user(
    user_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    audit_log: AuditLog = Depends(get_audit_log),
):
    user = _set_user_status(session, user_id, "active")

    audit_log.record_activity(
        admin_id=admin.id,
        action_type="unban_user",
        item_type="user",
        item_id=user.id,
        item_name=user.full_name,
        description="User account unbanned",
    )

    return {"message": "User unbanned successfully"}


@router.get("/email-logs")
def get_email_logs(
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    logs = session.exec(
        select(EmailLog).order_by(EmailLog.sent_at.desc()).limit(limit)
    ).all()

    return [redact_email_log(log) for log in logs]


@router.get("/matches")
def get_matches(
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    """Preview every current match; read only, sends nothing"""
    matches = find_all_matches(
        find_active_by_type(session, "lost"),
        find_active_by_type(session, "found"),
    )
    return [match.to_dict() for match in matches]


@router.patch("/close/{report_type}/{item_id}")
def close_item(
    report_type: ReportType,
    item_id: str,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    audit_log: AuditLog = Depends(get_audit_log),
    trigger: MatchTrigger = Depends(get_match_trigger),
):
    item = find_by_id(session, report_type, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    status = RESOLVED_STATUS[report_type]
    if item.status == status:
        raise HTTPException(status_code=400, detail=f"Item is already {status}")

    update_status(session, item, status)

    audit_log.record_activity(
        admin_id=admin.id,
        action_type="recover_item" if report_type == "lost" else "close_item",
        item_type=report_type,
        item_id=item.id,
        item_unique_id=item.unique_id,
        item_name=item.item_name,
        description=f"Item marked as {status}",
    )

    background_tasks.add_task(trigger.on_report_resolved, item.id, report_type)

    return {"message": f"Item marked as {status}"}


@router.delete("/items/{report_type}/{item_id}")
def admin_delete_item(
    report_type: ReportType,
    item_id: str,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    audit_log: AuditLog = Depends(get_audit_log),
):
    item = find_by_id(session, report_type, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    image_key = item.image
    delete_report(session, item, report_type, audit_log, admin)
    delete_report_image(image_key)

    return {"message": f"{report_type.capitalize()} item deleted successfully"}


@router.get("/email-queue", response_model=QueueStatus)
async def get_email_queue_status(
    admin: User = Depends(require_admin),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    return queue.status()


@router.post("/email-queue/clear-history")
async def clear_email_history(
    admin: User = Depends(require_admin),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    queue.clear_history()
    return {"ok": True, "message": "Sent match history cleared"}


@router.post("/email-queue/clear")
async def clear_email_queue(
    admin: User = Depends(require_admin),
    queue: NotificationQueue = Depends(get_notification_queue),
):
    cleared = queue.clear_queue()
    return {"ok": True, "cleared": cleared}
