from datetime import datetime, timezone
from typing import Literal, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from sqlmodel import Session, col, or_, select

from app.db.db import get_session
from app.matching.trigger import MatchTrigger
from app.models.user import User
from app.services.audit_log import AuditLog
from app.services.report_store import (
    ACTIVE,
    RESOLVED_STATUS,
    delete_report,
    find_by_id,
    generate_unique_id,
    report_model,
    update_status,
)
from app.utils.auth_helper import get_active_user, get_current_user_optional, is_admin_payload
from app.utils.form_validator import parse_date, validate_report_form, validate_report_update
from app.utils.pipeline import get_audit_log, get_match_trigger
from app.utils.s3_service import compress_image, delete_report_image, generate_signed_url, upload_report_image


router = APIRouter()

MAX_UPLOAD_SIZE_MB = 5
MAX_UPLOAD_BYTES = MAX_UPLOAD_SIZE_MB * 1024 * 1024

# type-specific column names
LOCATION_FIELD = {"lost": "last_known_location", "found": "location_found"}
DATE_FIELD = {"lost": "date_lost", "found": "date_found"}

ReportType = Literal["lost", "found"]


def serialize_report(report, report_type: str, user: Optional[User] = None) -> dict:
    data = report.model_dump()
    data["id"] = str(report.id)
    data["type"] = report_type
    data["image"] = generate_signed_url(report.image)

    if user:
        data["full_name"] = user.full_name
        data["email"] = user.email
        data["user_status"] = user.status

    return data


def can_modify(report, user: User) -> bool:
    return user.role == "admin" or report.user_id == user.id


async def _create_report(
    report_type: str,
    item_name: str,
    description: str,
    category: str,
    location: str,
    date: str,
    image: Optional[UploadFile],
    user: User,
    session: Session,
    audit_log: AuditLog,
    trigger: MatchTrigger,
    background_tasks: BackgroundTasks,
):
    form = validate_report_form(report_type, item_name, description, category, location, date)

    # read image into memory and upload
    image_key = None
    if image is not None and image.filename:
        raw_bytes = await image.read()

        if len(raw_bytes) > MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=400, detail=f"Image exceeds {MAX_UPLOAD_SIZE_MB}MB limit")

        buffer, ext = compress_image(raw_bytes)
        image_key = upload_report_image(buffer, ext, report_type, image.filename)

    model = report_model(report_type)
    db_item = model(
        unique_id=generate_unique_id(session, report_type),
        user_id=user.id,
        item_name=form.item_name,
        description=form.description,
        category=form.category,
        image=image_key,
        **{LOCATION_FIELD[report_type]: form.location, DATE_FIELD[report_type]: form.date},
    )

    session.add(db_item)
    session.commit()
    session.refresh(db_item)

    audit_log.record_activity(
        user_id=user.id,
        action_type="create_item",
        item_type=report_type,
        item_id=db_item.id,
        item_unique_id=db_item.unique_id,
        item_name=db_item.item_name,
        description=f"Reported {report_type} item: {db_item.item_name}",
    )

    # runs after the response is sent; matching never fails this request
    background_tasks.add_task(trigger.on_report_created, db_item.id, report_type)

    return {
        "message": f"{report_type.capitalize()} item reported successfully",
        "item_id": str(db_item.id),
        "unique_id": db_item.unique_id,
    }


@router.post("/lost", status_code=201)
async def create_lost_item(
    background_tasks: BackgroundTasks,
    item_name: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    last_known_location: str = Form(...),
    date_lost: str = Form(...),
    image: Optional[UploadFile] = File(None),
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
    audit_log: AuditLog = Depends(get_audit_log),
    trigger: MatchTrigger = Depends(get_match_trigger),
):
    return await _create_report(
        "lost", item_name, description, category, last_known_location, date_lost,
        image, user, session, audit_log, trigger, background_tasks,
    )


@router.post("/found", status_code=201)
async def create_found_item(
    background_tasks: BackgroundTasks,
    item_name: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    location_found: str = Form(...),
    date_found: str = Form(...),
    image: Optional[UploadFile] = File(None),
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
    audit_log: AuditLog = Depends(get_audit_log),
    trigger: MatchTrigger = Depends(get_match_trigger),
):
    return await _create_report(
        "found", item_name, description, category, location_found, date_found,
        image, user, session, audit_log, trigger, background_tasks,
    )


@router.get("/{report_type}/my")
async def get_my_items(
    report_type: ReportType,
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
):
    model = report_model(report_type)

    items = session.exec(
        select(model)
        .where(model.user_id == user.id)
        .order_by(model.created_at.desc())
    ).all()

    return [serialize_report(item, report_type) for item in items]


@router.get("/{report_type}")
async def list_items(
    report_type: ReportType,
    keyword: Optional[str] = None,
    category: Optional[str] = None,
    location: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    sort: Literal["newest", "oldest"] = "newest",
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_optional),
):
    model = report_model(report_type)
    location_column = getattr(model, LOCATION_FIELD[report_type])
    date_column = getattr(model, DATE_FIELD[report_type])

    query = (
        select(model, User)
        .join(User, User.id == model.user_id)
        .where(model.status == ACTIVE)
    )

    if keyword:
        query = query.where(
            or_(col(model.item_name).ilike(f"%{keyword}%"), col(model.description).ilike(f"%{keyword}%"))
        )

    if category:
        query = query.where(model.category == category)

    if location:
        query = query.where(col(location_column).ilike(f"%{location}%"))

    if date_from:
        query = query.where(date_column >= parse_date(date_from))

    if date_to:
        query = query.where(date_column <= parse_date(date_to))

    # posts from banned users are only visible to admins
    if not is_admin_payload(current_user):
        query = query.where(User.status == "active")

    order = model.created_at.asc() if sort == "oldest" else model.created_at.desc()
    results = session.exec(query.order_by(order)).all()

    return [serialize_report(item, report_type, user) for item, user in results]


@router.get("/{report_type}/{item_id}")
async def get_item(
    report_type: ReportType,
    item_id: str,
    session: Session = Depends(get_session),
):
    item = find_by_id(session, report_type, item_id)
    if not item:
        raise HTTPException(status_code=404, detail=f"{report_type.capitalize()} item not found")

    reporter = session.get(User, item.user_id)

    data = serialize_report(item, report_type)
    data["reporter"] = {
        "public_id": reporter.public_id,
        "full_name": reporter.full_name,
        "email": reporter.email,
        "phone_number": reporter.phone_number,
        "whatsapp_number": reporter.whatsapp_number,
    } if reporter else None

    return data


@router.patch("/{report_type}/{item_id}")
async def update_item(
    report_type: ReportType,
    item_id: str,
    updates: dict,
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
    audit_log: AuditLog = Depends(get_audit_log),
):
    item = find_by_id(session, report_type, item_id)

    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    # ownership check
    if not can_modify(item, user):
        raise HTTPException(status_code=403, detail="Unauthorized to edit this item")

    validated = validate_report_update(updates)
    changes = validated.model_dump(exclude_unset=True)

    for field, value in changes.items():
        if field == "location":
            field = LOCATION_FIELD[report_type]
        elif field == "date":
            field = DATE_FIELD[report_type]
        setattr(item, field, value)

    item.updated_at = datetime.now(timezone.utc)

    session.add(item)
    session.commit()
    session.refresh(item)

    audit_log.record_activity(
        admin_id=user.id if user.role == "admin" else None,
        user_id=None if user.role == "admin" else user.id,
        action_type="edit_item",
        item_type=report_type,
        item_id=item.id,
        item_unique_id=item.unique_id,
        item_name=item.item_name,
        description=f"Edited {report_type} item: {item.item_name}",
        details={"fields": sorted(changes)},
    )

    return serialize_report(item, report_type)


async def _resolve_item(
    report_type: str,
    item_id: str,
    session: Session,
    user: User,
    audit_log: AuditLog,
    trigger: MatchTrigger,
    background_tasks: BackgroundTasks,
):
    item = find_by_id(session, report_type, item_id)

    if not item or not can_modify(item, user):
        raise HTTPException(status_code=403, detail="Unauthorized")

    status = RESOLVED_STATUS[report_type]
    if item.status == status:
        raise HTTPException(status_code=400, detail=f"Item is already {status}")

    update_status(session, item, status)

    audit_log.record_activity(
        admin_id=user.id if user.role == "admin" else None,
        user_id=None if user.role == "admin" else user.id,
        action_type="recover_item" if report_type == "lost" else "close_item",
        item_type=report_type,
        item_id=item.id,
        item_unique_id=item.unique_id,
        item_name=item.item_name,
        description=f"Item marked as {status}",
    )

    background_tasks.add_task(trigger.on_report_resolved, item.id, report_type)

    return {"message": f"Item marked as {status}"}


@router.patch("/lost/{item_id}/recover")
async def mark_recovered(
    item_id: str,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
    audit_log: AuditLog = Depends(get_audit_log),
    trigger: MatchTrigger = Depends(get_match_trigger),
):
    return await _resolve_item("lost", item_id, session, user, audit_log, trigger, background_tasks)


@router.patch("/found/{item_id}/close")
async def mark_closed(
    item_id: str,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
    audit_log: AuditLog = Depends(get_audit_log),
    trigger: MatchTrigger = Depends(get_match_trigger),
):
    return await _resolve_item("found", item_id, session, user, audit_log, trigger, background_tasks)


@router.delete("/{report_type}/{item_id}")
async def delete_item(
    report_type: ReportType,
    item_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
    audit_log: AuditLog = Depends(get_audit_log),
):
    item = find_by_id(session, report_type, item_id)

    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    # ownership check
    if not can_modify(item, user):
        raise HTTPException(status_code=403, detail="Unauthorized to delete this item")

    image_key = item.image
    delete_report(session, item, report_type, audit_log, user)
    delete_report_image(image_key)

    return {"message": f"{report_type.capitalize()} item deleted successfully"}
