from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from app.db.db import get_session
from app.models.user import User
from app.utils.auth_helper import get_active_user


router = APIRouter()


class ContactUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    whatsapp_number: Optional[str] = Field(default=None, max_length=20)


def profile_response(user: User) -> dict:
    return {
        "id": user.id,
        "public_id": user.public_id,
        "email": user.email,
        "full_name": user.full_name,
        "image": user.image,
        "phone_number": user.phone_number,
        "whatsapp_number": user.whatsapp_number,
        "role": user.role,
        "created_at": user.created_at,
    }


@router.get("/me")
async def get_my_profile(user: User = Depends(get_active_user)):
    return profile_response(user)


@router.put("/me")
async def update_contact_info(
    payload: ContactUpdateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_active_user),
):
    # contact details end up in match emails
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value.strip() if isinstance(value, str) else value)

    session.add(user)
    session.commit()
    session.refresh(user)

    return profile_response(user)
