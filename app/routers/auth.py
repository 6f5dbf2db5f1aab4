import uuid
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from jose import jwt
from sqlmodel import Session, select
from google.oauth2 import id_token
from google.auth.transport import requests as grequests

from app.config import get_settings
from app.db.db import get_session
from app.models.user import User
from app.utils.auth_helper import ALGORITHM

router = APIRouter()

ACCESS_TOKEN_EXPIRE_MINUTES = 24 * 60  # 1 day


class GoogleIDToken(BaseModel):
    id_token: str


class TokenResponse(BaseModel):
    access_token: str
    user_id: str
    role: str


def create_access_token(user: User) -> str:
    now = datetime.now(timezone.utc)

    jwt_payload = {
        "sub": user.public_id,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    }

    return jwt.encode(jwt_payload, get_settings().jwt_secret, algorithm=ALGORITHM)


@router.post("/google", response_model=TokenResponse)
def google_auth(payload: GoogleIDToken, session: Session = Depends(get_session)):
    client_id = get_settings().google_client_id
    if not client_id:
        raise HTTPException(status_code=500, detail="Google sign-in is not configured")

    try:
        idinfo = id_token.verify_oauth2_token(payload.id_token, grequests.Request(), client_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid Google ID token")

    # idinfo now trusted and parsed by Google libs
    google_id = idinfo["sub"]
    email = idinfo.get("email", "").lower()

    db_user = session.exec(select(User).where(User.google_id == google_id)).first()
    if not db_user:
        db_user = User(
            public_id=uuid.uuid4().hex,
            google_id=google_id,
            full_name=idinfo.get("name") or email,
            image=idinfo.get("picture"),
            email=email,
            role="user",
        )
        session.add(db_user)
        session.commit()
        session.refresh(db_user)

    if db_user.status == "banned":
        raise HTTPException(status_code=403, detail="Your account has been suspended. Please contact support.")

    return TokenResponse(
        access_token=create_access_token(db_user),
        user_id=db_user.public_id,
        role=db_user.role,
    )
