from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from sqlmodel import Session, select

from app.config import get_settings
from app.db.db import get_session
from app.models.user import User

ALGORITHM = "HS256"

bearer_scheme_optional = HTTPBearer(auto_error=False)


def get_current_user_optional(token: HTTPAuthorizationCredentials = Depends(bearer_scheme_optional)):
    if not token:
        return None

    try:
        payload = jwt.decode(token.credentials, get_settings().jwt_secret, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


bearer_scheme_required = HTTPBearer(auto_error=True)


def get_current_user_required(token: HTTPAuthorizationCredentials = Depends(bearer_scheme_required)):
    try:
        payload = jwt.decode(
            token.credentials,
            get_settings().jwt_secret,
            algorithms=[ALGORITHM],
        )
        return payload
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def is_admin_payload(current_user) -> bool:
    return bool(current_user) and current_user.get("role") == "admin"


def get_db_user(session: Session, current_user) -> User:
    user = session.exec(
        select(User).where(User.public_id == current_user["sub"])
    ).first()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    # status is checked on every request so a ban takes effect immediately
    if user.status == "banned":
        raise HTTPException(status_code=403, detail="Your account has been suspended. Please contact support.")

    return user


def get_active_user(
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
) -> User:
    return get_db_user(session, current_user)


def require_admin(user: User = Depends(get_active_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
