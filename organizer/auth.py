import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session, select

from .db import get_session
from .models import Family, User

logger = logging.getLogger(__name__)

# set by the identity provider's proxy in front of the app
AUTH_USER_ID_HEADER = "X-Auth-User-Id"
AUTH_EMAIL_HEADER = "X-Auth-User-Email"
AUTH_FIRST_NAME_HEADER = "X-Auth-User-First-Name"
AUTH_LAST_NAME_HEADER = "X-Auth-User-Last-Name"


def get_auth_id(request: Request) -> Optional[str]:
    auth_id = request.headers.get(AUTH_USER_ID_HEADER)
    return auth_id.strip() if auth_id and auth_id.strip() else None


def provision_user(session: Session, request: Request, auth_id: str) -> User:
    user = User(
        auth_id=auth_id,
        email=request.headers.get(AUTH_EMAIL_HEADER, ""),
        first_name=request.headers.get(AUTH_FIRST_NAME_HEADER, ""),
        last_name=request.headers.get(AUTH_LAST_NAME_HEADER, ""),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Provisioned user %s for identity %s", user.id, auth_id)
    return user


def get_current_user(
    request: Request, session: Session = Depends(get_session)
) -> Optional[User]:
    auth_id = get_auth_id(request)
    if not auth_id:
        return None
    user = session.exec(select(User).where(User.auth_id == auth_id)).first()
    if not user:
        user = provision_user(session, request, auth_id)
    return user


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def get_user_family(session: Session, user: User) -> Optional[Family]:
    if not user.family_id:
        return None
    return session.get(Family, user.family_id)
