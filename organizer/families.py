import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlmodel import Session, select

from .config import INVITE_EXPIRY_DAYS
from .models import Family, FamilyRole, JoinRequest, JoinRequestStatus, User, UserRole

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = (FamilyRole.admin.value, FamilyRole.member.value)
JOIN_ACTIONS = ("APPROVE", "REJECT")


def is_owner(family: Family, user: User) -> bool:
    # families created before owners were tracked treat every member as owner
    return family.owner_id is None or family.owner_id == user.id


def get_family_members(session: Session, family_id: int) -> list[User]:
    return list(session.exec(select(User).where(User.family_id == family_id).order_by(User.id)).all())


def count_members(session: Session, family_id: int) -> int:
    total = session.exec(
        select(func.count(User.id)).where(User.family_id == family_id)
    ).one()
    return int(total or 0)


def get_family(session: Session, user: User) -> Family:
    family = session.get(Family, user.family_id) if user.family_id else None
    if not family:
        raise HTTPException(status_code=404, detail="Family not found")
    return family


def require_owned_family(session: Session, user: User, action: str) -> Family:
    family = get_family(session, user)
    if not is_owner(family, user):
        raise HTTPException(status_code=403, detail=f"Only family owner can {action}")
    return family


def _attach(user: User, family: Family, family_role: FamilyRole):
    user.family_id = family.id
    user.family_role = family_role
    user.joined_at = datetime.utcnow()


def create_family(session: Session, user: User, name: Optional[str]) -> Family:
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Family name is required")
    if user.family_id:
        raise HTTPException(status_code=400, detail="User already has a family")
    family = Family(name=name, owner_id=user.id)
    session.add(family)
    session.commit()
    session.refresh(family)
    _attach(user, family, FamilyRole.owner)
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s created family %s", user.id, family.id)
    return family


def ensure_family(session: Session, user: User) -> Family:
    if user.family_id:
        family = session.get(Family, user.family_id)
        if family:
            return family
        user.family_id = None
    return create_family(session, user, f"{user.first_name or 'User'}'s Family")


def rename_family(session: Session, user: User, name: Optional[str]) -> Family:
    name = (name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Family name is required")
    family = require_owned_family(session, user, "update family details")
    family.name = name
    if family.owner_id is None:
        family.owner_id = user.id
    session.add(family)
    session.commit()
    session.refresh(family)
    return family


def delete_family(session: Session, user: User):
    family = require_owned_family(session, user, "delete family")
    for member in get_family_members(session, family.id):
        member.family_id = None
        member.family_role = None
        member.joined_at = None
        session.add(member)
    for join_request in session.exec(
        select(JoinRequest).where(JoinRequest.family_id == family.id)
    ).all():
        session.delete(join_request)
    session.delete(family)
    session.commit()
    logger.info("Family %s deleted by user %s", family.id, user.id)


def _new_invite_code(session: Session) -> str:
    while True:
        code = secrets.token_urlsafe(6)
        taken = session.exec(select(Family).where(Family.invite_code == code)).first()
        if not taken:
            return code


def generate_invite_code(session: Session, user: User) -> Family:
    family = require_owned_family(session, user, "manage invite codes")
    family.invite_code = _new_invite_code(session)
    family.invite_expiry = datetime.utcnow() + timedelta(days=INVITE_EXPIRY_DAYS)
    session.add(family)
    session.commit()
    session.refresh(family)
    return family


def revoke_invite_code(session: Session, user: User) -> Family:
    family = require_owned_family(session, user, "manage invite codes")
    family.invite_code = None
    family.invite_expiry = None
    session.add(family)
    session.commit()
    session.refresh(family)
    return family


def find_family_by_code(session: Session, code: Optional[str]) -> Family:
    code = (code or "").strip()
    if not code:
        raise HTTPException(status_code=400, detail="Invite code is required")
    family = session.exec(
        select(Family).where(Family.invite_code == code, Family.invite_expiry > datetime.utcnow())
    ).first()
    if not family:
        raise HTTPException(status_code=400, detail="Invalid or expired invite code")
    return family


def _check_capacity(session: Session, family: Family):
    if count_members(session, family.id) >= family.max_members:
        raise HTTPException(status_code=400, detail="Family has reached maximum member limit")


def join_with_code(session: Session, user: User, code: Optional[str]) -> Family:
    if not (code or "").strip():
        raise HTTPException(status_code=400, detail="Invite code is required")
    if user.family_id:
        raise HTTPException(status_code=400, detail="User already belongs to a family")
    family = find_family_by_code(session, code)
    _check_capacity(session, family)
    _attach(user, family, FamilyRole.member)
    user.role = UserRole.parent
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User %s joined family %s", user.id, family.id)
    return family


def request_to_join(session: Session, user: User, code: Optional[str]) -> JoinRequest:
    if user.family_id:
        raise HTTPException(status_code=400, detail="User already belongs to a family")
    family = find_family_by_code(session, code)
    existing = session.exec(
        select(JoinRequest).where(
            JoinRequest.family_id == family.id,
            JoinRequest.user_id == user.id,
            JoinRequest.status == JoinRequestStatus.pending,
        )
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Join request already pending")
    join_request = JoinRequest(family_id=family.id, user_id=user.id)
    session.add(join_request)
    session.commit()
    session.refresh(join_request)
    return join_request


def pending_join_requests(session: Session, user: User) -> list[JoinRequest]:
    family = require_owned_family(session, user, "review join requests")
    return list(
        session.exec(
            select(JoinRequest)
            .where(JoinRequest.family_id == family.id, JoinRequest.status == JoinRequestStatus.pending)
            .order_by(JoinRequest.created_at)
        ).all()
    )


def respond_to_join_request(
    session: Session, user: User, request_id: Optional[int], action: Optional[str]
) -> JoinRequest:
    if not request_id or not action:
        raise HTTPException(status_code=400, detail="Request ID and action are required")
    action = action.upper()
    if action not in JOIN_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")
    family = require_owned_family(session, user, "review join requests")
    join_request = session.exec(
        select(JoinRequest).where(
            JoinRequest.id == request_id,
            JoinRequest.family_id == family.id,
            JoinRequest.status == JoinRequestStatus.pending,
        )
    ).first()
    if not join_request:
        raise HTTPException(status_code=404, detail="Join request not found")
    if action == "APPROVE":
        applicant = session.get(User, join_request.user_id)
        if not applicant:
            raise HTTPException(status_code=404, detail="User not found")
        if applicant.family_id:
            raise HTTPException(status_code=400, detail="User already belongs to a family")
        _check_capacity(session, family)
        _attach(applicant, family, FamilyRole.member)
        session.add(applicant)
        join_request.status = JoinRequestStatus.approved
    else:
        join_request.status = JoinRequestStatus.rejected
    join_request.responded_at = datetime.utcnow()
    session.add(join_request)
    session.commit()
    session.refresh(join_request)
    logger.info("Join request %s %s", join_request.id, join_request.status.value)
    return join_request


def remove_member(session: Session, user: User, member_id: Optional[int]):
    if not member_id:
        raise HTTPException(status_code=400, detail="Member ID is required")
    family = get_family(session, user)
    if not is_owner(family, user):
        raise HTTPException(status_code=403, detail="Not authorized to remove members")
    if member_id == user.id or member_id == family.owner_id:
        raise HTTPException(status_code=400, detail="Cannot remove family owner")
    member = session.get(User, member_id)
    if not member or member.family_id != family.id:
        raise HTTPException(status_code=404, detail="Member not found")
    member.family_id = None
    member.family_role = None
    member.joined_at = None
    session.add(member)
    session.commit()


def update_member_role(session: Session, user: User, member_id: Optional[int], role: Optional[str]) -> User:
    if not member_id or not role:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if role not in ASSIGNABLE_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")
    family = get_family(session, user)
    if not is_owner(family, user):
        raise HTTPException(status_code=403, detail="Only family owners can update roles")
    member = session.get(User, member_id)
    if not member or member.family_id != family.id:
        raise HTTPException(status_code=404, detail="Member not found")
    if member.family_role == FamilyRole.owner or member.id == family.owner_id:
        raise HTTPException(status_code=403, detail="Cannot change owner's role")
    member.family_role = FamilyRole(role)
    session.add(member)
    session.commit()
    session.refresh(member)
    return member


def member_to_dict(member: User, family: Family) -> dict:
    return {
        "id": member.id,
        "name": member.display_name,
        "email": member.email,
        "role": member.role.value,
        "familyRole": member.family_role.value if member.family_role else None,
        "isOwner": member.id == family.owner_id,
    }


def join_request_to_dict(join_request: JoinRequest, applicant: Optional[User] = None) -> dict:
    data = {
        "id": join_request.id,
        "familyId": join_request.family_id,
        "userId": join_request.user_id,
        "status": join_request.status.value,
        "createdAt": join_request.created_at.isoformat(),
        "respondedAt": join_request.responded_at.isoformat() if join_request.responded_at else None,
    }
    if applicant:
        data["user"] = {"id": applicant.id, "name": applicant.display_name, "email": applicant.email}
    return data
