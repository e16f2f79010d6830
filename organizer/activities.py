from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlmodel import Session, select

from .models import Activity, ActivityStatus, User
from .weeks import parse_week_start

VALID_STATUSES = tuple(s.value for s in ActivityStatus)


def _parse_date(value) -> datetime:
    try:
        return parse_week_start(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date provided") from None


def _parse_status(value: Optional[str]) -> ActivityStatus:
    if not value:
        return ActivityStatus.pending
    if value not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    return ActivityStatus(value)


def list_activities(session: Session, family_id: int) -> list[Activity]:
    return list(
        session.exec(
            select(Activity).where(Activity.family_id == family_id).order_by(Activity.date)
        ).all()
    )


def get_activity(session: Session, family_id: int, activity_id: int) -> Activity:
    activity = session.exec(
        select(Activity).where(Activity.id == activity_id, Activity.family_id == family_id)
    ).first()
    if not activity:
        raise HTTPException(status_code=404, detail="Activity not found")
    return activity


def create_activity(session: Session, user: User, payload: dict) -> Activity:
    if not payload.get("title") or not payload.get("date"):
        raise HTTPException(status_code=400, detail="Missing required fields")
    activity = Activity(
        title=str(payload["title"]).strip(),
        description=payload.get("description") or "",
        date=_parse_date(payload["date"]),
        location=payload.get("location") or "",
        status=ActivityStatus.pending,
        family_id=user.family_id,
        created_by_id=user.id,
    )
    session.add(activity)
    session.commit()
    session.refresh(activity)
    return activity


def update_activity(session: Session, user: User, activity_id: int, payload: dict) -> Activity:
    activity = get_activity(session, user.family_id, activity_id)
    if payload.get("title"):
        activity.title = str(payload["title"]).strip()
    if "description" in payload and payload["description"] is not None:
        activity.description = payload["description"]
    if payload.get("date"):
        activity.date = _parse_date(payload["date"])
    if "location" in payload and payload["location"] is not None:
        activity.location = payload["location"]
    if payload.get("status"):
        activity.status = _parse_status(payload["status"])
    session.add(activity)
    session.commit()
    session.refresh(activity)
    return activity


def delete_activity(session: Session, user: User, activity_id: int):
    activity = get_activity(session, user.family_id, activity_id)
    session.delete(activity)
    session.commit()


def activity_to_dict(activity: Activity, creator: Optional[User] = None) -> dict:
    data = {
        "id": activity.id,
        "title": activity.title,
        "description": activity.description,
        "date": activity.date.isoformat(),
        "location": activity.location,
        "status": activity.status.value,
        "familyId": activity.family_id,
        "createdById": activity.created_by_id,
    }
    if creator:
        data["createdBy"] = {"firstName": creator.first_name, "lastName": creator.last_name}
    return data
