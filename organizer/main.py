import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .activities import (
    activity_to_dict,
    create_activity,
    delete_activity,
    list_activities,
    update_activity,
)
from .auth import get_user_family, require_user
from .config import LOG_LEVEL, SHOPPING_FAMILY_SIZE
from .db import get_session, init_db
from .families import (
    create_family,
    delete_family,
    ensure_family,
    generate_invite_code,
    get_family,
    get_family_members,
    is_owner,
    join_request_to_dict,
    join_with_code,
    member_to_dict,
    pending_join_requests,
    remove_member,
    rename_family,
    request_to_join,
    respond_to_join_request,
    revoke_invite_code,
    update_member_role,
)
from .generation import GeminiClient, GenerationError, get_gemini_client
from .meal_plans import (
    MealValidationError,
    build_grid,
    clear_week,
    create_meal,
    grid_to_dict,
    load_day,
    load_week,
    meal_to_dict,
    save_generated_meals,
    save_week,
)
from .models import Activity, Family, MealRecord, ShoppingItem, ShoppingList, User, UserRole
from .shopping import (
    ShoppingValidationError,
    generate_items,
    generated_item_to_dict,
    load_shopping_list,
    save_shopping_list,
    shopping_list_to_dict,
)
from .weeks import parse_week_start, week_start_for, week_window

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    logger.info("Database initialized")
    yield


app = FastAPI(title="Family organizer", lifespan=lifespan)


@app.exception_handler(MealValidationError)
@app.exception_handler(ShoppingValidationError)
async def validation_error_handler(_: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(GenerationError)
async def generation_error_handler(request: Request, exc: GenerationError):
    logger.error("Generation failed for %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"success": False, "error": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal Error"})


def require_family_user(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
) -> User:
    ensure_family(session, user)
    return user


def parse_date_param(value: Optional[str], label: str = "Week start date") -> datetime:
    if not value:
        raise HTTPException(status_code=400, detail=f"{label} is required")
    try:
        return parse_week_start(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label.lower()}") from None


def family_to_dict(session: Session, family: Family, user: User) -> dict:
    owner = session.get(User, family.owner_id) if family.owner_id else None
    return {
        "id": family.id,
        "name": family.name,
        "createdAt": family.created_at.isoformat(),
        "inviteCode": family.invite_code,
        "inviteExpiry": family.invite_expiry.isoformat() if family.invite_expiry else None,
        "maxMembers": family.max_members,
        "owner": {
            "name": owner.display_name if owner else "No owner set",
            "isMe": is_owner(family, user),
        },
        "members": [member_to_dict(m, family) for m in get_family_members(session, family.id)],
    }


@app.get("/api/user")
def current_user(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    family = get_user_family(session, user)
    return {
        "success": True,
        "user": {
            "id": user.id,
            "firstName": user.first_name,
            "lastName": user.last_name,
            "email": user.email,
            "role": user.role.value,
            "familyId": user.family_id,
            "family": {"id": family.id, "name": family.name, "ownerId": family.owner_id} if family else None,
            "isOwner": bool(family and family.owner_id == user.id),
        },
    }


@app.put("/api/user/profile")
def update_profile(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    role = payload.get("role")
    if role is not None and role not in {r.value for r in UserRole}:
        raise HTTPException(status_code=400, detail="Invalid role")
    if payload.get("firstName") is not None:
        user.first_name = str(payload["firstName"]).strip()
    if payload.get("lastName") is not None:
        user.last_name = str(payload["lastName"]).strip()
    if role:
        user.role = UserRole(role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return {"success": True, "user": {"id": user.id, "name": user.display_name, "role": user.role.value}}


@app.get("/api/dashboard")
def dashboard(
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    now = datetime.utcnow()
    week_start = week_start_for(now)
    week_end = week_window(week_start)[1]
    today = datetime.combine(now.date(), datetime.min.time())
    upcoming = session.exec(
        select(func.count(MealRecord.id)).where(
            MealRecord.family_id == user.family_id, MealRecord.date >= today
        )
    ).one()
    weekly = session.exec(
        select(func.count(MealRecord.id)).where(
            MealRecord.family_id == user.family_id,
            MealRecord.date >= week_start,
            MealRecord.date < week_end,
        )
    ).one()
    pending_items = session.exec(
        select(func.count(ShoppingItem.id))
        .join(ShoppingList, ShoppingList.id == ShoppingItem.shopping_list_id)
        .where(ShoppingList.family_id == user.family_id, ShoppingItem.is_purchased == False)  # noqa: E712
    ).one()
    today_activities = session.exec(
        select(func.count(Activity.id)).where(
            Activity.family_id == user.family_id,
            Activity.date >= today,
            Activity.date < today + timedelta(days=1),
        )
    ).one()
    return {
        "success": True,
        "stats": {
            "upcomingMeals": int(upcoming or 0),
            "weeklyMeals": int(weekly or 0),
            "pendingShoppingItems": int(pending_items or 0),
            "todayActivities": int(today_activities or 0),
        },
    }


# --- family -----------------------------------------------------------------


@app.get("/api/family")
def family_details(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    family = get_user_family(session, user)
    if not family:
        return {"success": True, "family": None, "hasFamily": False, "isOwner": False}
    return {
        "success": True,
        "family": family_to_dict(session, family, user),
        "hasFamily": True,
        "isOwner": is_owner(family, user),
    }


@app.post("/api/family")
def create_family_route(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    family = create_family(session, user, payload.get("name"))
    return {"success": True, "family": family_to_dict(session, family, user)}


@app.put("/api/family")
def rename_family_route(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    family = rename_family(session, user, payload.get("name"))
    return {"success": True, "family": family_to_dict(session, family, user)}


@app.delete("/api/family")
def delete_family_route(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    delete_family(session, user)
    return {"success": True, "message": "Family deleted successfully"}


@app.post("/api/family/invite")
@app.put("/api/family/invite")
def create_invite(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    family = generate_invite_code(session, user)
    return {"inviteCode": family.invite_code, "inviteExpiry": family.invite_expiry.isoformat()}


@app.delete("/api/family/invite")
def revoke_invite(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    revoke_invite_code(session, user)
    return {"success": True}


@app.post("/api/family/join")
def join_family(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    family = join_with_code(session, user, payload.get("inviteCode"))
    return {"message": "Successfully joined family", "family": {"id": family.id, "name": family.name}}


@app.post("/api/family/join-requests")
def submit_join_request(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    join_request = request_to_join(session, user, payload.get("inviteCode"))
    return {"success": True, "joinRequest": join_request_to_dict(join_request)}


@app.get("/api/family/join")
def list_join_requests(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    requests = pending_join_requests(session, user)
    return {
        "joinRequests": [
            join_request_to_dict(r, session.get(User, r.user_id)) for r in requests
        ]
    }


@app.put("/api/family/join")
def answer_join_request(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    join_request = respond_to_join_request(
        session, user, payload.get("requestId"), payload.get("action")
    )
    verb = "approved" if join_request.status.value == "APPROVED" else "rejected"
    return {"message": f"Join request {verb} successfully", "joinRequest": join_request_to_dict(join_request)}


@app.get("/api/family/members")
def family_members(
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    family = get_family(session, user)
    owner = session.get(User, family.owner_id) if family.owner_id else None
    return {
        "success": True,
        "members": [member_to_dict(m, family) for m in get_family_members(session, family.id)],
        "owner": member_to_dict(owner, family) if owner else None,
    }


@app.delete("/api/family/members")
def remove_family_member(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    remove_member(session, user, payload.get("memberId"))
    return {"success": True, "message": "Member removed successfully"}


@app.put("/api/family/members/role")
def change_member_role(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_user),
):
    update_member_role(session, user, payload.get("memberId"), payload.get("role"))
    return {"success": True}


# --- meal plans -------------------------------------------------------------


@app.get("/api/mealPlan")
def get_meal_plan(
    weekStart: Optional[str] = None,
    date: Optional[str] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    if weekStart:
        week_start = parse_date_param(weekStart)
        records = load_week(session, user.family_id, week_start)
    elif date:
        day = parse_date_param(date, "Date")
        records = load_day(session, user.family_id, day)
        week_start = week_start_for(day)
    else:
        week_start = week_start_for(datetime.utcnow())
        records = load_week(session, user.family_id, week_start)
    grid = build_grid(records, week_start)
    return {"success": True, "weekStart": week_start.isoformat(), "mealPlan": grid_to_dict(grid)}


@app.post("/api/mealPlan")
def post_meal_plan(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    if payload.get("weekStart") and payload.get("mealPlan") is not None:
        week_start = parse_date_param(payload["weekStart"])
        grid = payload["mealPlan"]
        if not isinstance(grid, dict):
            raise HTTPException(status_code=400, detail="mealPlan must be an object")
        result = save_week(session, week_start, grid, user.family_id, user.id)
        response = {
            "success": True,
            "message": f"Saved {len(result.saved)} meals",
            "meals": [meal_to_dict(m) for m in result.saved],
        }
        if result.warnings:
            response["warnings"] = result.warnings
        return response
    record = create_meal(session, user.family_id, user.id, payload)
    return {"success": True, "mealPlan": meal_to_dict(record)}


@app.delete("/api/mealPlan")
def delete_meal_plan(
    weekStart: Optional[str] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    week_start = parse_date_param(weekStart)
    clear_week(session, user.family_id, week_start)
    return {"success": True, "message": "Meal plan cleared successfully"}


@app.delete("/api/mealPlan/clear")
def clear_meal_plan(
    weekStartDate: Optional[str] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    week_start = parse_date_param(weekStartDate)
    removed = clear_week(session, user.family_id, week_start)
    return {
        "success": True,
        "message": f"Successfully cleared {removed} meal plans for the week",
        "deletedCount": removed,
    }


@app.post("/api/generateMealPlan")
def generate_meal_plan(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
    gemini: GeminiClient = Depends(get_gemini_client),
):
    if not payload.get("cuisine") or not payload.get("numberOfPeople") or not payload.get("numberOfDays"):
        raise HTTPException(status_code=400, detail="Missing required fields")
    start = payload.get("startDate")
    start_date = parse_date_param(start, "Start date") if start else datetime.utcnow()
    meals = gemini.generate_meal_plan(payload, start_date.date().isoformat())
    records = save_generated_meals(session, user.family_id, user.id, meals)
    return {"success": True, "meals": [meal_to_dict(m) for m in records]}


# --- shopping ---------------------------------------------------------------


@app.get("/api/shopping")
def get_shopping_list(
    week: Optional[str] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    week_start = parse_date_param(week) if week else None
    shopping_list = load_shopping_list(session, user.family_id, week_start)
    return {
        "success": True,
        "shoppingList": shopping_list_to_dict(shopping_list) if shopping_list else None,
    }


@app.post("/api/shopping")
def post_shopping_list(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    items = payload.get("items")
    if not isinstance(items, list):
        raise HTTPException(status_code=400, detail="Items array is required")
    week_start = parse_date_param(payload.get("weekStart"))
    existed = load_shopping_list(session, user.family_id, week_start) is not None
    shopping_list = save_shopping_list(session, user.family_id, week_start, items)
    return {
        "success": True,
        "message": "Shopping list updated successfully" if existed else "Shopping list created successfully",
        "shoppingList": shopping_list_to_dict(shopping_list),
    }


@app.post("/api/shopping/fromMeals")
def shopping_from_meals(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    week_start = parse_date_param(payload.get("weekStart"))
    meals = load_week(session, user.family_id, week_start)
    if not meals:
        raise HTTPException(status_code=404, detail="No meal plan available for this week")
    items = generate_items(meals)
    return {"success": True, "items": [generated_item_to_dict(i) for i in items]}


@app.post("/api/shopping/generate")
def generate_shopping_list(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
    gemini: GeminiClient = Depends(get_gemini_client),
):
    meal_plans = payload.get("mealPlans")
    if not meal_plans and payload.get("weekStart"):
        week_start = parse_date_param(payload["weekStart"])
        meal_plans = [meal_to_dict(m) for m in load_week(session, user.family_id, week_start)]
    if not meal_plans:
        raise HTTPException(status_code=400, detail="No meal plans provided")
    items = gemini.generate_shopping_list(meal_plans, SHOPPING_FAMILY_SIZE)
    return {"success": True, "shoppingList": items}


# --- activities -------------------------------------------------------------


@app.get("/api/activities")
def get_activities(
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    activities = list_activities(session, user.family_id)
    creators = {m.id: m for m in get_family_members(session, user.family_id)}
    return {
        "success": True,
        "activities": [activity_to_dict(a, creators.get(a.created_by_id)) for a in activities],
    }


@app.post("/api/activities")
def post_activity(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    activity = create_activity(session, user, payload)
    return {"success": True, "activity": activity_to_dict(activity, user)}


@app.put("/api/activities")
def put_activity(
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    if not payload.get("id") or not payload.get("title") or not payload.get("date"):
        raise HTTPException(status_code=400, detail="Missing required fields")
    activity = update_activity(session, user, int(payload["id"]), payload)
    return {"success": True, "activity": activity_to_dict(activity)}


@app.delete("/api/activities")
def delete_activity_by_query(
    id: Optional[int] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    if not id:
        raise HTTPException(status_code=400, detail="Activity ID required")
    delete_activity(session, user, id)
    return {"success": True}


@app.put("/api/activities/{activity_id}")
def put_activity_by_id(
    activity_id: int,
    payload: dict = Body(...),
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    activity = update_activity(session, user, activity_id, payload)
    return {"success": True, "activity": activity_to_dict(activity)}


@app.delete("/api/activities/{activity_id}")
def delete_activity_by_id(
    activity_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(require_family_user),
):
    delete_activity(session, user, activity_id)
    return {"success": True}


@app.get("/health")
def health():
    return {"status": "ok"}
