"""Weekly meal planning.

The week grid is derived on every read from the family's meal records, and
saving a week replaces every record inside the week window.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .models import MealRecord, MealType
from .weeks import DAYS, PLANNED_MEAL_TYPES, day_date, day_index, parse_week_start, week_window

logger = logging.getLogger(__name__)

VALID_MEAL_TYPES = tuple(m.value for m in MealType)


class MealValidationError(ValueError):
    pass


class SaveResult(NamedTuple):
    saved: list[MealRecord]
    warnings: list[str]


def empty_grid() -> dict[str, dict[str, Any]]:
    return {day: {meal: None for meal in PLANNED_MEAL_TYPES} for day in DAYS}


def _meal_type_value(meal_type) -> str:
    return getattr(meal_type, "value", meal_type)


def build_grid(records: Iterable[MealRecord], week_start) -> dict[str, dict[str, Any]]:
    grid = empty_grid()
    for record in records:
        index = day_index(record.date, week_start)
        meal_type = _meal_type_value(record.meal_type)
        if index is None or meal_type not in PLANNED_MEAL_TYPES:
            continue
        day = DAYS[index]
        if grid[day][meal_type] is not None:
            logger.warning(
                "Dropping meal %s (%s): %s %s already holds meal %s",
                record.id, record.title, day, meal_type, grid[day][meal_type].id,
            )
            continue
        grid[day][meal_type] = record
    return grid


def _coerce_ingredients(value) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    raise MealValidationError("Ingredients must be a list")


def _coerce_calories(value) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise MealValidationError("Invalid calories value")
    try:
        calories = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise MealValidationError(f"Invalid calories value: {value!r}") from None
    if calories < 0:
        raise MealValidationError("Calories cannot be negative")
    return calories


def normalize_cell(cell, meal_type: str) -> Optional[dict]:
    """Turn a client grid cell into a meal draft, or ``None`` for an empty cell."""
    if cell is None:
        return None
    if isinstance(cell, str):
        title = cell.strip()
        if not title:
            return None
        return {
            "title": title,
            "description": "",
            "meal_type": MealType(meal_type),
            "ingredients": [],
            "instructions": "",
            "calories": None,
            "cuisine": "",
            "is_ai_generated": False,
        }
    if not isinstance(cell, dict):
        raise MealValidationError(f"Unsupported meal value of type {type(cell).__name__}")
    title = str(cell.get("title") or "").strip()
    if not title:
        return None
    return {
        "title": title,
        "description": cell.get("description") or "",
        "meal_type": MealType(meal_type),
        "ingredients": _coerce_ingredients(cell.get("ingredients")),
        "instructions": cell.get("instructions") or "",
        "calories": _coerce_calories(cell.get("calories")),
        "cuisine": cell.get("cuisine") or "",
        "is_ai_generated": bool(cell.get("isAiGenerated", False)),
    }


def _week_records(session: Session, family_id: int, week_start):
    start, end = week_window(week_start)
    return session.exec(
        select(MealRecord)
        .where(
            MealRecord.family_id == family_id,
            MealRecord.date >= start,
            MealRecord.date < end,
        )
        .order_by(MealRecord.date, MealRecord.id)
    ).all()


def load_week(session: Session, family_id: int, week_start) -> list[MealRecord]:
    return list(_week_records(session, family_id, week_start))


def load_day(session: Session, family_id: int, day: datetime) -> list[MealRecord]:
    start = datetime.combine(day.date(), datetime.min.time())
    return list(
        session.exec(
            select(MealRecord)
            .where(
                MealRecord.family_id == family_id,
                MealRecord.date >= start,
                MealRecord.date < start + timedelta(days=1),
            )
            .order_by(MealRecord.date, MealRecord.id)
        ).all()
    )


def _delete_week(session: Session, family_id: int, week_start) -> int:
    removed = 0
    for record in _week_records(session, family_id, week_start):
        session.delete(record)
        removed += 1
    session.flush()
    return removed


def clear_week(session: Session, family_id: int, week_start) -> int:
    removed = _delete_week(session, family_id, week_start)
    session.commit()
    logger.info("Cleared %d meals for family %s, week of %s", removed, family_id, week_start)
    return removed


def save_week(
    session: Session, week_start, grid: dict, family_id: int, actor_id: Optional[int]
) -> SaveResult:
    start, _ = week_window(week_start)
    try:
        removed = _delete_week(session, family_id, start)
        logger.info("Cleared %d existing meals for week of %s", removed, start.date())
    except SQLAlchemyError:
        logger.warning("Could not clear existing meals for week of %s", start.date(), exc_info=True)
        session.rollback()

    saved: list[MealRecord] = []
    warnings: list[str] = []
    for day in DAYS:
        day_cells = grid.get(day) or {}
        for meal_type in PLANNED_MEAL_TYPES:
            cell = day_cells.get(meal_type)
            try:
                draft = normalize_cell(cell, meal_type)
            except MealValidationError as exc:
                logger.warning("Skipping %s %s: %s", day, meal_type, exc)
                warnings.append(f"Failed to save {day} {meal_type}: {exc}")
                continue
            if draft is None:
                continue
            record = MealRecord(
                **draft,
                date=day_date(start, day),
                family_id=family_id,
                created_by_id=actor_id,
            )
            try:
                # a failed insert only rolls back its own savepoint
                with session.begin_nested():
                    session.add(record)
                    session.flush()
            except (SQLAlchemyError, ValueError, OverflowError) as exc:
                logger.warning("Failed to insert %s %s: %s", day, meal_type, exc)
                warnings.append(f"Failed to save {day} {meal_type}: {exc}")
                continue
            saved.append(record)
    # the delete and the inserts land together
    session.commit()
    for record in saved:
        session.refresh(record)
    logger.info("Saved %d meals for week of %s", len(saved), start.date())
    return SaveResult(saved, warnings)


def create_meal(session: Session, family_id: int, actor_id: Optional[int], payload: dict) -> MealRecord:
    title = str(payload.get("title") or "").strip()
    if not title:
        raise MealValidationError("Title is required")
    meal_type = payload.get("mealType")
    if not meal_type:
        raise MealValidationError("Meal type is required")
    if not payload.get("date"):
        raise MealValidationError("Date is required")
    try:
        meal_date = parse_week_start(str(payload["date"]))
    except ValueError:
        raise MealValidationError("Invalid date provided") from None
    normalized_type = str(meal_type).upper()
    if normalized_type not in VALID_MEAL_TYPES:
        raise MealValidationError(
            f"Invalid meal type. Must be one of: {', '.join(VALID_MEAL_TYPES)}"
        )
    record = MealRecord(
        title=title,
        description=payload.get("description") or "",
        meal_type=MealType(normalized_type),
        date=meal_date,
        ingredients=_coerce_ingredients(payload.get("ingredients")),
        instructions=payload.get("instructions") or "",
        calories=_coerce_calories(payload.get("calories")),
        cuisine=payload.get("cuisine") or "",
        is_ai_generated=False,
        family_id=family_id,
        created_by_id=actor_id,
    )
    session.add(record)
    session.commit()
    session.refresh(record)
    return record


def save_generated_meals(
    session: Session, family_id: int, actor_id: Optional[int], meals: list[dict]
) -> list[MealRecord]:
    records = []
    for meal in meals:
        record = MealRecord(
            title=str(meal["title"]).strip(),
            description=meal.get("description") or "",
            meal_type=MealType(str(meal["mealType"]).upper()),
            date=meal["date"],
            ingredients=_coerce_ingredients(meal.get("ingredients")),
            instructions=meal.get("instructions") or "",
            calories=_coerce_calories(meal.get("calories")),
            cuisine=meal.get("cuisine") or "",
            is_ai_generated=True,
            family_id=family_id,
            created_by_id=actor_id,
        )
        session.add(record)
        records.append(record)
    session.commit()
    for record in records:
        session.refresh(record)
    return records


def meal_to_dict(record: MealRecord) -> dict:
    return {
        "id": record.id,
        "title": record.title,
        "description": record.description,
        "mealType": _meal_type_value(record.meal_type),
        "date": record.date.isoformat(),
        "ingredients": list(record.ingredients or []),
        "instructions": record.instructions,
        "calories": record.calories,
        "cuisine": record.cuisine,
        "isAiGenerated": record.is_ai_generated,
        "familyId": record.family_id,
        "createdById": record.created_by_id,
    }


def grid_to_dict(grid: dict) -> dict:
    return {
        day: {
            meal: meal_to_dict(cell) if isinstance(cell, MealRecord) else cell
            for meal, cell in slots.items()
        }
        for day, slots in grid.items()
    }
