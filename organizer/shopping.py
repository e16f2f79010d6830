import logging
from typing import Iterable, Optional

from sqlmodel import Session, select

from .categories import OTHER, SHOPPING_CATEGORY_LABELS, categorize_shopping_item
from .models import MealRecord, ShoppingItem, ShoppingList
from .weeks import week_window

logger = logging.getLogger(__name__)


class ShoppingValidationError(ValueError):
    pass


def generate_items(meals: Iterable[MealRecord]) -> list[dict]:
    """Flatten the ingredients of ``meals`` into shopping items.

    Duplicates are dropped by exact trimmed name, so ``"Tomato"`` and
    ``"tomato"`` stay separate items.
    """
    seen: set[str] = set()
    items: list[dict] = []
    for meal in meals:
        for ingredient in meal.ingredients or []:
            name = (ingredient or "").strip()
            if not name or name in seen:
                continue
            seen.add(name)
            items.append(
                {
                    "name": name,
                    "quantity": "1",
                    "category": categorize_shopping_item(name),
                    "is_purchased": False,
                    "is_manual": False,
                }
            )
    return items


def _item_category(name: str, category: Optional[str]) -> str:
    if not category:
        return OTHER
    if category in SHOPPING_CATEGORY_LABELS:
        return category
    # unknown labels (e.g. the model's "Meat") are re-derived from the name
    return categorize_shopping_item(name)


def _item_from_payload(payload: dict) -> ShoppingItem:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ShoppingValidationError("Item name is required")
    return ShoppingItem(
        name=name,
        quantity=str(payload.get("quantity") or "1"),
        category=_item_category(name, payload.get("category")),
        is_purchased=bool(payload.get("isPurchased", payload.get("is_purchased", False))),
        is_manual=bool(payload.get("isManual", payload.get("is_manual", False))),
    )


def load_shopping_list(session: Session, family_id: int, week_start=None) -> Optional[ShoppingList]:
    statement = select(ShoppingList).where(ShoppingList.family_id == family_id)
    if week_start is not None:
        start, end = week_window(week_start)
        statement = statement.where(ShoppingList.week_start >= start, ShoppingList.week_start < end)
    return session.exec(statement.order_by(ShoppingList.created_at.desc(), ShoppingList.id.desc())).first()


def save_shopping_list(session: Session, family_id: int, week_start, items: list[dict]) -> ShoppingList:
    start, _ = week_window(week_start)
    new_items = [_item_from_payload(item) for item in items]
    shopping_list = load_shopping_list(session, family_id, start)
    if shopping_list:
        for old in list(shopping_list.items):
            session.delete(old)
        session.flush()
        session.refresh(shopping_list)
        logger.info("Replacing items of shopping list %s", shopping_list.id)
    else:
        shopping_list = ShoppingList(
            family_id=family_id,
            title=f"Shopping List - {start.date().isoformat()}",
            week_start=start,
        )
        session.add(shopping_list)
        session.flush()
        logger.info("Created shopping list %s for week of %s", shopping_list.id, start.date())
    for item in new_items:
        item.shopping_list_id = shopping_list.id
        session.add(item)
    session.commit()
    session.refresh(shopping_list)
    return shopping_list


def item_to_dict(item: ShoppingItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "quantity": item.quantity,
        "category": item.category,
        "isPurchased": item.is_purchased,
        "isManual": item.is_manual,
    }


def generated_item_to_dict(item: dict) -> dict:
    return {
        "name": item["name"],
        "quantity": item["quantity"],
        "category": item["category"],
        "isPurchased": item["is_purchased"],
        "isManual": item["is_manual"],
    }


def shopping_list_to_dict(shopping_list: ShoppingList) -> dict:
    return {
        "id": shopping_list.id,
        "title": shopping_list.title,
        "weekStart": shopping_list.week_start.isoformat(),
        "familyId": shopping_list.family_id,
        "items": [item_to_dict(item) for item in shopping_list.items],
    }
