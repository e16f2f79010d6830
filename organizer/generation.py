"""
Gemini client for meal-plan and shopping-list generation.

The model is asked for a bare JSON array; replies wrapped in a Markdown code
fence are unwrapped before parsing. A batch is rejected as a whole when any
element is missing a required field or carries a malformed one.
"""

import json
import logging
import math
from typing import Any, Optional

from google import genai

from .config import GEMINI_API_KEY, GEMINI_MODEL
from .weeks import parse_week_start

logger = logging.getLogger(__name__)

MEAL_REQUIRED_FIELDS = ("title", "mealType", "ingredients", "date")
SHOPPING_REQUIRED_FIELDS = ("name", "category")
GENERATED_MEAL_TYPES = ("BREAKFAST", "LUNCH", "DINNER", "SNACK")
SHOPPING_PROMPT_CATEGORIES = ("Vegetables", "Fruits", "Meat", "Dairy", "Grains", "Pantry", "Other")


class GenerationError(Exception):
    pass


def _missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def strip_code_fence(content: str) -> str:
    cleaned = content.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        opener = cleaned[:first_newline] if first_newline != -1 else cleaned
        # ``` or ```json
        if opener.strip("`").strip().lower() in ("", "json"):
            cleaned = cleaned[len(opener):]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def parse_json_array(content: str, label: str) -> list[Any]:
    cleaned = strip_code_fence(content or "")
    if not cleaned:
        raise GenerationError(f"No {label} returned by the model")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse %s response: %s", label, cleaned)
        raise GenerationError(f"Failed to parse {label} response") from exc
    if not isinstance(data, list) or not data:
        raise GenerationError(f"Invalid {label} format received")
    return data


def _meal_ingredients(value, index: int) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise GenerationError(f"Invalid ingredients at index {index}")
    return [item.strip() for item in value if item.strip()]


def _meal_calories(value, index: int) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value) and value >= 0:
        return int(value)
    raise GenerationError(f"Invalid calories at index {index}: {value!r}")


def validate_meals(data: list[Any]) -> list[dict]:
    meals = []
    for index, meal in enumerate(data):
        if not isinstance(meal, dict) or any(_missing(meal.get(field)) for field in MEAL_REQUIRED_FIELDS):
            logger.error("Invalid meal at index %d: %r", index, meal)
            raise GenerationError(f"Invalid meal data at index {index}")
        meal_type = str(meal["mealType"]).upper()
        if meal_type not in GENERATED_MEAL_TYPES:
            raise GenerationError(f"Invalid meal type at index {index}: {meal['mealType']}")
        try:
            meal_date = parse_week_start(str(meal["date"]))
        except ValueError:
            raise GenerationError(f"Invalid meal date at index {index}") from None
        meals.append(
            {
                **meal,
                "mealType": meal_type,
                "date": meal_date,
                "ingredients": _meal_ingredients(meal["ingredients"], index),
                "calories": _meal_calories(meal.get("calories"), index),
            }
        )
    return meals


def validate_shopping_items(data: list[Any]) -> list[dict]:
    items = []
    for index, item in enumerate(data):
        if not isinstance(item, dict) or any(_missing(item.get(field)) for field in SHOPPING_REQUIRED_FIELDS):
            logger.error("Invalid shopping item at index %d: %r", index, item)
            raise GenerationError(f"Invalid shopping item data at index {index}")
        items.append(
            {
                "name": str(item["name"]).strip(),
                "quantity": str(item.get("quantity") or "1"),
                "category": str(item["category"]),
                "isPurchased": False,
            }
        )
    return items


def _listing(values, empty: str) -> str:
    return ", ".join(values) if values else empty


def build_meal_plan_prompt(request: dict, start_date: str) -> str:
    days = int(request["numberOfDays"])
    cuisine = request["cuisine"]
    cuisines = cuisine if isinstance(cuisine, list) else [cuisine]
    return f"""
Generate a {days}-day meal plan for {request['numberOfPeople']} people.

Requirements:
- Cuisines: {_listing(cuisines, 'Any')}
- Dietary restrictions: {_listing(request.get('dietaryRestrictions'), 'None')}
- Available ingredients: {_listing(request.get('availableIngredients'), 'None specified')}
- Exclude ingredients: {_listing(request.get('excludeIngredients'), 'None')}

Generate exactly {days * 3} meals (breakfast, lunch, dinner for each day).

Return ONLY a valid JSON array with this exact structure:
[
  {{
    "title": "Meal Name",
    "description": "Brief description",
    "mealType": "BREAKFAST|LUNCH|DINNER",
    "ingredients": ["ingredient1", "ingredient2"],
    "instructions": "Step by step cooking instructions",
    "calories": 400,
    "cuisine": "Primary cuisine type",
    "date": "YYYY-MM-DD"
  }}
]

Ensure the response is valid JSON that can be parsed directly.
The date should be in YYYY-MM-DD format, starting from {start_date}.
"""


def build_shopping_list_prompt(meal_plans: list[dict], family_size: int) -> str:
    summary = "\n".join(
        f"{meal.get('mealType', '')}: {meal.get('title', '')} "
        f"(Ingredients: {', '.join(meal.get('ingredients') or [])})"
        for meal in meal_plans
    )
    return f"""
Create a comprehensive shopping list for a family of {family_size} people based on the following weekly meal plan:

{summary}

Instructions:
1. Consolidate duplicate ingredients and calculate appropriate quantities for {family_size} people
2. Organize items by grocery store categories ({', '.join(SHOPPING_PROMPT_CATEGORIES)})
3. Include realistic quantities (e.g., "2 lbs", "1 bunch", "3 pieces", "500g")
4. Consider staple items that might be needed (cooking oil, basic spices)
5. Avoid items that are typically already available at home (water, common seasonings like salt)

Return ONLY a valid JSON array with this exact structure:
[
  {{
    "name": "Item name",
    "quantity": "Amount needed for {family_size} people",
    "category": "Category name",
    "isPurchased": false
  }}
]

Categories must be one of: {', '.join(SHOPPING_PROMPT_CATEGORIES)}
"""


class GeminiClient:
    """Thin wrapper over ``google.genai.Client`` returning validated JSON batches."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        self.api_key = api_key if api_key is not None else GEMINI_API_KEY
        self.model = model or GEMINI_MODEL
        if client is not None:
            self.client = client
        elif self.api_key:
            self.client = genai.Client(api_key=self.api_key)
        else:
            self.client = None

    def _generate(self, prompt: str) -> str:
        if self.client is None:
            logger.error("Gemini API key not configured")
            raise GenerationError("Gemini API key not configured")
        logger.info("Sending request to Gemini model %s", self.model)
        try:
            response = self.client.models.generate_content(model=self.model, contents=prompt)
        except Exception as exc:
            logger.error("Gemini request failed: %s", exc)
            raise GenerationError("Generation request failed") from exc
        return response.text or ""

    def generate_meal_plan(self, request: dict, start_date: str) -> list[dict]:
        content = self._generate(build_meal_plan_prompt(request, start_date))
        meals = validate_meals(parse_json_array(content, "meal plan"))
        logger.info("Generated %d meals", len(meals))
        return meals

    def generate_shopping_list(self, meal_plans: list[dict], family_size: int) -> list[dict]:
        content = self._generate(build_shopping_list_prompt(meal_plans, family_size))
        items = validate_shopping_items(parse_json_array(content, "shopping list"))
        logger.info("Generated %d shopping items", len(items))
        return items


def get_gemini_client() -> GeminiClient:
    return GeminiClient()
