import json
from datetime import datetime

import pytest

from organizer.generation import (
    GeminiClient,
    GenerationError,
    build_meal_plan_prompt,
    parse_json_array,
    strip_code_fence,
    validate_meals,
    validate_shopping_items,
)

GENERATED_MEALS = [
    {
        "title": "Shakshuka",
        "description": "Eggs poached in tomato sauce",
        "mealType": "breakfast",
        "ingredients": ["eggs", "tomato", "onion"],
        "instructions": "Simmer, then crack the eggs in.",
        "calories": 350,
        "cuisine": "Middle Eastern",
        "date": "2025-01-07",
    },
    {
        "title": "Falafel wrap",
        "mealType": "LUNCH",
        "ingredients": ["chickpeas", "flatbread"],
        "date": "2025-01-07",
    },
]


def test_strip_code_fence_variants():
    assert strip_code_fence('```json\n[1, 2]\n```') == "[1, 2]"
    assert strip_code_fence('```\n[1]\n```\n') == "[1]"
    assert strip_code_fence('  [1]  ') == "[1]"


def test_parse_json_array_rejects_bad_payloads():
    with pytest.raises(GenerationError):
        parse_json_array("", "meal plan")
    with pytest.raises(GenerationError):
        parse_json_array("Here is your plan!", "meal plan")
    with pytest.raises(GenerationError):
        parse_json_array('{"title": "not a list"}', "meal plan")
    with pytest.raises(GenerationError):
        parse_json_array("[]", "meal plan")


def test_validate_meals_normalises_type_and_date():
    meals = validate_meals(GENERATED_MEALS)
    assert meals[0]["mealType"] == "BREAKFAST"
    assert meals[0]["date"] == datetime(2025, 1, 7)


def test_validate_meals_rejects_whole_batch():
    broken = [GENERATED_MEALS[0], {"title": "No date", "mealType": "DINNER", "ingredients": ["rice"]}]
    with pytest.raises(GenerationError, match="index 1"):
        validate_meals(broken)


def test_validate_meals_checks_field_types():
    meals = validate_meals([{**GENERATED_MEALS[0], "calories": "420", "ingredients": [" eggs ", ""]}])
    assert meals[0]["calories"] == 420
    assert meals[0]["ingredients"] == ["eggs"]

    with pytest.raises(GenerationError, match="calories"):
        validate_meals([{**GENERATED_MEALS[0], "calories": "about 400"}])
    with pytest.raises(GenerationError, match="ingredients"):
        validate_meals([{**GENERATED_MEALS[0], "ingredients": {}}])
    with pytest.raises(GenerationError, match="calories"):
        validate_meals([{**GENERATED_MEALS[0], "calories": -10}])


def test_generate_meal_plan_route_rejects_malformed_fields(client, fake_gemini):
    fake_gemini(json.dumps([{**GENERATED_MEALS[0], "calories": "about 400"}]))
    res = client.post(
        "/api/generateMealPlan",
        json={"cuisine": "Any", "numberOfPeople": 2, "numberOfDays": 1},
    )
    assert res.status_code == 502
    assert res.json()["success"] is False


def test_validate_shopping_items_defaults():
    items = validate_shopping_items([{"name": " Rice ", "category": "Grains", "isPurchased": True}])
    assert items == [{"name": "Rice", "quantity": "1", "category": "Grains", "isPurchased": False}]
    with pytest.raises(GenerationError):
        validate_shopping_items([{"name": "Rice"}])


def test_meal_plan_prompt_lists_request():
    prompt = build_meal_plan_prompt(
        {"cuisine": ["Italian", "Thai"], "numberOfPeople": 4, "numberOfDays": 2, "dietaryRestrictions": ["vegetarian"]},
        "2025-01-06",
    )
    assert "2-day meal plan for 4 people" in prompt
    assert "Italian, Thai" in prompt
    assert "vegetarian" in prompt
    assert "exactly 6 meals" in prompt
    assert "starting from 2025-01-06" in prompt


def test_client_without_key_refuses():
    client = GeminiClient(api_key="")
    with pytest.raises(GenerationError, match="not configured"):
        client.generate_meal_plan({"cuisine": "Any", "numberOfPeople": 1, "numberOfDays": 1}, "2025-01-06")


def test_generate_meal_plan_route_saves_ai_meals(client, fake_gemini):
    fake = fake_gemini("```json\n" + json.dumps(GENERATED_MEALS) + "\n```")
    res = client.post(
        "/api/generateMealPlan",
        json={"cuisine": "Mediterranean", "numberOfPeople": 2, "numberOfDays": 1, "startDate": "2025-01-07"},
    )
    assert res.status_code == 200
    meals = res.json()["meals"]
    assert [m["title"] for m in meals] == ["Shakshuka", "Falafel wrap"]
    assert all(m["isAiGenerated"] for m in meals)
    assert "starting from 2025-01-07" in fake.models.calls[0]["contents"]

    grid = client.get("/api/mealPlan", params={"weekStart": "2025-01-06"}).json()["mealPlan"]
    assert grid["TUESDAY"]["BREAKFAST"]["title"] == "Shakshuka"
    assert grid["TUESDAY"]["LUNCH"]["title"] == "Falafel wrap"


def test_generate_meal_plan_route_rejects_bad_batch(client, fake_gemini):
    fake_gemini(json.dumps([{"title": "Half a meal"}]))
    res = client.post(
        "/api/generateMealPlan",
        json={"cuisine": "Any", "numberOfPeople": 2, "numberOfDays": 1},
    )
    assert res.status_code == 502
    assert res.json()["success"] is False
    assert client.get("/api/mealPlan", params={"weekStart": "2025-01-06"}).json()["mealPlan"]["TUESDAY"]["LUNCH"] is None


def test_generate_meal_plan_route_requires_fields(client, fake_gemini):
    fake_gemini("[]")
    res = client.post("/api/generateMealPlan", json={"cuisine": "Any"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Missing required fields"


def test_generate_shopping_list_route(client, fake_gemini):
    fake = fake_gemini(json.dumps([{"name": "Eggs", "quantity": "12", "category": "Dairy"}]))
    res = client.post(
        "/api/shopping/generate",
        json={"mealPlans": [{"mealType": "BREAKFAST", "title": "Omelette", "ingredients": ["eggs"]}]},
    )
    assert res.status_code == 200
    assert res.json()["shoppingList"] == [
        {"name": "Eggs", "quantity": "12", "category": "Dairy", "isPurchased": False}
    ]
    assert "BREAKFAST: Omelette (Ingredients: eggs)" in fake.models.calls[0]["contents"]

    res = client.post("/api/shopping/generate", json={})
    assert res.status_code == 400
