"""Keyword-based grocery categorisation.

Each table is an ordered sequence of ``(category, keywords)`` pairs. The
first category with a keyword contained in the ingredient name wins, so
the order of a table decides ties (``"beans"`` is a vegetable for shopping
items because Vegetables comes before Grains & Cereals).
"""

OTHER = "Other"

# used when the weekly meal planner tags ingredients
MEAL_INGREDIENT_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Vegetables", ("tomato", "onion", "garlic", "carrot", "potato", "bell pepper",
                    "spinach", "lettuce", "cucumber", "cabbage")),
    ("Meat", ("chicken", "beef", "pork", "fish", "lamb", "turkey", "salmon", "tuna")),
    ("Dairy", ("milk", "cheese", "yogurt", "butter", "cream", "eggs")),
    ("Grains", ("rice", "bread", "pasta", "flour", "oats", "quinoa", "wheat")),
    ("Spices", ("salt", "pepper", "cumin", "turmeric", "cinnamon", "oregano", "basil")),
    ("Pantry", ("oil", "vinegar", "sugar", "honey", "soy sauce", "tomato sauce")),
)

# used for shopping list items
SHOPPING_ITEM_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Vegetables", ("tomato", "onion", "garlic", "carrot", "potato", "spinach", "lettuce",
                    "eggplant", "cauliflower", "peas", "beans", "cucumber")),
    ("Fruits", ("apple", "banana", "orange", "lemon", "lime", "mango")),
    ("Meat & Seafood", ("chicken", "beef", "pork", "fish", "lamb", "mutton")),
    ("Dairy", ("milk", "cheese", "yogurt", "butter", "cream", "eggs", "paneer")),
    ("Grains & Cereals", ("rice", "bread", "pasta", "flour", "wheat", "oats", "lentils",
                          "chickpeas", "beans")),
    ("Spices & Condiments", ("salt", "pepper", "turmeric", "cumin", "coriander", "chili",
                             "garam masala", "spices")),
    ("Pantry", ("oil", "vinegar", "sugar", "honey", "ghee")),
)

SHOPPING_CATEGORY_LABELS = tuple(name for name, _ in SHOPPING_ITEM_CATEGORIES) + (OTHER,)


def categorize(ingredient: str, table=MEAL_INGREDIENT_CATEGORIES) -> str:
    lowered = (ingredient or "").lower()
    if not lowered.strip():
        return OTHER
    for category, keywords in table:
        if any(keyword in lowered for keyword in keywords):
            return category
    return OTHER


def categorize_shopping_item(name: str) -> str:
    return categorize(name, SHOPPING_ITEM_CATEGORIES)
