"""
Fixed vocabularies used to read structure out of free-text queries:
ingredient tokens, use-case keywords, product model patterns and the
feature requirements that drive feature-aware product ranking.
"""
from __future__ import annotations

import re

# Ingredient tokens, matched on word boundaries
COMMON_INGREDIENTS = [
    # Fruits
    "strawberry", "strawberries", "banana", "bananas", "blueberry", "blueberries",
    "apple", "apples", "mango", "mangoes", "pineapple", "orange", "oranges",
    "peach", "peaches", "raspberry", "raspberries", "blackberry", "blackberries",
    "kale", "spinach", "avocado", "acai", "berry", "berries", "grape", "grapes",
    "cherry", "cherries", "watermelon", "papaya", "lemon", "lime", "cranberry",
    # Vegetables
    "carrot", "carrots", "celery", "beet", "beets", "cucumber", "tomato", "tomatoes",
    "broccoli", "cauliflower", "ginger", "garlic", "onion", "pepper", "sweet potato",
    "squash", "zucchini", "pumpkin",
    # Nuts & seeds
    "almond", "almonds", "cashew", "cashews", "peanut", "peanuts", "walnut", "walnuts",
    "hazelnut", "hazelnuts", "chia", "flax", "hemp", "sunflower",
    # Other
    "coconut", "oat", "oats", "chocolate", "cocoa", "cacao", "vanilla", "honey",
    "yogurt", "milk", "protein", "basil", "mint", "cilantro", "turmeric", "matcha",
    "coffee", "espresso", "cinnamon",
]

_INGREDIENT_PATTERNS = [
    (ingredient, re.compile(rf"\b{re.escape(ingredient)}\b", re.IGNORECASE))
    for ingredient in COMMON_INGREDIENTS
]

# use-case id → substrings that signal it
USE_CASE_KEYWORDS = {
    "smoothies": ["smoothie", "smoothies", "shake", "shakes", "fruit", "frozen",
                  "kids smoothie", "morning shake"],
    "soups": ["soup", "soups", "hot soup", "hot soups", "puree", "pureed", "picky eater",
              "picky eaters", "hide vegetables", "hiding vegetables", "sneak vegetables",
              "doesn't like veggies", "won't eat vegetables", "green soup"],
    "nut-butters": ["nut butter", "nut butters", "peanut butter", "almond butter", "nuts"],
    "frozen-desserts": ["ice cream", "frozen dessert", "sorbet", "frozen treat", "nice cream"],
    "grinding": ["grind", "grinding", "flour", "grain", "coffee"],
    "dips": ["dip", "dips", "hummus", "salsa", "guacamole"],
    "baby": ["baby food", "baby", "infant", "toddler"],
    "cocktails": ["cocktail", "cocktails", "margarita", "frozen drink"],
    "family": ["family", "kids", "children", "son", "daughter", "family of"],
}

MODEL_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"\bx5\b", r"\bx4\b", r"\bx3\b",
        r"\ba3500\b", r"\ba2500\b", r"\ba2300\b", r"\ba3300\b",
        r"\be310\b", r"\be320\b",
        r"\b750\b", r"\b7500\b",
        r"\bpropel\b", r"\bascent\b", r"\bventurist\b", r"\bexplorian\b", r"\blegacy\b",
        r"\bfamily\s*pack\b",
    )
]

# detected use case → product features it requires
FEATURE_REQUIREMENTS = {
    "soups": ["hot-soup-program"],
    "soup": ["hot-soup-program"],
    "hot-soup": ["hot-soup-program"],
    "frozen-desserts": ["preset-programs"],
    "ice-cream": ["preset-programs"],
    "nut-butters": ["tamper"],
    "nut-butter": ["tamper"],
}

# Models known to carry the Hot Soup program
HOT_SOUP_PRODUCTS = ["ascent-x5", "ascent-x4", "ascent-x3", "a3500", "a2500", "propel-750"]


def extract_ingredients(query: str) -> list[str]:
    """Ingredient tokens present in ``query`` as whole words."""
    return [ingredient for ingredient, pattern in _INGREDIENT_PATTERNS if pattern.search(query)]


def extract_use_case_keywords(query: str) -> list[str]:
    """Use-case ids whose signal phrases appear in ``query``."""
    lower = query.lower()
    return [
        use_case for use_case, terms in USE_CASE_KEYWORDS.items()
        if any(term in lower for term in terms)
    ]


def extract_product_models(query: str) -> list[str]:
    """Known model tokens in ``query``, lowercased and deduplicated in order."""
    found: list[str] = []
    for pattern in MODEL_PATTERNS:
        for match in pattern.findall(query):
            token = match.lower()
            if token not in found:
                found.append(token)
    return found
