"""Local product/recipe corpus and retrieval context assembly."""
