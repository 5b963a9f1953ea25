"""
RecipeShare Backend: Application Package Initializer
=====================================================

What: Marks the `recipe_api` directory as a Python package.
Who:  Imported by uvicorn (`recipe_api.main:app`), pytest, and every module
      that needs `from recipe_api.config import settings`.

Architecture Note:
    The backend is split into thin layers:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, envelopes
    ├─────────────────────────────────────┤
    │   Services (Recipes/Ratings/Favs)   │  ← Authorization, business rules
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← Pydantic documents + API contracts
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Motor (async MongoDB) handle
    └─────────────────────────────────────┘

    Routes never touch collections directly; services never build HTTP responses.
"""

__version__ = "1.0.0"
