# Routes package init
"""
RecipeShare Backend: API Routes Package
========================================

Route Inventory:
    - recipes.py:  /api/recipes/...           recipes, ratings, favorites
    - health.py:   GET /api/health            service + database health
    - uploads.py:  GET /uploads/{file_path}   stored recipe images

Routes stay thin: read the request, call a service, wrap the result in the
{success, message?, data?} envelope. Domain errors propagate to the global
exception handlers in main.py.
"""
