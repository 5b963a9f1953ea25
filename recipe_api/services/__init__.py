# Services package init
"""
RecipeShare Backend: Services Layer
====================================

Business rules between the routes (HTTP) and MongoDB (persistence).
Services receive the database handle from the route and raise the domain
exceptions from recipe_api.exceptions; they never build HTTP responses.

Service Inventory:
    - RecipeService:    create / list / popular / get / mine / update / delete
    - RatingService:    rating upsert with optimistic concurrency
    - FavoriteService:  add / remove / list favorites
    - FileService:      image validation, storage and cleanup
    - form_decoding:    JSON-text form fields → structures
    - pagination:       page/limit arithmetic and metadata
"""
