"""
RecipeShare Backend: Recipe Route Handlers
===========================================

What:  /api/recipes endpoints: CRUD, popular, my-recipes, ratings, favorites.
How:   Extracts query/path/body data, delegates to the services and wraps the
       result in the {success, message?, data?} envelope.

Path ordering:
    The literal paths (/popular, /user/my-recipes, /user/favorites) are
    declared before /{recipe_id}, otherwise "popular" would be captured as
    an id and rejected as malformed.

Create/update bodies:
    application/json       → fields as a JSON object
    multipart/form-data    → text parts are fields (nested ones as JSON text),
                             the optional `image` part is the recipe photo
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request, Response
from motor.motor_asyncio import AsyncIOMotorDatabase
from starlette.datastructures import UploadFile

from recipe_api.config import settings
from recipe_api.database import get_database
from recipe_api.exceptions import BadRequestError
from recipe_api.models.user import CurrentUser
from recipe_api.schemas.recipe import (
    ApiResponse,
    ErrorResponse,
    PopularRecipesData,
    PopularRecipesResponse,
    RateRecipeRequest,
    RecipeData,
    RecipeListData,
    RecipeListResponse,
    RecipeQuery,
    RecipeResponse,
)
from recipe_api.security import get_current_user
from recipe_api.services.favorite_service import favorite_service
from recipe_api.services.file_service import ImageUpload, file_service
from recipe_api.services.rating_service import rating_service
from recipe_api.services.recipe_service import recipe_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recipes", tags=["Recipes"])

ERROR_RESPONSES = {
    400: {"description": "Malformed id or invalid input", "model": ErrorResponse},
    404: {"description": "Recipe not found", "model": ErrorResponse},
    500: {"description": "Server error", "model": ErrorResponse},
}

AUTH_ERROR_RESPONSES = {
    **ERROR_RESPONSES,
    401: {"description": "Missing or invalid bearer token", "model": ErrorResponse},
}


async def read_image_part(part: UploadFile) -> ImageUpload:
    """
    Read an uploaded image, never holding more than max_file_size + 1 bytes.

    The multipart parser spools large parts to disk; reading one byte past
    the limit is enough for validate_size to reject an oversized file.
    """
    if part.size is not None:
        file_service.validate_size(part.size)
    content = await part.read(settings.max_file_size + 1)
    return ImageUpload(
        filename=part.filename,
        content=content,
        content_type=part.content_type or "",
    )


async def read_recipe_payload(request: Request) -> Tuple[Dict[str, Any], Optional[ImageUpload]]:
    """
    Read create/update fields from a JSON or multipart body.

    Returns: (fields, image) where image is None when no file was sent.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise BadRequestError("Request body is not valid JSON")
        if not isinstance(body, dict):
            raise BadRequestError("Request body must be a JSON object")
        return body, None

    form = await request.form()
    fields: Dict[str, Any] = {}
    image = None
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            try:
                if key == "image" and value.filename:
                    image = await read_image_part(value)
            finally:
                await value.close()
        else:
            fields[key] = value
    return fields, image


# ══════════════════════════════════════════════════════════════════════════
# Listing
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "",
    response_model=RecipeListResponse,
    responses={400: ERROR_RESPONSES[400], 500: ERROR_RESPONSES[500]},
    summary="List public recipes",
    description=(
        "Filter by cuisine, diet type, difficulty, minimum rating, maximum calories "
        "and maximum total time; search title, description, ingredients and tags; "
        "sort and paginate."
    ),
)
async def list_recipes(
    response: Response,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    cuisine: Optional[str] = Query(default=None, description="Exact cuisine, or 'All'"),
    diet_type: Optional[str] = Query(default=None, alias="dietType"),
    difficulty: Optional[str] = Query(default=None),
    min_rating: Optional[float] = Query(default=None, alias="minRating", ge=0, le=5),
    max_calories: Optional[int] = Query(default=None, alias="maxCalories", ge=0),
    max_time: Optional[int] = Query(
        default=None, alias="maxTime", ge=0, description="Upper bound on prep + cook minutes"
    ),
    search: Optional[str] = Query(default=None, max_length=100),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder"),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> RecipeListResponse:
    query = RecipeQuery(
        page=page,
        limit=limit,
        cuisine=cuisine,
        diet_type=diet_type,
        difficulty=difficulty,
        min_rating=min_rating,
        max_calories=max_calories,
        max_time=max_time,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    recipes, pagination = await recipe_service.list_recipes(db, query)
    response.headers["X-Total-Count"] = str(pagination.total_recipes)
    return RecipeListResponse(data=RecipeListData(recipes=recipes, pagination=pagination))


@router.get(
    "/popular",
    response_model=PopularRecipesResponse,
    summary="Top-rated public recipes",
)
async def popular_recipes(
    limit: int = Query(default=settings.popular_page_size, ge=1, le=settings.max_page_size),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> PopularRecipesResponse:
    recipes = await recipe_service.popular_recipes(db, limit)
    return PopularRecipesResponse(data=PopularRecipesData(recipes=recipes))


@router.get(
    "/user/my-recipes",
    response_model=RecipeListResponse,
    responses=AUTH_ERROR_RESPONSES,
    summary="The caller's own recipes, private ones included",
)
async def my_recipes(
    response: Response,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> RecipeListResponse:
    recipes, pagination = await recipe_service.list_author_recipes(db, current_user.id, page, limit)
    response.headers["X-Total-Count"] = str(pagination.total_recipes)
    return RecipeListResponse(data=RecipeListData(recipes=recipes, pagination=pagination))


@router.get(
    "/user/favorites",
    response_model=RecipeListResponse,
    responses=AUTH_ERROR_RESPONSES,
    summary="The caller's favorite recipes",
)
async def my_favorites(
    response: Response,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> RecipeListResponse:
    recipes, pagination = await favorite_service.list_favorites(db, current_user.id, page, limit)
    response.headers["X-Total-Count"] = str(pagination.total_recipes)
    return RecipeListResponse(data=RecipeListData(recipes=recipes, pagination=pagination))


# ══════════════════════════════════════════════════════════════════════════
# Single Recipe
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "",
    status_code=201,
    response_model=RecipeResponse,
    responses=AUTH_ERROR_RESPONSES,
    summary="Create a recipe",
)
async def create_recipe(
    current_user: CurrentUser = Depends(get_current_user),
    payload: Tuple[Dict[str, Any], Optional[ImageUpload]] = Depends(read_recipe_payload),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> RecipeResponse:
    fields, image = payload
    recipe = await recipe_service.create_recipe(db, current_user.id, fields, image)
    return RecipeResponse(message="Recipe created successfully", data=RecipeData(recipe=recipe))


@router.get(
    "/{recipe_id}",
    response_model=RecipeResponse,
    responses=ERROR_RESPONSES,
    summary="Get one recipe with author details and rater names",
)
async def get_recipe(
    recipe_id: str,
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> RecipeResponse:
    recipe = await recipe_service.get_recipe(db, recipe_id)
    return RecipeResponse(data=RecipeData(recipe=recipe))


@router.put(
    "/{recipe_id}",
    response_model=RecipeResponse,
    responses={
        **AUTH_ERROR_RESPONSES,
        403: {"description": "Caller is not the author", "model": ErrorResponse},
        409: {"description": "Recipe changed concurrently", "model": ErrorResponse},
    },
    summary="Update a recipe (author only)",
)
async def update_recipe(
    recipe_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    payload: Tuple[Dict[str, Any], Optional[ImageUpload]] = Depends(read_recipe_payload),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> RecipeResponse:
    fields, image = payload
    recipe = await recipe_service.update_recipe(db, recipe_id, current_user.id, fields, image)
    return RecipeResponse(message="Recipe updated successfully", data=RecipeData(recipe=recipe))


@router.delete(
    "/{recipe_id}",
    response_model=ApiResponse,
    responses={
        **AUTH_ERROR_RESPONSES,
        403: {"description": "Caller is not the author", "model": ErrorResponse},
    },
    summary="Delete a recipe (author only)",
)
async def delete_recipe(
    recipe_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> ApiResponse:
    await recipe_service.delete_recipe(db, recipe_id, current_user.id)
    return ApiResponse(message="Recipe deleted successfully")


# ══════════════════════════════════════════════════════════════════════════
# Ratings & Favorites
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "/{recipe_id}/rate",
    response_model=RecipeResponse,
    responses={
        **AUTH_ERROR_RESPONSES,
        409: {"description": "Too many concurrent raters, retry", "model": ErrorResponse},
    },
    summary="Rate a recipe (replaces the caller's previous rating)",
)
async def rate_recipe(
    recipe_id: str,
    body: RateRecipeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> RecipeResponse:
    recipe = await rating_service.rate_recipe(db, recipe_id, current_user.id, body.rating, body.comment)
    return RecipeResponse(message="Recipe rated successfully", data=RecipeData(recipe=recipe))


@router.post(
    "/{recipe_id}/favorite",
    response_model=ApiResponse,
    responses={
        **AUTH_ERROR_RESPONSES,
        409: {"description": "Already a favorite", "model": ErrorResponse},
    },
    summary="Add a recipe to the caller's favorites",
)
async def add_favorite(
    recipe_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> ApiResponse:
    await favorite_service.add_favorite(db, current_user.id, recipe_id)
    return ApiResponse(message="Recipe added to favorites")


@router.delete(
    "/{recipe_id}/favorite",
    response_model=ApiResponse,
    responses=AUTH_ERROR_RESPONSES,
    summary="Remove a recipe from the caller's favorites",
)
async def remove_favorite(
    recipe_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> ApiResponse:
    await favorite_service.remove_favorite(db, current_user.id, recipe_id)
    return ApiResponse(message="Recipe removed from favorites")
