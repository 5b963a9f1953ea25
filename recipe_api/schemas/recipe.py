"""
RecipeShare Backend: Request/Response Schemas
==============================================

What:  Pydantic models defining the API contract between frontend and backend.
How:   FastAPI uses these models to validate request bodies, serialize
       responses and generate the OpenAPI document.
Who:   Route handlers (return types), services (build RecipeOut).

Envelope:
    Every response is wrapped as {success, message?, data?}; failures as
    {success: false, message, errors?}. Field names are camelCase on the wire
    and ids are rendered as strings under `_id`.

Population:
    `author` and `ratings[].user` are ObjectIds in storage. Responses carry a
    UserSummary in their place when the service populated them, the bare id
    string when it did not, and null when the referenced user no longer exists.
"""

from datetime import datetime
from typing import Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel, Field

from recipe_api.models.ids import PyObjectId
from recipe_api.models.recipe import (
    CamelModel,
    CookingTime,
    Ingredient,
    Instruction,
    NutritionalInfo,
    RecipeDocument,
)
from recipe_api.models.user import UserSummary
from recipe_api.services.pagination import PaginationMeta

UserRef = Union[UserSummary, PyObjectId, None]


# ══════════════════════════════════════════════════════════════════════════
# Recipe Representation
# ══════════════════════════════════════════════════════════════════════════


class RatingOut(CamelModel):
    user: UserRef = None
    rating: int
    comment: str = ""


class RecipeOut(CamelModel):
    """
    What:  A recipe as returned to clients.
    Who:   Every endpoint that returns recipes.

    Adds the derived `totalTime` (prep + cook) to the stored fields.
    """

    id: PyObjectId = Field(alias="_id")
    title: str
    description: str
    ingredients: List[Ingredient]
    instructions: List[Instruction]
    cooking_time: CookingTime
    total_time: int = Field(description="prep + cook, in minutes")
    servings: int
    difficulty: str
    cuisine: str
    diet_type: str
    calories: Optional[int] = None
    image: str
    author: UserRef = None
    ratings: List[RatingOut] = Field(default_factory=list)
    average_rating: float = 0
    total_ratings: int = 0
    is_public: bool = True
    tags: List[str] = Field(default_factory=list)
    nutritional_info: NutritionalInfo = Field(default_factory=NutritionalInfo)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(
        cls,
        doc: RecipeDocument,
        authors: Optional[Dict[ObjectId, UserSummary]] = None,
        raters: Optional[Dict[ObjectId, UserSummary]] = None,
    ) -> "RecipeOut":
        """
        Render a stored recipe.

        A lookup map that is None leaves that reference as the raw id; a map
        that is given but lacks the id renders null (dangling reference).
        """
        author: UserRef = doc.author if authors is None else authors.get(doc.author)
        ratings = [
            RatingOut(
                user=r.user if raters is None else raters.get(r.user),
                rating=r.rating,
                comment=r.comment,
            )
            for r in doc.ratings
        ]
        return cls(
            id=doc.id,
            title=doc.title,
            description=doc.description,
            ingredients=doc.ingredients,
            instructions=doc.instructions,
            cooking_time=doc.cooking_time,
            total_time=doc.cooking_time.total_time,
            servings=doc.servings,
            difficulty=doc.difficulty,
            cuisine=doc.cuisine,
            diet_type=doc.diet_type,
            calories=doc.calories,
            image=doc.image,
            author=author,
            ratings=ratings,
            average_rating=doc.average_rating,
            total_ratings=doc.total_ratings,
            is_public=doc.is_public,
            tags=doc.tags,
            nutritional_info=doc.nutritional_info,
            created_at=doc.created_at,
            updated_at=doc.updated_at,
        )


# ══════════════════════════════════════════════════════════════════════════
# Query / Request Models
# ══════════════════════════════════════════════════════════════════════════


class RecipeQuery(BaseModel):
    """
    Filters, sort and page for GET /api/recipes.

    Built by the route from query parameters; range checks already happened
    there, sort values are checked by the service.
    """

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1)
    cuisine: Optional[str] = None
    diet_type: Optional[str] = None
    difficulty: Optional[str] = None
    min_rating: Optional[float] = None
    max_calories: Optional[int] = None
    max_time: Optional[int] = None
    search: Optional[str] = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"


class RateRecipeRequest(BaseModel):
    rating: int = Field(ge=1, le=5, description="Whole stars, 1 to 5")
    comment: Optional[str] = Field(default=None, max_length=200)


# ══════════════════════════════════════════════════════════════════════════
# Envelopes
# ══════════════════════════════════════════════════════════════════════════


class ApiResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class RecipeData(BaseModel):
    recipe: RecipeOut


class RecipeListData(BaseModel):
    recipes: List[RecipeOut]
    pagination: PaginationMeta


class PopularRecipesData(BaseModel):
    recipes: List[RecipeOut]


class RecipeResponse(ApiResponse):
    data: RecipeData


class RecipeListResponse(ApiResponse):
    data: RecipeListData


class PopularRecipesResponse(ApiResponse):
    data: PopularRecipesData


class ErrorResponse(BaseModel):
    """
    Body of every failed request.

        {"success": false, "message": "Recipe not found"}
        {"success": false, "message": "Validation Error", "errors": ["servings: ..."]}
    """

    success: bool = False
    message: str
    errors: Optional[List[str]] = None


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    uptime_seconds: float
