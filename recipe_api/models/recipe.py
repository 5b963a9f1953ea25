"""
RecipeShare Backend: Recipe Document Model
===========================================

What:  Pydantic models describing a recipe document as stored in the
       `recipes` collection, with the declarative field constraints.
How:   Python attributes are snake_case; every model serializes to camelCase
       (alias_generator) so stored documents and API payloads share one
       vocabulary. `RecipeDocument.to_mongo()` is the only way a recipe is
       turned into a storable dict, and it always recomputes the rating
       aggregate first.
Who:   Built by RecipeService / RatingService, read back by every query.

Document shape (camelCase, as stored):
    {
        "_id": ObjectId,
        "title": "Shakshuka",
        "description": "...",
        "ingredients": [{"name": "eggs", "quantity": "4", "unit": "pcs"}],
        "instructions": [{"stepNumber": 1, "instruction": "..."}],
        "cookingTime": {"prep": 10, "cook": 20},
        "servings": 2,
        "difficulty": "Easy",
        "cuisine": "Middle Eastern",
        "dietType": "Vegetarian",
        "calories": 320,
        "image": "/uploads/1f0c....jpg",
        "author": ObjectId,
        "ratings": [{"user": ObjectId, "rating": 5, "comment": "Great"}],
        "averageRating": 5.0,
        "totalRatings": 1,
        "isPublic": true,
        "tags": ["brunch"],
        "nutritionalInfo": {"protein": 18, "carbs": 12, ...},
        "createdAt": datetime, "updatedAt": datetime,
        "version": 3
    }

Invariant:
    averageRating / totalRatings always describe the current ratings array.
    They are never accepted from clients and are recomputed before every write.
"""

import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Mapping, Optional

from bson import ObjectId
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError as PydanticValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from recipe_api.exceptions import DatabaseError, ValidationError
from recipe_api.models.ids import PyObjectId, is_owner

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base for every stored/serialized model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class DietType(str, Enum):
    VEGETARIAN = "Vegetarian"
    VEGAN = "Vegan"
    GLUTEN_FREE = "Gluten-Free"
    KETO = "Keto"
    PALEO = "Paleo"
    LOW_CARB = "Low-Carb"
    HIGH_PROTEIN = "High-Protein"
    REGULAR = "Regular"


RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class Ingredient(CamelModel):
    # Quantities like 2 or 0.5 arrive as numbers from some clients
    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: RequiredText
    quantity: RequiredText
    unit: RequiredText


class Instruction(CamelModel):
    step_number: int
    instruction: RequiredText


class CookingTime(CamelModel):
    prep: int = Field(ge=1, description="Preparation time in minutes")
    cook: int = Field(ge=1, description="Cooking time in minutes")

    @property
    def total_time(self) -> int:
        return self.prep + self.cook


class NutritionalInfo(CamelModel):
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    fiber: Optional[float] = None
    sugar: Optional[float] = None


class Rating(CamelModel):
    user: PyObjectId
    rating: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=200)


class RecipeContent(CamelModel):
    """
    The author-editable part of a recipe.

    Create accepts exactly these fields; update merges any subset of them
    into the stored document and re-validates the whole thing.
    """

    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    description: Annotated[str, StringConstraints(min_length=1, max_length=500)]
    ingredients: List[Ingredient] = Field(default_factory=list)
    instructions: List[Instruction] = Field(default_factory=list)
    cooking_time: CookingTime
    servings: int = Field(ge=1)
    difficulty: Difficulty
    cuisine: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
    diet_type: DietType
    calories: Optional[int] = Field(default=None, ge=1)
    image: str = Field(min_length=1, description="Relative path or URL of the recipe image")
    is_public: bool = True
    tags: List[str] = Field(default_factory=list)
    nutritional_info: NutritionalInfo = Field(default_factory=NutritionalInfo)

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: List[str]) -> List[str]:
        """Trim each tag and drop blanks; order is kept for display."""
        return [tag.strip() for tag in v if tag and tag.strip()]


# camelCase keys a client may send on create/update
EDITABLE_FIELDS = frozenset(to_camel(name) for name in RecipeContent.model_fields)


def average_rating(values: Iterable[int]) -> float:
    """
    Mean of the given ratings rounded half-up to one decimal, 0 when empty.

    Half-up (not Python's banker's rounding): 4.25 → 4.3.
    """
    values = list(values)
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.floor(mean * 10 + 0.5) / 10


class RecipeDocument(RecipeContent):
    """A full recipe as stored in MongoDB."""

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    author: PyObjectId
    ratings: List[Rating] = Field(default_factory=list)
    average_rating: float = Field(default=0, ge=0, le=5)
    total_ratings: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    # Incremented on every write; guards read-modify-write cycles
    version: int = Field(default=0, ge=0)

    def recalculate_ratings(self) -> None:
        self.average_rating = average_rating(r.rating for r in self.ratings)
        self.total_ratings = len(self.ratings)

    def upsert_rating(self, user_id: ObjectId, rating: int, comment: str = "") -> Rating:
        """
        Insert the user's rating, or replace it in place if they already rated.

        A user never has more than one entry; replacing keeps the entry's
        position in the array.
        """
        entry = Rating(user=user_id, rating=rating, comment=comment or "")
        for index, existing in enumerate(self.ratings):
            if is_owner(existing.user, user_id):
                self.ratings[index] = entry
                break
        else:
            self.ratings.append(entry)
        self.recalculate_ratings()
        return entry

    def version_guard(self) -> Dict[str, Any]:
        """Filter matching this document only if nobody wrote it since it was read."""
        if self.version == 0:
            # Documents written before versioning have no field at all
            return {"_id": self.id, "$or": [{"version": 0}, {"version": {"$exists": False}}]}
        return {"_id": self.id, "version": self.version}

    def to_mongo(self) -> Dict[str, Any]:
        """Storable dict (camelCase keys, ObjectIds kept) with fresh aggregates."""
        self.recalculate_ratings()
        data = self.model_dump(by_alias=True, exclude={"id"})
        if self.id is not None:
            data["_id"] = self.id
        return data


def format_validation_errors(exc: PydanticValidationError) -> List[str]:
    """One `field.path: message` line per pydantic error."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "body"
        messages.append(f"{location}: {error['msg']}")
    return messages


def build_recipe(data: Mapping[str, Any]) -> RecipeDocument:
    """
    Validate client-supplied data into a RecipeDocument.

    Raises:
        ValidationError: with one message per failing field (→ 400).
    """
    try:
        return RecipeDocument.model_validate(dict(data))
    except PydanticValidationError as e:
        raise ValidationError(
            message="Validation Error",
            errors=format_validation_errors(e),
        )


def load_recipe(raw: Mapping[str, Any]) -> RecipeDocument:
    """
    Parse a document read from MongoDB.

    A stored document failing validation is a data problem, not a client
    error, so it surfaces as DatabaseError (→ 500).
    """
    try:
        return RecipeDocument.model_validate(dict(raw))
    except PydanticValidationError as e:
        logger.error("Malformed recipe document %s: %s", raw.get("_id"), format_validation_errors(e))
        raise DatabaseError(
            message="Could not read the recipe. Please try again later.",
            context={"recipe_id": str(raw.get("_id"))},
        )
