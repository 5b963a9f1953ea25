"""
RecipeShare Backend: Recipe Service
====================================

What:  Recipe CRUD, listing/filtering/search and author population.
How:   Stateless service; every method receives the Motor database handle
       from the route (Depends(get_database)) so tests can pass a mock.
Who:   routes/recipes.py; RatingService and FavoriteService reuse the query
       and population helpers defined here.

Authorization:
    update/delete load the recipe first and compare its author with the
    caller before the payload is even decoded, so a non-owner always gets
    403 regardless of what they sent.

Concurrency:
    Updates are read-modify-write. The write only succeeds if the document's
    `version` is unchanged since the read; otherwise ConflictError (409) and
    the client reloads. Nothing is retried here because the payload was
    built from what the client saw, which is now stale.

Images:
    A client may set `image` to an external URL, never to a path under the
    uploads prefix. Every `/uploads/...` value on a recipe therefore points
    at a file that recipe stored itself, and only those are ever deleted.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING

from recipe_api.config import settings
from recipe_api.database import RECIPES, USERS, translate_errors
from recipe_api.exceptions import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from recipe_api.models.ids import is_owner, parse_object_id
from recipe_api.models.recipe import (
    EDITABLE_FIELDS,
    RecipeDocument,
    build_recipe,
    format_validation_errors,
    load_recipe,
    utcnow,
)
from recipe_api.models.user import AUTHOR_DETAIL_PROJECTION, AUTHOR_PROJECTION, UserSummary
from recipe_api.schemas.recipe import RecipeOut, RecipeQuery
from recipe_api.services.file_service import ImageUpload, file_service
from recipe_api.services.form_decoding import decode_structured_fields
from recipe_api.services.pagination import PaginationMeta, page_skip

logger = logging.getLogger(__name__)

# Filter value meaning "do not filter on this field"
ALL = "All"

SORTABLE_FIELDS = {
    "createdAt",
    "updatedAt",
    "title",
    "averageRating",
    "totalRatings",
    "calories",
    "servings",
    "cookingTime.prep",
    "cookingTime.cook",
}

SORT_ORDERS = {"asc": ASCENDING, "desc": DESCENDING}

POPULAR_SORT = [("averageRating", DESCENDING), ("totalRatings", DESCENDING), ("_id", DESCENDING)]
NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


# ══════════════════════════════════════════════════════════════════════════
# Query Building
# ══════════════════════════════════════════════════════════════════════════


def build_recipe_filter(query: RecipeQuery) -> Dict[str, Any]:
    """
    Translate list filters into a Mongo filter over public recipes.

    maxTime compares prep + cook, which is not a stored field, so it is
    evaluated server-side with $expr. Search text is escaped and matched as
    a case-insensitive literal substring.
    """
    filt: Dict[str, Any] = {"isPublic": True}

    for key, value in (
        ("cuisine", query.cuisine),
        ("dietType", query.diet_type),
        ("difficulty", query.difficulty),
    ):
        if value and value != ALL:
            filt[key] = value

    if query.min_rating is not None:
        filt["averageRating"] = {"$gte": query.min_rating}
    if query.max_calories is not None:
        filt["calories"] = {"$lte": query.max_calories}
    if query.max_time is not None:
        filt["$expr"] = {
            "$lte": [{"$add": ["$cookingTime.prep", "$cookingTime.cook"]}, query.max_time]
        }

    search = (query.search or "").strip()
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [
            {"title": pattern},
            {"description": pattern},
            {"ingredients.name": pattern},
            {"tags": pattern},
        ]

    return filt


def build_sort(sort_by: str, sort_order: str) -> List[Tuple[str, int]]:
    """Sort order with `_id` as tie-breaker so pages never overlap."""
    errors = []
    if sort_by not in SORTABLE_FIELDS:
        errors.append(f"sortBy: must be one of {', '.join(sorted(SORTABLE_FIELDS))}")
    if sort_order not in SORT_ORDERS:
        errors.append("sortOrder: must be 'asc' or 'desc'")
    if errors:
        raise ValidationError(
            message="Invalid sort parameters",
            errors=errors,
            context={"sort_by": sort_by, "sort_order": sort_order},
        )
    direction = SORT_ORDERS[sort_order]
    return [(sort_by, direction), ("_id", direction)]


# ══════════════════════════════════════════════════════════════════════════
# Shared Helpers (also used by rating and favorite services)
# ══════════════════════════════════════════════════════════════════════════


async def fetch_recipe_page(
    db: AsyncIOMotorDatabase,
    filt: Dict[str, Any],
    sort: List[Tuple[str, int]],
    page: int,
    limit: int,
) -> Tuple[List[RecipeDocument], int]:
    """One page of matching recipes plus the total match count, fetched concurrently."""
    collection = db[RECIPES]
    with translate_errors("list recipes"):
        cursor = collection.find(filt).sort(sort).skip(page_skip(page, limit)).limit(limit)
        raw, total = await asyncio.gather(
            cursor.to_list(length=limit),
            collection.count_documents(filt),
        )
    return [load_recipe(doc) for doc in raw], total


async def fetch_user_summaries(
    db: AsyncIOMotorDatabase,
    user_ids: Iterable[ObjectId],
    projection: Mapping[str, int],
) -> Dict[ObjectId, UserSummary]:
    ids = list({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    with translate_errors("load users"):
        raw = await db[USERS].find({"_id": {"$in": ids}}, dict(projection)).to_list(length=len(ids))
    try:
        return {user["_id"]: UserSummary.model_validate(user) for user in raw}
    except PydanticValidationError as e:
        logger.error("Malformed user document: %s", format_validation_errors(e))
        raise DatabaseError(message="Could not load recipe authors. Please try again later.")


async def populate_recipes(
    db: AsyncIOMotorDatabase,
    docs: List[RecipeDocument],
    author_detail: bool = False,
    raters: bool = False,
) -> List[RecipeOut]:
    """
    Replace author ids (and optionally rater ids) with user summaries.

    One `$in` query per reference kind, whatever the number of recipes.
    """
    authors = await fetch_user_summaries(
        db,
        (doc.author for doc in docs),
        AUTHOR_DETAIL_PROJECTION if author_detail else AUTHOR_PROJECTION,
    )
    rater_map = None
    if raters:
        rater_map = await fetch_user_summaries(
            db,
            (r.user for doc in docs for r in doc.ratings),
            AUTHOR_PROJECTION,
        )
    return [RecipeOut.from_document(doc, authors, rater_map) for doc in docs]


async def find_recipe(db: AsyncIOMotorDatabase, recipe_id: ObjectId) -> RecipeDocument:
    """Load one recipe or raise NotFoundError."""
    with translate_errors("get recipe"):
        raw = await db[RECIPES].find_one({"_id": recipe_id})
    if raw is None:
        raise NotFoundError(resource="recipe", resource_id=str(recipe_id))
    return load_recipe(raw)


def editable_updates(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only author-editable keys; everything else in a payload is ignored."""
    decoded = decode_structured_fields(fields)
    return {key: value for key, value in decoded.items() if key in EDITABLE_FIELDS}


def check_client_image(updates: Mapping[str, Any], current_image: Optional[str] = None) -> None:
    """
    Refuse a client-set `image` that points into our upload storage.

    Stored files only get there through an upload; otherwise one author could
    claim another recipe's file and have it deleted with their own recipe.
    Sending back the recipe's current value unchanged is fine.
    """
    image = updates.get("image")
    if not isinstance(image, str) or image == current_image:
        return
    if image.strip().startswith(settings.uploads_url_prefix.rstrip("/") + "/"):
        raise ValidationError(
            message="Validation Error",
            errors=["image: stored images can only be set by uploading a file"],
            field="image",
        )


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════


class RecipeService:
    """Recipe CRUD and listing."""

    async def create_recipe(
        self,
        db: AsyncIOMotorDatabase,
        author_id: ObjectId,
        fields: Mapping[str, Any],
        image: Optional[ImageUpload] = None,
    ) -> RecipeOut:
        """
        Create a recipe owned by `author_id`.

        Raises:
            BadRequestError:  a structured form field holds broken JSON
            ValidationError:  schema violations, or a rejected image
        """
        payload = editable_updates(fields)
        stored_path = None
        try:
            if image is not None:
                stored_path, payload["image"] = await file_service.validate_and_store(image)
            else:
                check_client_image(payload)
                payload["image"] = payload.get("image") or ""

            now = utcnow()
            document = build_recipe(
                {**payload, "author": author_id, "createdAt": now, "updatedAt": now}
            )
            with translate_errors("create recipe"):
                result = await db[RECIPES].insert_one(document.to_mongo())
            document.id = result.inserted_id
        except Exception:
            if stored_path:
                await file_service.cleanup_file(stored_path)
            raise

        logger.info("Recipe %s created by %s", document.id, author_id)
        return (await populate_recipes(db, [document]))[0]

    async def list_recipes(
        self, db: AsyncIOMotorDatabase, query: RecipeQuery
    ) -> Tuple[List[RecipeOut], PaginationMeta]:
        filt = build_recipe_filter(query)
        sort = build_sort(query.sort_by, query.sort_order)
        docs, total = await fetch_recipe_page(db, filt, sort, query.page, query.limit)
        recipes = await populate_recipes(db, docs)
        return recipes, PaginationMeta.build(query.page, query.limit, total)

    async def popular_recipes(self, db: AsyncIOMotorDatabase, limit: int) -> List[RecipeOut]:
        docs, _ = await fetch_recipe_page(db, {"isPublic": True}, POPULAR_SORT, 1, limit)
        return await populate_recipes(db, docs)

    async def get_recipe(self, db: AsyncIOMotorDatabase, recipe_id: str) -> RecipeOut:
        oid = parse_object_id(recipe_id)
        document = await find_recipe(db, oid)
        return (await populate_recipes(db, [document], author_detail=True, raters=True))[0]

    async def list_author_recipes(
        self,
        db: AsyncIOMotorDatabase,
        author_id: ObjectId,
        page: int,
        limit: int,
    ) -> Tuple[List[RecipeOut], PaginationMeta]:
        """The caller's own recipes, private ones included."""
        docs, total = await fetch_recipe_page(db, {"author": author_id}, NEWEST_FIRST, page, limit)
        recipes = await populate_recipes(db, docs)
        return recipes, PaginationMeta.build(page, limit, total)

    async def update_recipe(
        self,
        db: AsyncIOMotorDatabase,
        recipe_id: str,
        user_id: ObjectId,
        fields: Mapping[str, Any],
        image: Optional[ImageUpload] = None,
    ) -> RecipeOut:
        """
        Apply an author's partial update.

        Raises:
            BadRequestError / NotFoundError / ForbiddenError, in that order
            ValidationError:  the merged recipe is invalid
            ConflictError:    the recipe changed since it was read
        """
        oid = parse_object_id(recipe_id)
        current = await find_recipe(db, oid)
        if not is_owner(current.author, user_id):
            raise ForbiddenError(
                message="Not authorized to update this recipe",
                context={"recipe_id": recipe_id, "user_id": str(user_id)},
            )

        updates = editable_updates(fields)
        stored_path = None
        try:
            if image is not None:
                stored_path, updates["image"] = await file_service.validate_and_store(image)
            else:
                check_client_image(updates, current.image)

            merged = current.model_dump(by_alias=True)
            merged.update(updates)
            merged["updatedAt"] = utcnow()
            merged["version"] = current.version + 1
            updated = build_recipe(merged)

            with translate_errors("update recipe"):
                result = await db[RECIPES].replace_one(current.version_guard(), updated.to_mongo())
            if result.matched_count == 0:
                raise ConflictError(
                    message="Recipe was modified by another request. Reload and try again.",
                    context={"recipe_id": recipe_id, "version": current.version},
                )
        except Exception:
            if stored_path:
                await file_service.cleanup_file(stored_path)
            raise

        if current.image != updated.image:
            # The old value is either an external URL or a file this recipe stored
            await file_service.cleanup_public_path(current.image)

        logger.info("Recipe %s updated by %s (version %d)", oid, user_id, updated.version)
        return (await populate_recipes(db, [updated]))[0]

    async def delete_recipe(self, db: AsyncIOMotorDatabase, recipe_id: str, user_id: ObjectId) -> None:
        """
        Permanently delete an author's recipe.

        Also pulls it from every user's favorites and removes its stored image.
        """
        oid = parse_object_id(recipe_id)
        current = await find_recipe(db, oid)
        if not is_owner(current.author, user_id):
            raise ForbiddenError(
                message="Not authorized to delete this recipe",
                context={"recipe_id": recipe_id, "user_id": str(user_id)},
            )

        with translate_errors("delete recipe"):
            await db[RECIPES].delete_one({"_id": oid})
            pulled = await db[USERS].update_many(
                {"favoriteRecipes": oid},
                {"$pull": {"favoriteRecipes": oid}},
            )

        await file_service.cleanup_public_path(current.image)
        logger.info(
            "Recipe %s deleted by %s (removed from %d favorite lists)",
            oid, user_id, pulled.modified_count,
        )


recipe_service = RecipeService()
