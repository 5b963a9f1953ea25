"""
RecipeShare Backend: Favorite Service
======================================

Favorites are stored on the user (`users.favoriteRecipes`, an array of
recipe ids). Adds and removes are single atomic update operators, so
concurrent requests from the same user can never create duplicates.

Deleting a recipe pulls it from every favorites list, and listing only
resolves ids that still exist, so a dangling id never shows up.
"""

import logging
from typing import List, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from recipe_api.database import RECIPES, USERS, translate_errors
from recipe_api.exceptions import ConflictError, NotFoundError
from recipe_api.models.ids import parse_object_id
from recipe_api.schemas.recipe import RecipeOut
from recipe_api.services.pagination import PaginationMeta
from recipe_api.services.recipe_service import NEWEST_FIRST, fetch_recipe_page, populate_recipes

logger = logging.getLogger(__name__)


class FavoriteService:

    async def add_favorite(self, db: AsyncIOMotorDatabase, user_id: ObjectId, recipe_id: str) -> None:
        """
        Raises:
            BadRequestError:  malformed id
            NotFoundError:    no such recipe
            ConflictError:    already a favorite
        """
        oid = parse_object_id(recipe_id)
        with translate_errors("add favorite"):
            exists = await db[RECIPES].count_documents({"_id": oid}, limit=1)
            if not exists:
                raise NotFoundError(resource="recipe", resource_id=recipe_id)
            result = await db[USERS].update_one(
                {"_id": user_id, "favoriteRecipes": {"$ne": oid}},
                {"$push": {"favoriteRecipes": oid}},
            )
        if result.modified_count == 0:
            raise ConflictError(
                message="Recipe already in favorites",
                context={"recipe_id": recipe_id, "user_id": str(user_id)},
            )
        logger.info("User %s added favorite %s", user_id, oid)

    async def remove_favorite(self, db: AsyncIOMotorDatabase, user_id: ObjectId, recipe_id: str) -> None:
        """Idempotent: removing a recipe that is not a favorite succeeds."""
        oid = parse_object_id(recipe_id)
        with translate_errors("remove favorite"):
            await db[USERS].update_one({"_id": user_id}, {"$pull": {"favoriteRecipes": oid}})
        logger.info("User %s removed favorite %s", user_id, oid)

    async def list_favorites(
        self,
        db: AsyncIOMotorDatabase,
        user_id: ObjectId,
        page: int,
        limit: int,
    ) -> Tuple[List[RecipeOut], PaginationMeta]:
        with translate_errors("list favorites"):
            user = await db[USERS].find_one({"_id": user_id}, {"favoriteRecipes": 1})
        favorite_ids = (user or {}).get("favoriteRecipes") or []

        # Resolving through the recipes collection drops ids of deleted recipes
        docs, total = await fetch_recipe_page(
            db, {"_id": {"$in": favorite_ids}}, NEWEST_FIRST, page, limit
        )
        recipes = await populate_recipes(db, docs)
        return recipes, PaginationMeta.build(page, limit, total)


favorite_service = FavoriteService()
