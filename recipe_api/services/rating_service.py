"""
RecipeShare Backend: Rating Service
====================================

What:  Upserts a user's rating on a recipe and keeps the aggregates in sync.
How:   Ratings live inside the recipe document. Each write reads the recipe,
       applies the rating in memory (RecipeDocument.upsert_rating) and
       replaces the document only if its version is unchanged.

Concurrent raters:
    Two users rating the same recipe at once both read version N; only one
    replace matches. The loser re-reads and re-applies its rating (tenacity,
    settings.rating_write_attempts attempts). Unlike a recipe edit, a rating
    does not depend on what the client saw, so retrying is safe.
"""

import logging
from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from recipe_api.config import settings
from recipe_api.database import RECIPES, translate_errors
from recipe_api.exceptions import ConflictError
from recipe_api.models.ids import parse_object_id
from recipe_api.models.recipe import RecipeDocument, utcnow
from recipe_api.schemas.recipe import RecipeOut
from recipe_api.services.recipe_service import find_recipe, populate_recipes

logger = logging.getLogger(__name__)


class StaleWriteError(Exception):
    """The recipe changed between our read and our write."""


class RatingService:

    async def rate_recipe(
        self,
        db: AsyncIOMotorDatabase,
        recipe_id: str,
        rater_id: ObjectId,
        rating: int,
        comment: Optional[str] = None,
    ) -> RecipeOut:
        """
        Insert or replace `rater_id`'s rating.

        Raises:
            BadRequestError:  malformed id
            NotFoundError:    no such recipe
            ConflictError:    still losing the race after every attempt
        """
        oid = parse_object_id(recipe_id)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(settings.rating_write_attempts),
                wait=wait_random(0, 0.05),
                retry=retry_if_exception_type(StaleWriteError),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
                reraise=True,
            ):
                with attempt:
                    document = await self._apply_rating(db, oid, rater_id, rating, comment or "")
        except StaleWriteError:
            logger.warning("Rating on recipe %s kept colliding; giving up", oid)
            raise ConflictError(
                message="Recipe is being rated by others right now. Please try again.",
                context={"recipe_id": recipe_id, "attempts": settings.rating_write_attempts},
            )

        logger.info("User %s rated recipe %s with %d", rater_id, oid, rating)
        return (await populate_recipes(db, [document], raters=True))[0]

    async def _apply_rating(
        self,
        db: AsyncIOMotorDatabase,
        recipe_id: ObjectId,
        rater_id: ObjectId,
        rating: int,
        comment: str,
    ) -> RecipeDocument:
        document = await find_recipe(db, recipe_id)
        guard = document.version_guard()

        document.upsert_rating(rater_id, rating, comment)
        document.version += 1
        document.updated_at = utcnow()

        with translate_errors("rate recipe"):
            result = await db[RECIPES].replace_one(guard, document.to_mongo())
        if result.matched_count == 0:
            raise StaleWriteError()
        return document


rating_service = RatingService()
