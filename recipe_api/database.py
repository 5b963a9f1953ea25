"""
RecipeShare Backend: MongoDB Connection Management
===================================================

What:  Owns the process-wide Motor client, exposes the database handle as a
       FastAPI dependency, and creates the collection indexes.
How:   The lifespan handler calls `mongo.connect()` once at startup and
       `mongo.close()` on shutdown. Route handlers receive the handle through
       `Depends(get_database)` and pass it into the service layer.
Who:   main.py (lifespan), routes (dependency), services (receive `db`).

Connection Strategy:
    One AsyncIOMotorClient per process. The client keeps its own connection
    pool, so handlers share it instead of opening connections per request.
    The startup ping is retried with exponential backoff because Mongo
    commonly starts after the API container in docker-compose setups.

Collections:
    recipes  - owned by this service
    users    - owned by the external auth service; we read profile fields
               and read/write `favoriteRecipes`
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, TEXT
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError, PyMongoError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from recipe_api.config import settings
from recipe_api.exceptions import DatabaseError, DuplicateKeyError

logger = logging.getLogger(__name__)

RECIPES = "recipes"
USERS = "users"


class MongoConnection:
    """
    Holder for the Motor client and the selected database.

    Kept as an object (not bare module globals) so tests can build their own
    instance, and so `get_database` has a single place to fail from when
    the lifespan has not run.
    """

    def __init__(self) -> None:
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(
        self,
        url: Optional[str] = None,
        db_name: Optional[str] = None,
    ) -> AsyncIOMotorDatabase:
        """
        Create the client and verify the server answers a ping.

        Retries:  settings.mongodb_connect_attempts, exponential backoff + jitter.
        Raises:   DatabaseError once every attempt has failed.
        """
        if self.db is not None:
            return self.db

        self.client = AsyncIOMotorClient(
            url or settings.mongodb_url,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
            tz_aware=True,
        )
        db = self.client[db_name or settings.mongodb_db_name]

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(settings.mongodb_connect_attempts),
                wait=wait_exponential_jitter(initial=1, max=10),
                retry=retry_if_exception_type(PyMongoError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    await db.command("ping")
        except PyMongoError as e:
            self.client.close()
            self.client = None
            logger.error("MongoDB unreachable after %d attempts: %s",
                         settings.mongodb_connect_attempts, str(e))
            raise DatabaseError(
                message="Could not connect to the database.",
                context={"error_type": type(e).__name__},
            )

        self.db = db
        logger.info("Connected to MongoDB database '%s'", db.name)
        return db

    async def close(self) -> None:
        """Close the client and forget the handle. Safe to call twice."""
        if self.client is not None:
            self.client.close()
        self.client = None
        self.db = None

    async def ping(self) -> bool:
        """Lightweight connectivity check for /api/health."""
        if self.db is None:
            return False
        try:
            await self.db.command("ping")
            return True
        except PyMongoError as e:
            logger.warning("MongoDB ping failed: %s", str(e))
            return False


# Process-wide connection, populated by the app lifespan
mongo = MongoConnection()


def get_database() -> AsyncIOMotorDatabase:
    """
    FastAPI dependency returning the active database handle.

    Raises:
        DatabaseError: the lifespan has not connected yet (or failed to).
    """
    if mongo.db is None:
        raise DatabaseError(
            message="Database is not available. Please try again later.",
            context={"reason": "not_initialized"},
        )
    return mongo.db


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """
    Create the indexes the recipe queries rely on. Idempotent.

    Index inventory:
        text(title, description, ingredients.name)  full-text lookups
        cuisine + dietType + difficulty             list filters
        averageRating desc, totalRatings desc       popular recipes
        createdAt desc                              default list order
        author + createdAt desc                     "my recipes"
    """
    recipes = db[RECIPES]
    await recipes.create_index(
        [("title", TEXT), ("description", TEXT), ("ingredients.name", TEXT)],
        name="recipe_text_search",
    )
    await recipes.create_index(
        [("cuisine", ASCENDING), ("dietType", ASCENDING), ("difficulty", ASCENDING)]
    )
    await recipes.create_index([("averageRating", DESCENDING), ("totalRatings", DESCENDING)])
    await recipes.create_index([("createdAt", DESCENDING)])
    await recipes.create_index([("author", ASCENDING), ("createdAt", DESCENDING)])
    logger.info("Recipe indexes ensured")


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """
    Convert driver exceptions raised inside the block into domain errors.

        pymongo DuplicateKeyError → DuplicateKeyError (409, field from keyValue)
        any other PyMongoError    → DatabaseError (500, driver message logged only)
    """
    try:
        yield
    except MongoDuplicateKeyError as e:
        key_value = (e.details or {}).get("keyValue") or {}
        field = next(iter(key_value), "value")
        logger.warning("Duplicate key during %s: %s", operation, field)
        raise DuplicateKeyError(field=field, context={"operation": operation})
    except PyMongoError as e:
        logger.error("Database error during %s: %s", operation, str(e))
        raise DatabaseError(
            context={"operation": operation, "error_type": type(e).__name__},
        )
