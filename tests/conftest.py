"""
RecipeShare Backend: Test Configuration (conftest.py)
======================================================

Shared fixtures. No MongoDB is needed: Motor collections and cursors are
replaced with AsyncMock/MagicMock objects that answer the calls the
services make.

Fixtures:
    mock_db          database whose db["recipes"] / db["users"] are mocks
    author_id        ObjectId of the recipe author
    other_user_id    ObjectId of a second user
    recipe_doc       a stored recipe document (camelCase dict)
    recipe_payload   a valid create payload
    temp_storage     temporary directory for file operations
    sample_image_bytes
    current_user     CurrentUser for the author
    test_client      httpx AsyncClient on a fresh app with db/auth overridden
"""

import os
import tempfile

# Settings are read at import time, so the environment comes first
os.environ["MONGODB_URL"] = "mongodb://localhost:27017"
os.environ["MONGODB_DB_NAME"] = "recipe_share_test"
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="recipeshare_test_")
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from recipe_api.database import RECIPES, USERS, get_database
from recipe_api.models.user import CurrentUser
from recipe_api.security import get_current_user


def make_cursor(docs: Optional[List[Dict[str, Any]]] = None) -> MagicMock:
    """A Motor cursor stand-in: chainable sort/skip/limit, awaitable to_list."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(docs or []))
    return cursor


def make_collection() -> MagicMock:
    collection = MagicMock()
    collection.find = MagicMock(return_value=make_cursor())
    collection.find_one = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.insert_one = AsyncMock()
    collection.replace_one = AsyncMock(return_value=MagicMock(matched_count=1))
    collection.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
    collection.update_many = AsyncMock(return_value=MagicMock(modified_count=0))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    return collection


@pytest.fixture
def mock_db():
    """
    Mock database handle.

    Usage:
        mock_db[RECIPES].find_one.return_value = recipe_doc
        await recipe_service.get_recipe(mock_db, str(recipe_doc["_id"]))
    """
    collections = {RECIPES: make_collection(), USERS: make_collection()}
    db = MagicMock()
    db.__getitem__.side_effect = collections.__getitem__
    return db


@pytest.fixture
def author_id():
    return ObjectId()


@pytest.fixture
def other_user_id():
    return ObjectId()


@pytest.fixture
def recipe_doc(author_id):
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return {
        "_id": ObjectId(),
        "title": "Shakshuka",
        "description": "Eggs poached in a spiced tomato sauce",
        "ingredients": [
            {"name": "eggs", "quantity": "4", "unit": "pcs"},
            {"name": "tomatoes", "quantity": "400", "unit": "g"},
        ],
        "instructions": [
            {"stepNumber": 1, "instruction": "Simmer the sauce"},
            {"stepNumber": 2, "instruction": "Crack in the eggs"},
        ],
        "cookingTime": {"prep": 10, "cook": 20},
        "servings": 2,
        "difficulty": "Easy",
        "cuisine": "Middle Eastern",
        "dietType": "Vegetarian",
        "calories": 320,
        "image": "/uploads/shakshuka.jpg",
        "author": author_id,
        "ratings": [],
        "averageRating": 0,
        "totalRatings": 0,
        "isPublic": True,
        "tags": ["brunch"],
        "nutritionalInfo": {"protein": 18},
        "createdAt": now,
        "updatedAt": now,
        "version": 2,
    }


@pytest.fixture
def recipe_payload():
    return {
        "title": "Pasta al limone",
        "description": "Lemon, butter and parmesan",
        "ingredients": [{"name": "spaghetti", "quantity": "200", "unit": "g"}],
        "instructions": [{"stepNumber": 1, "instruction": "Boil the pasta"}],
        "cookingTime": {"prep": 5, "cook": 12},
        "servings": 2,
        "difficulty": "Easy",
        "cuisine": "Italian",
        "dietType": "Vegetarian",
        "image": "https://images.example.com/pasta.jpg",
    }


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_image_bytes():
    """Smallest JPEG: SOI + JFIF header + EOI."""
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


@pytest.fixture
def current_user(author_id):
    return CurrentUser(id=author_id, username="chef")


@pytest_asyncio.fixture
async def test_client(mock_db, current_user):
    """
    HTTP client for a fresh app. The lifespan does not run, so no MongoDB
    connection is attempted; the database and caller come from overrides.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/api/recipes/popular")
    """
    from recipe_api.main import create_app

    app = create_app()
    app.dependency_overrides[get_database] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
