"""
RecipeShare Backend: HTTP Route Tests
======================================

End-to-end through the FastAPI app with a mocked database: envelopes,
status codes, camelCase output, path ordering, auth and uploads.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from recipe_api.config import settings
from recipe_api.database import RECIPES, USERS, get_database
from recipe_api.security import create_access_token
from tests.conftest import make_cursor


def field_value(doc, path):
    value = doc
    for part in path.lstrip("$").split("."):
        value = value[part]
    return value


def total_time_matches(expr, doc):
    """Evaluate the `{$lte: [{$add: [...]}, bound]}` expression against a stored document."""
    added, bound = expr["$lte"]
    return sum(field_value(doc, path) for path in added["$add"]) <= bound


class TestListing:

    @pytest.mark.asyncio
    async def test_list_recipes_envelope(self, test_client, mock_db, recipe_doc, author_id):
        mock_db[RECIPES].find.return_value = make_cursor([recipe_doc])
        mock_db[RECIPES].count_documents.return_value = 1
        mock_db[USERS].find.return_value = make_cursor([{"_id": author_id, "username": "chef"}])

        response = await test_client.get("/api/recipes", params={"cuisine": "All", "maxTime": 30})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        recipe = body["data"]["recipes"][0]
        assert recipe["_id"] == str(recipe_doc["_id"])
        assert recipe["totalTime"] == 30
        assert recipe["cookingTime"] == {"prep": 10, "cook": 20}
        assert recipe["dietType"] == "Vegetarian"
        assert recipe["author"]["_id"] == str(author_id)
        assert recipe["author"]["username"] == "chef"
        assert body["data"]["pagination"] == {
            "currentPage": 1,
            "totalPages": 1,
            "totalRecipes": 1,
            "hasNextPage": False,
            "hasPrevPage": False,
        }
        assert response.headers["X-Total-Count"] == "1"
        assert "X-Request-ID" in response.headers

    @pytest.mark.asyncio
    async def test_invalid_sort_is_400(self, test_client):
        response = await test_client.get("/api/recipes", params={"sortBy": "password"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errors"]

    @pytest.mark.asyncio
    async def test_limit_over_maximum_is_400(self, test_client):
        response = await test_client.get("/api/recipes", params={"limit": settings.max_page_size + 1})
        assert response.status_code == 400
        assert response.json()["message"] == "Validation Error"

    @pytest.mark.asyncio
    async def test_popular_is_not_taken_for_an_id(self, test_client):
        response = await test_client.get("/api/recipes/popular")
        assert response.status_code == 200
        assert response.json()["data"] == {"recipes": []}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_time,included", [(25, False), (30, True)])
    async def test_max_time_compares_total_minutes(self, test_client, mock_db, recipe_doc, max_time, included):
        # recipe_doc takes 10 + 20 minutes
        response = await test_client.get("/api/recipes", params={"maxTime": max_time})

        assert response.status_code == 200
        filt = mock_db[RECIPES].find.call_args.args[0]
        assert total_time_matches(filt["$expr"], recipe_doc) is included

    @pytest.mark.asyncio
    async def test_my_recipes(self, test_client, mock_db, author_id):
        response = await test_client.get("/api/recipes/user/my-recipes")
        assert response.status_code == 200
        assert mock_db[RECIPES].find.call_args.args[0] == {"author": author_id}

    @pytest.mark.asyncio
    async def test_my_favorites(self, test_client, mock_db, author_id):
        mock_db[USERS].find_one.return_value = {"_id": author_id, "favoriteRecipes": []}
        response = await test_client.get("/api/recipes/user/favorites")
        assert response.status_code == 200
        assert response.json()["data"]["pagination"]["totalRecipes"] == 0


class TestSingleRecipe:

    @pytest.mark.asyncio
    async def test_get_malformed_id(self, test_client):
        response = await test_client.get("/api/recipes/not-an-id")
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid recipe ID format"}

    @pytest.mark.asyncio
    async def test_get_missing(self, test_client):
        response = await test_client.get(f"/api/recipes/{ObjectId()}")
        assert response.status_code == 404
        assert response.json()["message"] == "Recipe not found"

    @pytest.mark.asyncio
    async def test_create_json(self, test_client, mock_db, recipe_payload):
        mock_db[RECIPES].insert_one.return_value = MagicMock(inserted_id=ObjectId())

        response = await test_client.post("/api/recipes", json=recipe_payload)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Recipe created successfully"
        assert body["data"]["recipe"]["title"] == "Pasta al limone"
        assert body["data"]["recipe"]["averageRating"] == 0

    @pytest.mark.asyncio
    async def test_create_multipart_with_image(self, test_client, mock_db, sample_image_bytes):
        mock_db[RECIPES].insert_one.return_value = MagicMock(inserted_id=ObjectId())
        form = {
            "title": "Toast",
            "description": "Bread, toasted",
            "ingredients": '[{"name": "bread", "quantity": "1", "unit": "slice"}]',
            "instructions": '[{"stepNumber": 1, "instruction": "Toast it"}]',
            "cookingTime": '{"prep": 1, "cook": 3}',
            "servings": "1",
            "difficulty": "Easy",
            "cuisine": "British",
            "dietType": "Vegan",
        }

        response = await test_client.post(
            "/api/recipes",
            data=form,
            files={"image": ("toast.jpg", sample_image_bytes, "image/jpeg")},
        )

        assert response.status_code == 201
        image = response.json()["data"]["recipe"]["image"]
        assert image.startswith("/uploads/") and image.endswith(".jpg")
        stored = Path(settings.storage_root).resolve() / image.rsplit("/", 1)[1]
        assert stored.read_bytes() == sample_image_bytes

        served = await test_client.get(image)
        assert served.status_code == 200
        assert served.content == sample_image_bytes

    @pytest.mark.asyncio
    async def test_oversized_upload_is_rejected(self, test_client, mock_db, sample_image_bytes):
        with patch.object(settings, "max_file_size", 10):
            response = await test_client.post(
                "/api/recipes",
                data={"title": "Toast"},
                files={"image": ("toast.jpg", sample_image_bytes, "image/jpeg")},
            )

        assert response.status_code == 400
        assert "exceeds maximum" in response.json()["message"]
        mock_db[RECIPES].insert_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_with_image_name_but_text_content(self, test_client, mock_db):
        response = await test_client.post(
            "/api/recipes",
            data={"title": "Toast"},
            files={"image": ("toast.jpg", b"just some text, not a picture\n" * 3, "image/jpeg")},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Only image files are allowed!"
        mock_db[RECIPES].insert_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_invalid_recipe(self, test_client):
        response = await test_client.post("/api/recipes", json={"title": "Only a title"})
        assert response.status_code == 400
        body = response.json()
        assert body["message"] == "Validation Error"
        assert any(e.startswith("servings") for e in body["errors"])

    @pytest.mark.asyncio
    async def test_create_broken_form_json(self, test_client):
        response = await test_client.post("/api/recipes", data={"title": "x", "ingredients": "[oops"})
        assert response.status_code == 400
        assert "ingredients" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_update_by_non_owner_is_403(self, test_client, mock_db, recipe_doc):
        recipe_doc["author"] = ObjectId()
        mock_db[RECIPES].find_one.return_value = recipe_doc
        response = await test_client.put(f"/api/recipes/{recipe_doc['_id']}", json={"title": "Mine now"})
        assert response.status_code == 403
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_update_conflict_is_409(self, test_client, mock_db, recipe_doc):
        mock_db[RECIPES].find_one.return_value = recipe_doc
        mock_db[RECIPES].replace_one.return_value = MagicMock(matched_count=0)
        response = await test_client.put(f"/api/recipes/{recipe_doc['_id']}", json={"title": "Edited"})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_delete(self, test_client, mock_db, recipe_doc):
        recipe_doc["image"] = "https://images.example.com/dish.jpg"
        mock_db[RECIPES].find_one.return_value = recipe_doc
        response = await test_client.delete(f"/api/recipes/{recipe_doc['_id']}")
        assert response.status_code == 200
        assert response.json()["message"] == "Recipe deleted successfully"


class TestRatingsAndFavorites:

    @pytest.mark.asyncio
    async def test_rate(self, test_client, mock_db, recipe_doc):
        mock_db[RECIPES].find_one.return_value = recipe_doc
        response = await test_client.post(
            f"/api/recipes/{recipe_doc['_id']}/rate", json={"rating": 5, "comment": "Superb"}
        )
        assert response.status_code == 200
        recipe = response.json()["data"]["recipe"]
        assert recipe["averageRating"] == 5.0
        assert recipe["totalRatings"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"rating": 0}, {"rating": 6}, {"rating": 3, "comment": "x" * 201}, {}])
    async def test_rate_invalid_body(self, test_client, recipe_doc, body):
        response = await test_client.post(f"/api/recipes/{recipe_doc['_id']}/rate", json=body)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_add_and_remove_favorite(self, test_client, mock_db):
        recipe_id = ObjectId()
        mock_db[RECIPES].count_documents.return_value = 1

        added = await test_client.post(f"/api/recipes/{recipe_id}/favorite")
        removed = await test_client.delete(f"/api/recipes/{recipe_id}/favorite")

        assert added.status_code == 200
        assert added.json() == {"success": True, "message": "Recipe added to favorites"}
        assert removed.status_code == 200

    @pytest.mark.asyncio
    async def test_duplicate_favorite_is_409(self, test_client, mock_db):
        mock_db[RECIPES].count_documents.return_value = 1
        mock_db[USERS].update_one.return_value = MagicMock(modified_count=0)
        response = await test_client.post(f"/api/recipes/{ObjectId()}/favorite")
        assert response.status_code == 409
        assert response.json()["message"] == "Recipe already in favorites"


class TestAuthAndInfrastructure:

    @pytest_asyncio.fixture
    async def anonymous_client(self, mock_db):
        from recipe_api.main import create_app

        app = create_app()
        app.dependency_overrides[get_database] = lambda: mock_db
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client

    @pytest.mark.asyncio
    async def test_create_requires_token(self, anonymous_client, recipe_payload):
        response = await anonymous_client.post("/api/recipes", json=recipe_payload)
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {"success": False, "message": "Not authorized, no token provided"}

    @pytest.mark.asyncio
    async def test_public_read_needs_no_token(self, anonymous_client):
        response = await anonymous_client.get("/api/recipes")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_reports_database_down(self, anonymous_client):
        response = await anonymous_client.get("/api/health")
        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"

    @pytest.mark.asyncio
    async def test_missing_upload_is_404(self, anonymous_client):
        response = await anonymous_client.get("/uploads/does-not-exist.jpg")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_api_route_uses_envelope(self, anonymous_client):
        response = await anonymous_client.get("/api/nope")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "API route not found"}

    @pytest.mark.asyncio
    async def test_unknown_route_outside_api(self, anonymous_client):
        response = await anonymous_client.get("/nope")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Route not found"}

    @pytest.mark.asyncio
    async def test_wrong_method_uses_envelope(self, anonymous_client):
        response = await anonymous_client.patch("/api/recipes")
        assert response.status_code == 405
        assert response.json() == {"success": False, "message": "Method not allowed"}
        assert "GET" in response.headers["Allow"]

    @pytest.mark.asyncio
    async def test_malformed_user_document_is_server_error(self, anonymous_client, mock_db):
        user_id = ObjectId()
        mock_db[USERS].find_one.return_value = {"_id": user_id, "favoriteRecipes": ["not-an-id"]}

        response = await anonymous_client.get(
            "/api/recipes/user/my-recipes",
            headers={"Authorization": f"Bearer {create_access_token(user_id)}"},
        )

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["message"] != "Validation Error"

    @pytest.mark.asyncio
    async def test_rate_limit(self, mock_db):
        from recipe_api.main import create_app

        with patch.object(settings, "rate_limit_requests", 2):
            app = create_app()
            app.dependency_overrides[get_database] = lambda: mock_db
            async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
                first = await client.get("/api/recipes/popular")
                second = await client.get("/api/recipes/popular")
                third = await client.get("/api/recipes/popular")

        assert first.status_code == second.status_code == 200
        assert third.status_code == 429
        assert int(third.headers["Retry-After"]) > 0
        assert third.json()["success"] is False
