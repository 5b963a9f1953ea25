"""
RecipeShare Backend: Recipe Model Unit Tests
=============================================

Field constraints, camelCase round-trip to storage, and the rating
aggregate (half-up rounding, in-place replacement of a user's rating).
"""

import pytest
from bson import ObjectId

from recipe_api.exceptions import BadRequestError, DatabaseError, ValidationError
from recipe_api.models.ids import is_owner, parse_object_id
from recipe_api.models.recipe import (
    EDITABLE_FIELDS,
    RecipeDocument,
    average_rating,
    build_recipe,
    load_recipe,
)


class TestAverageRating:

    def test_empty_is_zero(self):
        assert average_rating([]) == 0

    def test_mean_of_three(self):
        assert average_rating([5, 4, 3]) == 4.0

    def test_rounds_to_one_decimal(self):
        # 14 / 3 = 4.666...
        assert average_rating([5, 5, 4]) == 4.7

    def test_rounds_half_up(self):
        # 4.25 would round to 4.2 with banker's rounding
        assert average_rating([5, 4, 4, 4]) == 4.3
        assert average_rating([5, 4]) == 4.5


class TestRecipeDocument:

    def test_load_from_stored_document(self, recipe_doc):
        doc = load_recipe(recipe_doc)
        assert doc.id == recipe_doc["_id"]
        assert doc.cooking_time.total_time == 30
        assert doc.diet_type == "Vegetarian"
        assert doc.instructions[0].step_number == 1

    def test_to_mongo_uses_camel_case_and_keeps_object_ids(self, recipe_doc):
        data = load_recipe(recipe_doc).to_mongo()
        assert data["_id"] == recipe_doc["_id"]
        assert isinstance(data["author"], ObjectId)
        assert data["cookingTime"] == {"prep": 10, "cook": 20}
        assert data["dietType"] == "Vegetarian"
        assert "id" not in data
        assert "cooking_time" not in data

    def test_to_mongo_recomputes_aggregates(self, recipe_doc):
        recipe_doc["ratings"] = [
            {"user": ObjectId(), "rating": 5, "comment": ""},
            {"user": ObjectId(), "rating": 2, "comment": ""},
        ]
        recipe_doc["averageRating"] = 0
        data = load_recipe(recipe_doc).to_mongo()
        assert data["averageRating"] == 3.5
        assert data["totalRatings"] == 2

    def test_upsert_rating_appends_new_rater(self, recipe_doc):
        doc = load_recipe(recipe_doc)
        rater = ObjectId()
        doc.upsert_rating(rater, 4, "Nice")
        assert len(doc.ratings) == 1
        assert doc.ratings[0].user == rater
        assert doc.average_rating == 4.0
        assert doc.total_ratings == 1

    def test_upsert_rating_replaces_in_place(self, recipe_doc):
        first, second = ObjectId(), ObjectId()
        doc = load_recipe(recipe_doc)
        doc.upsert_rating(first, 5)
        doc.upsert_rating(second, 3)
        doc.upsert_rating(first, 1, "Changed my mind")

        assert [r.user for r in doc.ratings] == [first, second]
        assert doc.ratings[0].rating == 1
        assert doc.ratings[0].comment == "Changed my mind"
        assert doc.total_ratings == 2
        assert doc.average_rating == 2.0

    def test_version_guard_matches_unversioned_documents(self, recipe_doc):
        recipe_doc.pop("version")
        guard = load_recipe(recipe_doc).version_guard()
        assert guard["_id"] == recipe_doc["_id"]
        assert {"version": {"$exists": False}} in guard["$or"]

    def test_version_guard_pins_version(self, recipe_doc):
        guard = load_recipe(recipe_doc).version_guard()
        assert guard == {"_id": recipe_doc["_id"], "version": 2}

    def test_load_malformed_document_is_database_error(self, recipe_doc):
        del recipe_doc["title"]
        with pytest.raises(DatabaseError):
            load_recipe(recipe_doc)


class TestRecipeValidation:

    def _data(self, recipe_payload, **overrides):
        return {**recipe_payload, "author": ObjectId(), **overrides}

    def test_valid_payload(self, recipe_payload):
        doc = build_recipe(self._data(recipe_payload))
        assert doc.title == "Pasta al limone"
        assert doc.is_public is True
        assert doc.average_rating == 0

    def test_title_is_trimmed(self, recipe_payload):
        doc = build_recipe(self._data(recipe_payload, title="  Soup  "))
        assert doc.title == "Soup"

    def test_numeric_quantity_is_accepted_as_text(self, recipe_payload):
        ingredients = [{"name": "eggs", "quantity": 2, "unit": "pcs"}]
        doc = build_recipe(self._data(recipe_payload, ingredients=ingredients))
        assert doc.ingredients[0].quantity == "2"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("title", "x" * 101),
            ("description", "x" * 501),
            ("servings", 0),
            ("difficulty", "Impossible"),
            ("dietType", "Carnivore"),
            ("calories", 0),
            ("image", ""),
            ("cookingTime", {"prep": 0, "cook": 10}),
        ],
    )
    def test_constraint_violations(self, recipe_payload, field, value):
        with pytest.raises(ValidationError) as exc_info:
            build_recipe(self._data(recipe_payload, **{field: value}))
        assert any(message.startswith(field) for message in exc_info.value.errors)

    def test_missing_required_fields_are_all_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            build_recipe({"author": ObjectId()})
        fields = {message.split(":")[0] for message in exc_info.value.errors}
        assert {"title", "description", "cookingTime", "servings", "image"} <= fields

    def test_blank_tags_are_dropped(self, recipe_payload):
        doc = build_recipe(self._data(recipe_payload, tags=[" quick ", "", "  "]))
        assert doc.tags == ["quick"]

    def test_editable_fields_exclude_server_managed(self):
        assert "title" in EDITABLE_FIELDS
        assert "cookingTime" in EDITABLE_FIELDS
        for field in ("author", "ratings", "averageRating", "totalRatings", "createdAt", "version"):
            assert field not in EDITABLE_FIELDS

    def test_client_cannot_seed_aggregates_through_model(self, recipe_payload):
        doc = build_recipe(self._data(recipe_payload, averageRating=5, totalRatings=9))
        assert doc.to_mongo()["averageRating"] == 0
        assert doc.to_mongo()["totalRatings"] == 0


class TestIds:

    def test_parse_valid_id(self):
        oid = ObjectId()
        assert parse_object_id(str(oid)) == oid

    @pytest.mark.parametrize("value", ["", "abc", "z" * 24, "123"])
    def test_parse_invalid_id(self, value):
        with pytest.raises(BadRequestError, match="Invalid recipe ID format"):
            parse_object_id(value)

    def test_is_owner(self):
        oid = ObjectId()
        assert is_owner(oid, ObjectId(str(oid)))
        assert not is_owner(oid, ObjectId())
        assert not is_owner(oid, str(oid))

    def test_recipe_document_accepts_hex_author(self, recipe_doc):
        recipe_doc["author"] = str(recipe_doc["author"])
        doc = RecipeDocument.model_validate(recipe_doc)
        assert isinstance(doc.author, ObjectId)
