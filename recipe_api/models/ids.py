"""
RecipeShare Backend: Document Identifiers
==========================================

What:  The ObjectId type used by every document model, plus the helpers that
       turn untrusted text into ids and compare ownership.
How:   `PyObjectId` is an Annotated ObjectId: it validates from ObjectId or
       24-hex strings, stays an ObjectId in python-mode dumps (what Motor
       stores), and becomes a plain string in JSON-mode dumps.

Ids arrive over HTTP as text exactly once (path parameters, JWT `sub`).
They are parsed at that edge with `parse_object_id`; everything below the
routes works with ObjectId values and compares them with `is_owner`.
"""

from typing import Annotated, Any

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import PlainSerializer, PlainValidator, WithJsonSchema

from recipe_api.exceptions import BadRequestError


def _validate_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValueError(f"'{value}' is not a valid ObjectId")


PyObjectId = Annotated[
    ObjectId,
    PlainValidator(_validate_object_id),
    PlainSerializer(str, return_type=str, when_used="json"),
    WithJsonSchema({"type": "string", "pattern": "^[0-9a-f]{24}$"}),
]


def parse_object_id(value: str, resource: str = "recipe") -> ObjectId:
    """
    Parse an id received over HTTP.

    Raises:
        BadRequestError: `value` is not a 24-character hex ObjectId.
    """
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise BadRequestError(
            message=f"Invalid {resource} ID format",
            field="id",
            context={"value": str(value)[:64]},
        )


def is_owner(owner_id: ObjectId, caller_id: ObjectId) -> bool:
    """Explicit identity comparison between a document's owner and the caller."""
    return isinstance(owner_id, ObjectId) and isinstance(caller_id, ObjectId) and owner_id == caller_id
