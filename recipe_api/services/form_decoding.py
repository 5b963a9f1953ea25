"""
RecipeShare Backend: Structured Form Field Decoding
====================================================

Multipart forms can only carry text, so clients that upload an image send
the nested recipe fields as JSON text:

    ingredients     = '[{"name": "eggs", "quantity": "4", "unit": "pcs"}]'
    cookingTime     = '{"prep": 10, "cook": 20}'

JSON bodies carry the same fields as real structures. `decode_structured_fields`
accepts both and hands the service one uniform mapping.
"""

import json
from typing import Any, Dict, Mapping

from recipe_api.exceptions import BadRequestError

STRUCTURED_FIELDS = ("ingredients", "instructions", "tags", "nutritionalInfo", "cookingTime")

# Optional scalars where an empty form input means "no value"
NULLABLE_FIELDS = ("calories",)


def decode_structured_field(name: str, value: Any) -> Any:
    """
    Decode one field: JSON text is parsed, anything else is returned as-is.

    Raises:
        BadRequestError: `value` is text but not valid JSON.
    """
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        raise BadRequestError(
            message=f"Invalid JSON in field '{name}'",
            field=name,
            context={"preview": value[:80]},
        )


def decode_structured_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    decoded = dict(fields)
    for name in STRUCTURED_FIELDS:
        if name in decoded:
            decoded[name] = decode_structured_field(name, decoded[name])
    for name in NULLABLE_FIELDS:
        if decoded.get(name) == "":
            decoded[name] = None
    return decoded
