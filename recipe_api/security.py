"""
RecipeShare Backend: Bearer Token Authentication
=================================================

Tokens are issued by the authentication service and shared with us through
JWT_SECRET. Each request carries `Authorization: Bearer <jwt>`; the token's
`sub` claim is the user's ObjectId as hex text. A request authenticates only
if the signature verifies, the token has not expired and the user still
exists in the `users` collection.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from bson import ObjectId
from fastapi import Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError as PydanticValidationError

from recipe_api.config import settings
from recipe_api.database import USERS, get_database, translate_errors
from recipe_api.exceptions import AuthError, DatabaseError
from recipe_api.models.recipe import format_validation_errors
from recipe_api.models.user import CURRENT_USER_PROJECTION, CurrentUser

logger = logging.getLogger(__name__)


def create_access_token(user_id: ObjectId, expires_minutes: Optional[int] = None) -> str:
    """Sign a token in the auth service's format (used by tests and local tooling)."""
    now = datetime.now(tz=timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> ObjectId:
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Not authorized, token failed")

    sub = data.get("sub")
    if not isinstance(sub, str) or not ObjectId.is_valid(sub):
        raise AuthError("Invalid token payload")
    return ObjectId(sub)


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip() or None
    return None


async def get_current_user(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    db: AsyncIOMotorDatabase = Depends(get_database),
) -> CurrentUser:
    """
    FastAPI dependency resolving the caller.

    Raises:
        AuthError (401): no/invalid/expired token, or the user no longer exists
    """
    token = extract_bearer(authorization)
    if token is None:
        raise AuthError("Not authorized, no token provided")

    user_id = decode_access_token(token)
    with translate_errors("authenticate"):
        user = await db[USERS].find_one({"_id": user_id}, CURRENT_USER_PROJECTION)
    if user is None:
        raise AuthError("Not authorized, user not found", context={"user_id": str(user_id)})
    try:
        return CurrentUser.model_validate(user)
    except PydanticValidationError as e:
        logger.error("Malformed user document %s: %s", user_id, format_validation_errors(e))
        raise DatabaseError(
            message="Could not load your account. Please try again later.",
            context={"user_id": str(user_id)},
        )
