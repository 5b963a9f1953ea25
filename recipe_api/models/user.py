"""
RecipeShare Backend: User Projections
======================================

The `users` collection belongs to the authentication service. This service
only reads public profile fields (to embed author and rater summaries) and
maintains each user's `favoriteRecipes` list.
"""

from typing import List, Optional

from pydantic import Field

from recipe_api.models.ids import PyObjectId
from recipe_api.models.recipe import CamelModel

# Fields embedded wherever a recipe's author or a rater is shown
AUTHOR_PROJECTION = {"username": 1, "firstName": 1, "lastName": 1, "profileImage": 1}

# Single-recipe view also shows the author's bio
AUTHOR_DETAIL_PROJECTION = {**AUTHOR_PROJECTION, "bio": 1}

# Never load credentials when authenticating a request
CURRENT_USER_PROJECTION = {"username": 1, "favoriteRecipes": 1}


class UserSummary(CamelModel):
    """Public profile fields of a user, as embedded in recipe responses."""

    id: PyObjectId = Field(alias="_id")
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None


class CurrentUser(CamelModel):
    """The authenticated caller, resolved from the bearer token."""

    id: PyObjectId = Field(alias="_id")
    username: Optional[str] = None
    favorite_recipes: List[PyObjectId] = Field(default_factory=list)
