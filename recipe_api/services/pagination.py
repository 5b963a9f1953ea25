"""
RecipeShare Backend: Pagination
================================

Page/limit arithmetic shared by every list endpoint.

    skip        = (page - 1) * limit
    totalPages  = ceil(total / limit)
    hasNextPage = page < totalPages
    hasPrevPage = page > 1

A page beyond the last one is not an error: it returns no recipes and the
metadata still describes the real collection size.
"""

import math

from recipe_api.models.recipe import CamelModel


def page_skip(page: int, limit: int) -> int:
    return (page - 1) * limit


class PaginationMeta(CamelModel):
    current_page: int
    total_pages: int
    total_recipes: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_recipes=total,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )
