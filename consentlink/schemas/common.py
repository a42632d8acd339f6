"""Shared schema base and pagination envelope."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys; snake_case is accepted on input too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_filtered: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int, total_filtered: int) -> Pagination:
        total_pages = math.ceil(total_filtered / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_filtered=total_filtered,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )
