from math import ceil
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, renders camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Pagination(CamelModel):
    page: int
    limit: int
    total_pages: Optional[int] = None
    total_posts: Optional[int] = None
    total_comments: Optional[int] = None


def paginate(page: int, limit: int, total: Optional[int] = None, **totals) -> dict:
    total_pages = ceil(total / limit) if total is not None else None
    pagination = Pagination(page=page, limit=limit, total_pages=total_pages, **totals)
    return pagination.model_dump(by_alias=True, exclude_none=True)


def success_response(message: Optional[str] = None, **data) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data:
        body["data"] = data
    return body
