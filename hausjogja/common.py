# common.py
"""
Helpers shared by every router: slug derivation, pagination and the
response envelope (`{"status": ..., "data": ..., "message": ...}`).
"""

import math
import re
from typing import Any, Dict, Optional

from fastapi import Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG_CHARS = re.compile(r"[^A-Za-z0-9_-]+")
_HYPHEN_RUNS = re.compile(r"-{2,}")


def create_slug(text: str) -> str:
    """
    Derives a URL-safe slug from a human readable name.

    "Menu Haus Panas" -> "menu-haus-panas", "  Roti -- Bakar! " -> "roti-bakar".
    """
    slug = str(text).lower()
    slug = _WHITESPACE.sub("-", slug)
    slug = _NON_SLUG_CHARS.sub("", slug)
    slug = _HYPHEN_RUNS.sub("-", slug)
    return slug.strip("-")


class CamelModel(BaseModel):
    """Schemas speak camelCase on the wire and accept snake_case too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Pagination:
    """Query dependency for `?page=&limit=`."""

    def __init__(
        self,
        page: int = Query(1, ge=1, description="1-based page number"),
        limit: int = Query(10, ge=1, le=100, description="Page size"),
    ):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "pages": math.ceil(total / self.limit),
        }


def dump(model: Optional[BaseModel]) -> Any:
    if model is None:
        return None
    return model.model_dump(by_alias=True, mode="json")


def success(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": "success"}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    body.update(extra)
    return body


def error(message: str) -> Dict[str, Any]:
    return {"status": "error", "message": message}
