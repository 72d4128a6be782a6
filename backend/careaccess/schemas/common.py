"""Shared response envelopes."""

from typing import Generic, TypeVar

from pydantic import BaseModel

ItemT = TypeVar("ItemT")


class PaginatedResponse(BaseModel, Generic[ItemT]):
    """One page of a catalog listing plus the unpaged `total`."""

    items: list[ItemT]
    total: int
    limit: int
    offset: int
