"""Responses for the Business Central catalog proxies (products, customers)."""

from typing import Any

from pydantic import ConfigDict, Field

from app.schemas.base import ApiResponse

# ERP records are passed through untouched
ErpRecord = dict[str, Any]


class CatalogList(ApiResponse[list[ErpRecord]]):
    count: int = 0


class CatalogSearch(CatalogList):
    model_config = ConfigDict(populate_by_name=True)

    search_term: str = Field(alias="searchTerm")
