"""Catalog domain module: deal ingestion and read views"""

from .service import CatalogService
from .schemas import (
    DealIn,
    DealResponse,
    DealListResponse,
    ImportResult,
    SearchResponse,
)

__all__ = [
    "CatalogService",
    "DealIn",
    "DealResponse",
    "DealListResponse",
    "ImportResult",
    "SearchResponse",
]
