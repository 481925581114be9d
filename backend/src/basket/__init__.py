"""Basket comparison: concurrent per-item matching, store totals, caching."""

from .service import BasketComparisonService, BasketComparison, StoreComparison

__all__ = [
    "BasketComparisonService",
    "BasketComparison",
    "StoreComparison",
]
