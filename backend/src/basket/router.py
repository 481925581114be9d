"""Basket comparison and cache admin endpoints."""

import logging

from fastapi import APIRouter, Depends

from dependencies import get_basket_cache, get_basket_service
from matching.cache import BasketCache
from .schemas import (
    CacheStatsResponse,
    CompareBasketRequest,
    CompareBasketResponse,
    MessageResponse,
)
from .service import BasketComparisonService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/deals", tags=["basket"])


@router.post("/compare-basket", response_model=CompareBasketResponse, response_model_by_alias=True)
def compare_basket(
    request: CompareBasketRequest,
    service: BasketComparisonService = Depends(get_basket_service)
):
    """Compare a shopping basket across stores.

    Each line is normalized and matched independently; the whole result is
    cached by the case- and order-independent basket key.

    Args:
        request: Basket lines
        service: Basket comparison service

    Returns:
        Summary, per-store totals and per-item match details
    """
    comparison = service.compare(request.items)
    return CompareBasketResponse.from_comparison(comparison)


@router.post("/admin/clear-cache", response_model=MessageResponse)
def clear_cache(cache: BasketCache = Depends(get_basket_cache)):
    """Drop every cached basket result."""
    cache.clear()
    return MessageResponse(message="Cache cleared successfully")


@router.get("/admin/cache-stats", response_model=CacheStatsResponse, response_model_by_alias=True)
def cache_stats(cache: BasketCache = Depends(get_basket_cache)):
    """Return cache key count and hit/miss counters."""
    stats = cache.stats()
    return CacheStatsResponse(
        keys=stats.keys,
        hits=stats.hits,
        misses=stats.misses,
        hit_rate=stats.hit_rate,
    )
