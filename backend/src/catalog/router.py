"""Deal catalog API endpoints"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from dependencies import get_catalog_service, get_matcher
from matching.pipeline import StagedMatcher
from basket.schemas import MatchResultSchema
from basket.service import FOUND_CONFIDENCE_THRESHOLD
from .schemas import (
    CatalogStatsResponse,
    CategoryCount,
    DealIn,
    DealListResponse,
    DealResponse,
    DealSortField,
    ImportResult,
    RecentDealResponse,
    SearchResponse,
    SortOrder,
    StoreCount,
)
from .service import CatalogService

router = APIRouter(prefix="/api/v1/deals", tags=["deals"])


# ============================================================================
# Read views
# ============================================================================

@router.get("", response_model=DealListResponse, response_model_by_alias=True)
def list_deals(
    store: Optional[str] = Query(None, description="Filter by store"),
    category: Optional[str] = Query(None, description="Case-insensitive category substring"),
    min_discount: Optional[float] = Query(None, alias="minDiscount", ge=0, le=100),
    location: Optional[str] = Query(None, description="Place the deal must be available in"),
    sort_by: DealSortField = Query(DealSortField.SCRAPED_AT, alias="sortBy"),
    sort_order: SortOrder = Query(SortOrder.DESC, alias="sortOrder"),
    limit: int = Query(100, ge=1, le=500, description="Number of results per page"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    List active deals, newest first unless sortBy/sortOrder say otherwise.

    Args:
        store: Filter by store
        category: Category substring
        min_discount: Minimum discount percentage
        location: Location filter
        sort_by: Sort field
        sort_order: asc or desc
        limit: Number of results per page
        offset: Number of results to skip
        service: Catalog service

    Returns:
        Page of deals with the total count
    """
    deals, total = service.list_deals(
        store=store,
        category=category,
        min_discount=min_discount,
        location=location,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return DealListResponse(
        items=[DealResponse.from_deal(deal) for deal in deals],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/search", response_model=SearchResponse, response_model_by_alias=True)
def search_deals(
    q: str = Query(..., min_length=1, description="Free-text product query"),
    store: Optional[str] = Query(None, description="Filter listing by store"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: CatalogService = Depends(get_catalog_service),
    matcher: StagedMatcher = Depends(get_matcher)
):
    """
    Search deals for a product query.

    Runs the query through the matcher and reports the best match only when
    it is confident, alongside a broader any-keyword listing.
    """
    match = matcher.match_text(q)
    best_match = None
    if match.is_matched and match.confidence > FOUND_CONFIDENCE_THRESHOLD:
        best_match = MatchResultSchema.from_result(match)

    deals, total = service.search_deals(q, store=store, limit=limit, offset=offset)
    return SearchResponse(
        query=q,
        best_match=best_match,
        results=[DealResponse.from_deal(deal) for deal in deals],
        total=total,
    )


@router.get("/best", response_model=List[DealResponse], response_model_by_alias=True)
def best_deals(
    min_discount: float = Query(10, alias="minDiscount", ge=0, le=100),
    store: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    service: CatalogService = Depends(get_catalog_service)
):
    """Promoted deals from the last week, largest discount first."""
    deals = service.best_deals(min_discount=min_discount, store=store, category=category, limit=limit)
    return [DealResponse.from_deal(deal) for deal in deals]


@router.get("/recent", response_model=List[RecentDealResponse], response_model_by_alias=True)
def recent_deals(
    store: Optional[str] = Query(None),
    limit: int = Query(30, ge=1, le=200),
    service: CatalogService = Depends(get_catalog_service)
):
    """Most recently scraped deals; isNew marks those scraped in the last two hours."""
    return [
        RecentDealResponse.from_deal(deal, is_new=is_new)
        for deal, is_new in service.recent_deals(store=store, limit=limit)
    ]


@router.get("/stores", response_model=List[StoreCount], response_model_by_alias=True)
def list_stores(service: CatalogService = Depends(get_catalog_service)):
    """Stores with their active deal counts."""
    return [
        StoreCount(
            store=store,
            deal_count=count,
            last_updated=last_updated,
            average_discount=average_discount,
        )
        for store, count, last_updated, average_discount in service.store_counts()
    ]


@router.get("/categories", response_model=List[CategoryCount], response_model_by_alias=True)
def list_categories(service: CatalogService = Depends(get_catalog_service)):
    """Categories with their active deal counts."""
    return [
        CategoryCount(category=category, deal_count=count, average_discount=average_discount)
        for category, count, average_discount in service.category_counts()
    ]


@router.get("/stats", response_model=CatalogStatsResponse, response_model_by_alias=True)
def catalog_stats(service: CatalogService = Depends(get_catalog_service)):
    """Active deal and correction counts, average discount, cache performance
    and the five most recent deals."""
    return service.stats()


# ============================================================================
# Ingestion
# ============================================================================

@router.post("/import", response_model=ImportResult, response_model_by_alias=True)
def import_deals(
    records: List[DealIn],
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Upsert scraped deals.

    Existing deals (same name, store and price) are refreshed; new ones are
    created. The basket cache is cleared when anything was written.

    Args:
        records: Deal records
        service: Catalog service

    Returns:
        Import result with counts and per-record errors
    """
    return service.upsert_deals(records)


@router.post("/import/csv", response_model=ImportResult, response_model_by_alias=True)
async def import_deals_csv(
    file: UploadFile = File(..., description="CSV file with deals"),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Import deals from a CSV file.

    CSV must have columns:
    - Required: name, store, current_price
    - Optional: original_price, unit_amount, unit, category, source_url
    """
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV"
        )

    file_bytes = await file.read()
    return service.import_from_csv(file_bytes)
