"""Pydantic schemas for catalog (deal) endpoints"""

import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from basket.schemas import CacheStatsResponse, CamelModel, MatchResultSchema, PackageSizeSchema
from models.deal import DiscountType, Store

LOCATION_SEPARATORS = re.compile(r"[;,]")


class DealSortField(str, Enum):
    """Sortable deal listing fields (wire names)"""
    SCRAPED_AT = "scrapedAt"
    CURRENT_PRICE = "currentPrice"
    DISCOUNT = "discount"
    UNIT_PRICE = "unitPrice"
    NAME = "name"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DealIn(CamelModel):
    """One scraped deal supplied to the ingestion path"""
    name: str = Field(..., min_length=1)
    store: Store
    current_price: float = Field(..., gt=0)
    original_price: Optional[float] = Field(None, gt=0)
    discount: Optional[float] = Field(None, ge=0, le=100)
    discount_type: DiscountType = DiscountType.PERCENTAGE
    valid_until: Optional[datetime] = None
    locations: List[str] = Field(default_factory=list)
    unit_amount: Optional[float] = Field(None, gt=0)
    unit: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    source_url: Optional[str] = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("store", mode="before")
    @classmethod
    def lower_store(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("locations", mode="before")
    @classmethod
    def split_locations(cls, v):
        """Accept "nairobi;mombasa" (CSV) as well as a list; lower-case and dedupe."""
        if isinstance(v, str):
            v = LOCATION_SEPARATORS.split(v)
        if not isinstance(v, list):
            return v
        locations = []
        for location in v:
            if isinstance(location, str):
                location = location.strip().lower()
                if location and location not in locations:
                    locations.append(location)
        return locations


class DealResponse(CamelModel):
    """Deal as returned by the read views"""
    id: str
    name: str
    store: str
    current_price: float
    original_price: Optional[float] = None
    discount: Optional[float] = None
    discount_type: str
    valid_until: Optional[datetime] = None
    locations: List[str] = Field(default_factory=list)
    package_size: Optional[PackageSizeSchema] = None
    unit_price: Optional[float] = None
    savings: float = 0.0
    category: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    source_url: Optional[str] = None
    is_active: bool
    scraped_at: datetime

    @classmethod
    def from_deal(cls, deal, **extra) -> "DealResponse":
        return cls(
            id=str(deal.id),
            name=deal.name,
            store=deal.store,
            current_price=float(deal.current_price),
            original_price=float(deal.original_price) if deal.original_price is not None else None,
            discount=float(deal.discount) if deal.discount is not None else None,
            discount_type=deal.discount_type,
            valid_until=deal.valid_until,
            locations=deal.locations or [],
            package_size=PackageSizeSchema(
                amount=float(deal.unit_amount), unit=deal.unit
            ) if deal.unit_amount is not None and deal.unit else None,
            unit_price=float(deal.unit_price) if deal.unit_price is not None else None,
            savings=deal.savings,
            category=deal.category,
            image=deal.image,
            description=deal.description,
            source_url=deal.source_url,
            is_active=deal.is_active,
            scraped_at=deal.scraped_at,
            **extra,
        )


class RecentDealResponse(DealResponse):
    """Deal in the recent listing; is_new marks deals scraped in the last two hours"""
    is_new: bool


class DealListResponse(CamelModel):
    """Paginated deal listing"""
    items: List[DealResponse]
    total: int
    limit: int
    offset: int


class SearchResponse(CamelModel):
    """Search result: best match (if confident) plus a broader listing"""
    query: str
    best_match: Optional[MatchResultSchema] = None
    results: List[DealResponse]
    total: int


class StoreCount(CamelModel):
    store: str
    deal_count: int
    last_updated: Optional[datetime] = None
    average_discount: int = 0


class CategoryCount(CamelModel):
    category: str
    deal_count: int
    average_discount: int = 0


class CatalogStatsResponse(CamelModel):
    """Catalog-wide counters, cache performance and the latest deals"""
    total_active_deals: int
    total_user_corrections: int
    deals_by_store: Dict[str, int]
    average_discount: int
    cache_performance: CacheStatsResponse
    last_updated: datetime
    recent_deals: List[DealResponse]


class ImportRecordError(CamelModel):
    """Schema for a rejected import record"""
    row: int
    name: Optional[str] = None
    error: str


class ImportResult(CamelModel):
    """Schema for a catalog import result"""
    total_rows: int = 0
    created_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    errors: List[ImportRecordError] = Field(default_factory=list)
