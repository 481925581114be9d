"""Pydantic schemas for basket comparison endpoints.

Responses use camelCase field names on the wire (e.g. itemDetails).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from matching.ports import MatchResult
from .service import BasketComparison


class CamelModel(BaseModel):
    """Base schema serializing to camelCase and accepting either form."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompareBasketRequest(CamelModel):
    """Request body for a basket comparison."""
    items: List[str] = Field(..., min_length=1, examples=[["2kg rice", "1L milk", "bread"]])


class PackageSizeSchema(CamelModel):
    amount: float
    unit: str


class AlternativeSchema(CamelModel):
    """Runner-up candidate for a basket line."""
    entry_id: str
    name: str
    store: str
    price: float
    confidence: float = Field(ge=0.0, le=100.0)
    discovered_by: str


class MatchResultSchema(CamelModel):
    """Matching outcome for one basket line."""
    input_text: str
    requested_quantity: Optional[float] = None
    requested_unit: Optional[str] = None
    matched_entry_id: Optional[str] = None
    matched_name: Optional[str] = None
    matched_store: Optional[str] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    package_size: Optional[PackageSizeSchema] = None
    quantity_multiplier: int = 1
    can_fulfill: bool = True
    confidence: float = Field(ge=0.0, le=100.0)
    match_source: str
    alternatives: List[AlternativeSchema] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: MatchResult) -> "MatchResultSchema":
        return cls(
            input_text=result.input_text,
            requested_quantity=result.requested_quantity,
            requested_unit=result.requested_unit,
            matched_entry_id=result.matched_entry_id,
            matched_name=result.matched_name,
            matched_store=result.matched_store,
            unit_price=result.unit_price,
            total_price=result.total_price,
            package_size=PackageSizeSchema(
                amount=result.package_size.amount,
                unit=result.package_size.unit,
            ) if result.package_size else None,
            quantity_multiplier=result.quantity_multiplier,
            can_fulfill=result.can_fulfill,
            confidence=result.confidence,
            match_source=result.match_source.value,
            alternatives=[
                AlternativeSchema(
                    entry_id=alt.entry_id,
                    name=alt.name,
                    store=alt.store,
                    price=alt.price,
                    confidence=alt.confidence,
                    discovered_by=alt.discovered_by.value,
                )
                for alt in result.alternatives
            ],
        )


class BasketSummarySchema(CamelModel):
    total_items: int
    items_found: int
    average_confidence: int
    processing_time_ms: int


class StoreComparisonSchema(CamelModel):
    store: str
    total: float
    items_found: int
    total_items: int
    confidence: int


class CompareBasketResponse(CamelModel):
    """Basket comparison response."""
    success: bool = True
    cached: bool
    summary: BasketSummarySchema
    store_comparisons: List[StoreComparisonSchema]
    item_details: List[MatchResultSchema]
    timestamp: datetime

    @classmethod
    def from_comparison(cls, comparison: BasketComparison) -> "CompareBasketResponse":
        summary = comparison.summary
        return cls(
            cached=comparison.cached,
            summary=BasketSummarySchema(
                total_items=summary.total_items,
                items_found=summary.items_found,
                average_confidence=summary.average_confidence,
                processing_time_ms=summary.processing_time_ms,
            ),
            store_comparisons=[
                StoreComparisonSchema(
                    store=c.store,
                    total=c.total,
                    items_found=c.items_found,
                    total_items=c.total_items,
                    confidence=c.confidence,
                )
                for c in comparison.store_comparisons
            ],
            item_details=[MatchResultSchema.from_result(m) for m in comparison.item_details],
            timestamp=comparison.timestamp,
        )


class CacheStatsResponse(CamelModel):
    keys: int
    hits: int
    misses: int
    hit_rate: float


class MessageResponse(CamelModel):
    success: bool = True
    message: str
