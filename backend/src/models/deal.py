"""Deal SQLAlchemy model.

A deal is one priced catalog entry scraped from a retail source. Rows are
written by the ingestion path (catalog.service) and read by the matching
pipeline through matching.candidate_source.
"""

import uuid
from enum import Enum

from sqlalchemy import Column, Text, Boolean, Numeric, Index, DateTime, Uuid

from .base import Base, PortableJSONB, utcnow


class Store(str, Enum):
    """Retail stores deals are scraped from."""
    CARREFOUR = "carrefour"
    QUICKMART = "quickmart"
    NAIVAS = "naivas"
    TUSKYS = "tuskys"


class DiscountType(str, Enum):
    """How a promotion is expressed."""
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    BUY_X_GET_Y = "buy_x_get_y"


class Deal(Base):
    """Deal model representing a priced catalog entry.

    Package size is stored as two nullable columns (unit_amount, unit) and is
    only meaningful when both are set. unit_price is the price per base unit
    (kg, l or unit) when ingestion could derive it. discount is the percentage
    off the original price; ingestion derives it when a scraper only supplies
    both prices.
    """
    __tablename__ = "deal"
    __table_args__ = (
        Index("ix_deal_store_active", "store", "is_active"),
        Index("ix_deal_scraped_at", "scraped_at"),
        Index("ix_deal_name", "name"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    store = Column(Text, nullable=False)
    current_price = Column(Numeric(12, 2), nullable=False)
    original_price = Column(Numeric(12, 2), nullable=True)

    # Package size
    unit_amount = Column(Numeric(12, 4), nullable=True)
    unit = Column(Text, nullable=True)  # kg, g, l, ml, unit, piece
    unit_price = Column(Numeric(14, 4), nullable=True)

    # Promotion
    discount = Column(Numeric(5, 2), nullable=True)  # percent off
    discount_type = Column(Text, nullable=False, default=DiscountType.PERCENTAGE.value)
    valid_until = Column(DateTime(timezone=True), nullable=True)

    locations = Column(PortableJSONB, nullable=False, default=list)  # lower-cased place names

    category = Column(Text, nullable=True)
    image = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    source_url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    scraped_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def savings(self) -> float:
        """Amount saved versus the original price (0 when not on promotion)."""
        if self.original_price is None or self.original_price <= self.current_price:
            return 0.0
        return round(float(self.original_price - self.current_price), 2)
