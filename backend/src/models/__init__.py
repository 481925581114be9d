"""SQLAlchemy Models for DealSpotter"""

from .base import Base
from .deal import Deal, DiscountType, Store
from .user_correction import UserCorrection

__all__ = [
    "Base",
    "Deal",
    "DiscountType",
    "Store",
    "UserCorrection",
]
