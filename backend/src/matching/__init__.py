"""Matching module for DealSpotter.

This module implements staged product matching combining:
- User corrections (learning loop)
- Full-text search
- AND-of-keywords pattern search
- Fuzzy search (rapidfuzz)
- Unit, quantity, recency and promotion scoring
"""

from .ports import (
    CandidateSourcePort,
    CatalogEntry,
    Correction,
    MatchCandidate,
    MatchResult,
    MatchSource,
    NormalizedItem,
    PackageSize,
)
from .normalizer import normalize_item
from .units import convert_to_base_unit, calculate_quantity_requirements, calculate_unit_price
from .pipeline import StagedMatcher, MatcherConfig
from .cache import BasketCache, CacheStats, make_basket_key

__all__ = [
    "CandidateSourcePort",
    "CatalogEntry",
    "Correction",
    "MatchCandidate",
    "MatchResult",
    "MatchSource",
    "NormalizedItem",
    "PackageSize",
    "normalize_item",
    "convert_to_base_unit",
    "calculate_quantity_requirements",
    "calculate_unit_price",
    "StagedMatcher",
    "MatcherConfig",
    "BasketCache",
    "CacheStats",
    "make_basket_key",
]
