"""Match confidence scoring.

Scoring is split in two steps:
- extract_signals() reads a candidate entry and the normalized item and
  produces a ScoreSignals struct
- score_signals() is a pure function of that struct and the weight table
  below

Weight table (confidence is on a 0-100 scale):

    base score by match source
        user_correction  95
        text_search      60
        regex            50
        fuzzy            40
        (unset)          60
    keyword coverage     score *= 0.5 + 0.5 * matched / total
    exact unit           +15
    compatible unit      +8    (kg/g, l/ml)
    exact quantity       +10   (requested base amount == package base amount)
    near quantity        +5    (ratio within [0.5, 2])
    scraped < 1 day      +8
    scraped < 3 days     +4
    on promotion         +5
    cap                  100

Candidates scoring at or below DISCARD_THRESHOLD are dropped before ranking.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from .ports import CatalogEntry, MatchCandidate, MatchSource, NormalizedItem
from .units import are_units_compatible, convert_to_base_unit, normalize_unit

SOURCE_BASE_SCORES: Dict[MatchSource, float] = {
    MatchSource.USER_CORRECTION: 95.0,
    MatchSource.TEXT_SEARCH: 60.0,
    MatchSource.REGEX: 50.0,
    MatchSource.FUZZY: 40.0,
}
DEFAULT_BASE_SCORE = 60.0

BONUS_WEIGHTS: Dict[str, float] = {
    "exact_unit": 15.0,
    "compatible_unit": 8.0,
    "exact_quantity": 10.0,
    "near_quantity": 5.0,
    "scraped_within_1_day": 8.0,
    "scraped_within_3_days": 4.0,
    "promotion": 5.0,
}

NEAR_QUANTITY_RANGE = (0.5, 2.0)
MAX_SCORE = 100.0
DISCARD_THRESHOLD = 20.0

SECONDS_PER_DAY = 24 * 60 * 60


class UnitMatch(str, Enum):
    """How the requested unit relates to the package unit."""
    EXACT = "exact"
    COMPATIBLE = "compatible"
    NONE = "none"


@dataclass(frozen=True)
class ScoreSignals:
    """Everything score_signals() needs to know about one candidate.

    Attributes:
        match_source: Stage label used for the base score (None = default)
        matched_keywords: Keywords found in the candidate's lower-cased name
        total_keywords: Keywords in the normalized item
        unit_match: Relation between requested and package unit
        quantity_ratio: requested base amount / package base amount, None
            when either side is missing or the base units differ
        age_days: Days since the entry was scraped
        on_promotion: original price above current price
    """
    match_source: Optional[MatchSource]
    matched_keywords: int
    total_keywords: int
    unit_match: UnitMatch
    quantity_ratio: Optional[float]
    age_days: float
    on_promotion: bool


def score_signals(signals: ScoreSignals) -> float:
    """Combine signals into a 0-100 confidence score."""
    score = SOURCE_BASE_SCORES.get(signals.match_source, DEFAULT_BASE_SCORE)

    if signals.total_keywords > 0:
        coverage = signals.matched_keywords / signals.total_keywords
    else:
        coverage = 0.0
    score *= 0.5 + 0.5 * coverage

    if signals.unit_match is UnitMatch.EXACT:
        score += BONUS_WEIGHTS["exact_unit"]
    elif signals.unit_match is UnitMatch.COMPATIBLE:
        score += BONUS_WEIGHTS["compatible_unit"]

    if signals.quantity_ratio is not None:
        low, high = NEAR_QUANTITY_RANGE
        if math.isclose(signals.quantity_ratio, 1.0, rel_tol=1e-9):
            score += BONUS_WEIGHTS["exact_quantity"]
        elif low <= signals.quantity_ratio <= high:
            score += BONUS_WEIGHTS["near_quantity"]

    if signals.age_days < 1:
        score += BONUS_WEIGHTS["scraped_within_1_day"]
    elif signals.age_days < 3:
        score += BONUS_WEIGHTS["scraped_within_3_days"]

    if signals.on_promotion:
        score += BONUS_WEIGHTS["promotion"]

    return max(0.0, min(score, MAX_SCORE))


def extract_signals(
    entry: CatalogEntry,
    item: NormalizedItem,
    match_source: Optional[MatchSource],
    now: datetime
) -> ScoreSignals:
    """Derive score signals for one candidate entry."""
    name = entry.name.lower()
    matched = sum(1 for keyword in item.keywords if keyword in name)

    unit_match = UnitMatch.NONE
    package_unit = normalize_unit(entry.unit.unit) if entry.unit is not None else None
    if item.unit and package_unit:
        if item.unit == package_unit:
            unit_match = UnitMatch.EXACT
        elif are_units_compatible(item.unit, package_unit):
            unit_match = UnitMatch.COMPATIBLE

    quantity_ratio = None
    if item.quantity and entry.unit is not None:
        requested_amount, requested_base = convert_to_base_unit(item.quantity, item.unit or "unit")
        package_amount, package_base = convert_to_base_unit(entry.unit.amount, package_unit)
        if requested_base == package_base and package_amount > 0:
            quantity_ratio = requested_amount / package_amount

    return ScoreSignals(
        match_source=match_source,
        matched_keywords=matched,
        total_keywords=len(item.keywords),
        unit_match=unit_match,
        quantity_ratio=quantity_ratio,
        age_days=_age_in_days(entry.scraped_at, now),
        on_promotion=entry.on_promotion,
    )


def rank_candidates(
    candidates: List[MatchCandidate],
    item: NormalizedItem,
    match_source: Optional[MatchSource],
    now: datetime
) -> List[MatchCandidate]:
    """Score candidates, drop weak ones and sort best first.

    The sort is stable, so equal scores keep pipeline discovery order.
    """
    for candidate in candidates:
        signals = extract_signals(candidate.entry, item, match_source, now)
        candidate.score = score_signals(signals)

    surviving = [c for c in candidates if c.score > DISCARD_THRESHOLD]
    surviving.sort(key=lambda c: c.score, reverse=True)
    return surviving


def _age_in_days(scraped_at: datetime, now: datetime) -> float:
    if scraped_at.tzinfo is None:
        scraped_at = scraped_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - scraped_at).total_seconds() / SECONDS_PER_DAY
