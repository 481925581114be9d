"""Basket comparison service.

Matches every line of a shopping basket concurrently, aggregates per-store
totals and caches the whole computation by basket key.
"""

import contextvars
import logging
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from common.exceptions import DealSpotterError, UnexpectedError, ValidationError
from matching.cache import BasketCache, basket_line_key, make_basket_key
from matching.pipeline import StagedMatcher
from matching.ports import MatchResult
from models.deal import Store
from observability.metrics import basket_comparisons_total, basket_duration_seconds

logger = logging.getLogger(__name__)

# Items at or below this confidence are not counted as found
FOUND_CONFIDENCE_THRESHOLD = 50


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a price tag: 0.5 always rounds up."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class StoreComparison:
    """Basket total for one store."""
    store: str
    total: float
    items_found: int
    total_items: int
    confidence: int


@dataclass(frozen=True)
class BasketSummary:
    """Headline numbers for a basket comparison."""
    total_items: int
    items_found: int
    average_confidence: int
    processing_time_ms: int


@dataclass(frozen=True)
class CachedBasket:
    """Value stored in the basket cache.

    Baskets that differ only in line order or case share one entry, so
    matches are handed back through matches_for() rather than as stored.
    """
    matches: List[MatchResult]
    store_comparisons: List[StoreComparison]
    timestamp: datetime

    def matches_for(self, items: List[str]) -> List[MatchResult]:
        """Matches in the order of items, each carrying the caller's own text."""
        by_line = {basket_line_key(m.input_text): m for m in self.matches}
        return [replace(by_line[basket_line_key(item)], input_text=item) for item in items]


@dataclass
class BasketComparison:
    """Response of a basket comparison."""
    summary: BasketSummary
    store_comparisons: List[StoreComparison]
    item_details: List[MatchResult]
    cached: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def validate_items(items) -> List[str]:
    """Reject malformed baskets before any matching work.

    Raises:
        ValidationError: If items is not a non-empty list of strings
    """
    if isinstance(items, str) or not isinstance(items, (list, tuple)):
        raise ValidationError("Items array is required and must not be empty")
    if len(items) == 0:
        raise ValidationError("Items array is required and must not be empty")
    for index, item in enumerate(items):
        if not isinstance(item, str):
            raise ValidationError(
                f"Item at position {index} must be a string",
                details={"position": index},
            )
    return list(items)


def count_found(matches: List[MatchResult]) -> int:
    return sum(1 for m in matches if m.confidence > FOUND_CONFIDENCE_THRESHOLD)


def average_confidence(matches: List[MatchResult]) -> int:
    if not matches:
        return 0
    return int(round_half_up(sum(m.confidence for m in matches) / len(matches)))


def build_store_comparisons(matches: List[MatchResult]) -> List[StoreComparison]:
    """Per-store totals, cheapest first.

    Every matched item is counted in every known store at its matched price,
    regardless of the store the matched deal belongs to. Totals are therefore
    identical across stores; the list keeps the Store enum order on ties.
    """
    matched = [m for m in matches if m.is_matched]
    if not matched:
        return []

    comparisons = []
    for store in Store:
        total = sum(m.total_price or 0.0 for m in matched)
        comparisons.append(StoreComparison(
            store=store.value,
            total=round_half_up(total, 2),
            items_found=count_found(matched),
            total_items=len(matches),
            confidence=average_confidence(matched),
        ))

    comparisons.sort(key=lambda c: c.total)
    return comparisons


class BasketComparisonService:
    """Compare a basket across stores.

    Per-item matching runs on a bounded thread pool; items are independent so
    results are gathered in basket order.
    """

    def __init__(
        self,
        matcher: StagedMatcher,
        cache: BasketCache,
        max_workers: int = 8,
        executor: Optional[Executor] = None,
        timer: Callable[[], float] = time.perf_counter
    ):
        """Initialize service.

        Args:
            matcher: Staged matcher used per item
            cache: Shared basket result cache
            max_workers: Pool size when no executor is supplied
            executor: Externally owned executor (not shut down by close())
            timer: Monotonic timer in seconds for processing time
        """
        self.matcher = matcher
        self.cache = cache
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="basket-match"
        )
        self.timer = timer

    def compare(self, items) -> BasketComparison:
        """Match a basket and compare store totals.

        Args:
            items: Free-text basket lines

        Returns:
            BasketComparison; cached is True when served from the cache

        Raises:
            ValidationError: If the basket is empty or malformed
            UnexpectedError: If matching fails for any other reason
        """
        items = validate_items(items)
        start = self.timer()
        key = make_basket_key(items)

        try:
            payload, cached = self.cache.get_or_compute(key, lambda: self._compute(items))
        except DealSpotterError:
            raise
        except Exception as e:
            logger.error(f"Basket comparison failed for {len(items)} items", exc_info=True)
            raise UnexpectedError("Failed to compare basket") from e

        basket_comparisons_total.labels(cached=str(cached).lower()).inc()
        processing_ms = 0 if cached else int((self.timer() - start) * 1000)
        if not cached:
            basket_duration_seconds.observe(processing_ms / 1000)

        logger.info(
            f"Compared basket of {len(items)} items "
            f"({'cached' if cached else f'{processing_ms} ms'})"
        )

        matches = payload.matches_for(items)
        return BasketComparison(
            summary=BasketSummary(
                total_items=len(items),
                items_found=count_found(matches),
                average_confidence=average_confidence(matches),
                processing_time_ms=processing_ms,
            ),
            store_comparisons=payload.store_comparisons,
            item_details=matches,
            cached=cached,
            timestamp=payload.timestamp,
        )

    def close(self) -> None:
        """Shut down the worker pool if this service created it."""
        if self._owns_executor:
            self.executor.shutdown(wait=True)

    def _compute(self, items: List[str]) -> CachedBasket:
        # Workers log under the caller's request ID
        contexts = [contextvars.copy_context() for _ in items]
        matches = list(self.executor.map(
            lambda ctx, text: ctx.run(self.matcher.match_text, text), contexts, items
        ))
        return CachedBasket(
            matches=matches,
            store_comparisons=build_store_comparisons(matches),
            timestamp=datetime.now(timezone.utc),
        )
