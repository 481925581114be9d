"""Approximate name matching over a bounded candidate pool."""

from typing import List

from rapidfuzz import fuzz, process, utils

from .ports import CatalogEntry


def fuzzy_rank(
    query: str,
    entries: List[CatalogEntry],
    max_distance: float,
    limit: int
) -> List[CatalogEntry]:
    """Rank entries by approximate similarity of their name to the query.

    Similarity uses rapidfuzz's partial ratio so that a short query can match
    anywhere inside a longer product name. Distance is 1 - ratio / 100
    (0 = identical); only entries strictly below max_distance are kept.

    Args:
        query: Joined keyword string
        entries: Candidate pool (typically <= 500 recent entries)
        max_distance: Exclusive distance threshold in [0, 1]
        limit: Maximum number of entries returned

    Returns:
        Closest entries first
    """
    if not query or not entries:
        return []

    results = process.extract(
        query,
        [entry.name for entry in entries],
        scorer=fuzz.partial_ratio,
        processor=utils.default_process,
        limit=None,
    )

    ranked = []
    for _name, ratio, index in results:
        distance = 1.0 - ratio / 100.0
        if distance < max_distance:
            ranked.append((distance, index))

    # extract() already orders by ratio; index keeps the sort deterministic
    ranked.sort()
    return [entries[index] for _distance, index in ranked[:limit]]
