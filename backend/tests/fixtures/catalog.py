"""In-memory catalog helpers for matching tests.

FakeClock drives cache expiry, InMemoryCandidateSource stands in for the
SQL adapter, and make_entry builds CatalogEntry values relative to
FIXED_NOW.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from common.exceptions import CandidateSourceError
from matching.ports import CandidateSourcePort, CatalogEntry, Correction, PackageSize

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock for cache tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryCandidateSource(CandidateSourcePort):
    """Candidate source over a list of CatalogEntry objects.

    text_search matches any keyword, regex_search requires all keywords.
    Stages listed in `failing` raise CandidateSourceError; `calls` records
    every query made.
    """

    def __init__(
        self,
        entries: Optional[List[CatalogEntry]] = None,
        corrections: Optional[List[Correction]] = None,
        failing: Optional[set] = None,
        now: datetime = FIXED_NOW
    ):
        self.entries = list(entries or [])
        self.corrections = list(corrections or [])
        self.failing = failing or set()
        self.now = now
        self.calls: List[str] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise CandidateSourceError(f"{operation} unavailable")

    def _eligible(self, active_only, recency_window) -> List[CatalogEntry]:
        return [
            e for e in self.entries
            if (not active_only or e.is_active)
            and (recency_window is None or e.scraped_at >= self.now - recency_window)
        ]

    def text_search(self, keywords, active_only, recency_window, limit):
        self._check("text_search")
        return [
            e for e in self._eligible(active_only, recency_window)
            if any(k in e.name.lower() for k in keywords)
        ][:limit]

    def regex_search(self, keywords_all_of, active_only, recency_window, limit):
        self._check("regex_search")
        return [
            e for e in self._eligible(active_only, recency_window)
            if all(k in e.name.lower() for k in keywords_all_of)
        ][:limit]

    def sample_recent(self, active_only, recency_window, limit):
        self._check("sample_recent")
        return self._eligible(active_only, recency_window)[:limit]

    def find_by_id(self, entry_id):
        self._check("find_by_id")
        return next((e for e in self.entries if e.id == entry_id), None)

    def latest_correction_matching(self, keywords):
        self._check("latest_correction_matching")
        matching = [
            c for c in self.corrections
            if all(k in c.original_query for k in keywords)
        ]
        return max(matching, key=lambda c: c.timestamp, default=None)


def make_entry(
    entry_id: str,
    name: str,
    price: float,
    store: str = "carrefour",
    amount: Optional[float] = None,
    unit: Optional[str] = None,
    scraped_at: datetime = FIXED_NOW - timedelta(days=5),
    original_price: Optional[float] = None,
    is_active: bool = True
) -> CatalogEntry:
    """Build a CatalogEntry (scraped 5 days before FIXED_NOW by default, no recency bonus)."""
    return CatalogEntry(
        id=entry_id,
        name=name,
        store=store,
        current_price=price,
        original_price=original_price,
        unit=PackageSize(amount=amount, unit=unit) if amount is not None and unit else None,
        scraped_at=scraped_at,
        is_active=is_active,
    )
