"""Matching ports and domain types.

The matching core depends only on the types in this module. Persistence is
reached through CandidateSourcePort; matching.candidate_source provides the
SQLAlchemy adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List


class MatchSource(str, Enum):
    """Pipeline stage credited with producing the candidate set."""
    USER_CORRECTION = "user_correction"
    TEXT_SEARCH = "text_search"
    REGEX = "regex"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class PackageSize:
    """Quantity a single catalog entry represents (e.g. 500 g)."""
    amount: float
    unit: str


@dataclass(frozen=True)
class NormalizedItem:
    """One basket line after normalization.

    Attributes:
        original_text: Raw text as submitted
        clean_text: Lower-cased text with the quantity token removed
        quantity: Requested amount (None when no quantity token was found)
        unit: Canonical unit (kg, g, l, ml, unit) or None
        keywords: Ordered search keywords (stopwords and short tokens removed)
    """
    original_text: str
    clean_text: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    @property
    def search_text(self) -> str:
        return " ".join(self.keywords)


@dataclass(frozen=True)
class CatalogEntry:
    """Priced catalog entry as seen by the matcher.

    Attributes:
        id: Entry id (string form)
        name: Product name as scraped
        store: Store the entry was scraped from
        current_price: Current shelf price (> 0)
        original_price: Price before promotion, if any
        unit: Package size, if known
        unit_price: Precomputed price per base unit, if known
        category: Store category, if known
        scraped_at: Timezone-aware time the entry was last seen
        is_active: Whether the entry is still listed
    """
    id: str
    name: str
    store: str
    current_price: float
    scraped_at: datetime
    original_price: Optional[float] = None
    unit: Optional[PackageSize] = None
    unit_price: Optional[float] = None
    category: Optional[str] = None
    is_active: bool = True

    @property
    def on_promotion(self) -> bool:
        return self.original_price is not None and self.original_price > self.current_price


@dataclass(frozen=True)
class Correction:
    """Read-only view of a stored user correction."""
    original_query: str
    corrected_entry_id: str
    corrected_name: str
    confidence: float
    timestamp: datetime


@dataclass
class MatchCandidate:
    """Catalog entry under consideration for one basket item.

    discovered_by records the stage that first produced the entry; scoring
    uses the result-level match source.
    """
    entry: CatalogEntry
    discovered_by: MatchSource
    score: float = 0.0


@dataclass(frozen=True)
class Alternative:
    """Runner-up candidate reported next to the winner."""
    entry_id: str
    name: str
    store: str
    price: float
    confidence: float
    discovered_by: MatchSource


@dataclass
class MatchResult:
    """Outcome of matching one basket item.

    Fields describing the match are None when nothing scored above the
    discard threshold; quantity_multiplier is then 1 and confidence 0.
    """
    input_text: str
    confidence: float
    match_source: MatchSource
    requested_quantity: Optional[float] = None
    requested_unit: Optional[str] = None
    matched_entry_id: Optional[str] = None
    matched_name: Optional[str] = None
    matched_store: Optional[str] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    package_size: Optional[PackageSize] = None
    quantity_multiplier: int = 1
    can_fulfill: bool = True
    alternatives: List[Alternative] = field(default_factory=list)

    @property
    def is_matched(self) -> bool:
        return self.matched_entry_id is not None


class CandidateSourcePort(ABC):
    """Port interface for catalog and correction queries.

    Implementations must raise CandidateSourceError for any query failure so
    the pipeline can skip to the next stage.
    """

    @abstractmethod
    def text_search(
        self,
        keywords: List[str],
        active_only: bool,
        recency_window: Optional[timedelta],
        limit: int
    ) -> List[CatalogEntry]:
        """Full-text query matching any of the keywords."""

    @abstractmethod
    def regex_search(
        self,
        keywords_all_of: List[str],
        active_only: bool,
        recency_window: Optional[timedelta],
        limit: int
    ) -> List[CatalogEntry]:
        """Pattern query requiring every keyword to appear in the name."""

    @abstractmethod
    def sample_recent(
        self,
        active_only: bool,
        recency_window: Optional[timedelta],
        limit: int
    ) -> List[CatalogEntry]:
        """Bounded pool of recent entries for fuzzy matching."""

    @abstractmethod
    def find_by_id(self, entry_id: str) -> Optional[CatalogEntry]:
        """Look up a single entry, returning None when it does not exist."""

    @abstractmethod
    def latest_correction_matching(self, keywords: List[str]) -> Optional[Correction]:
        """Newest correction whose original query contains the keywords in order."""
