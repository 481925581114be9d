"""Staged candidate generation and result assembly.

The matcher runs an ordered list of stages. Each stage queries the candidate
source, its output is merged into a running set de-duplicated by entry id,
and the stage's exit predicate decides whether enough distinct candidates
have been collected to stop and score:

    stage             exits when
    user_correction   >= 1 candidate (a trusted correction resolved)
    text_search       >= 5 candidates
    regex             >= 3 candidates
    fuzzy             always (last stage)

A stage whose query raises CandidateSourceError is logged and skipped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from common.exceptions import CandidateSourceError
from observability.metrics import (
    match_stage_failures_total,
    match_results_total,
    match_confidence_histogram,
)
from .fuzzy import fuzzy_rank
from .normalizer import normalize_item
from .ports import (
    Alternative,
    CandidateSourcePort,
    CatalogEntry,
    MatchCandidate,
    MatchResult,
    MatchSource,
    NormalizedItem,
)
from .scorer import rank_candidates
from .units import calculate_quantity_requirements, calculate_unit_price

logger = logging.getLogger(__name__)

# Label priority when several stages contributed candidates
SOURCE_PRIORITY = [
    MatchSource.USER_CORRECTION,
    MatchSource.TEXT_SEARCH,
    MatchSource.REGEX,
    MatchSource.FUZZY,
]

MAX_ALTERNATIVES = 3


@dataclass(frozen=True)
class MatcherConfig:
    """Limits and thresholds for the staged pipeline."""
    recency_window: timedelta = timedelta(days=7)
    text_search_limit: int = 20
    text_search_exit_count: int = 5
    regex_search_limit: int = 15
    regex_search_exit_count: int = 3
    fuzzy_sample_limit: int = 500
    fuzzy_result_limit: int = 10
    fuzzy_max_distance: float = 0.4
    correction_min_confidence: float = 80.0

    @classmethod
    def from_settings(cls, settings) -> "MatcherConfig":
        return cls(
            recency_window=timedelta(days=settings.MATCH_RECENCY_DAYS),
            text_search_limit=settings.TEXT_SEARCH_LIMIT,
            regex_search_limit=settings.REGEX_SEARCH_LIMIT,
            fuzzy_sample_limit=settings.FUZZY_SAMPLE_LIMIT,
            fuzzy_result_limit=settings.FUZZY_RESULT_LIMIT,
            fuzzy_max_distance=settings.FUZZY_MAX_DISTANCE,
            correction_min_confidence=settings.CORRECTION_MIN_CONFIDENCE,
        )


@dataclass(frozen=True)
class MatchStage:
    """One step of the candidate generation pipeline.

    Attributes:
        source: Label credited for candidates this stage discovers
        search: Produces candidate entries for a normalized item
        exit_when: Given the running distinct candidate count after this
            stage, True stops the pipeline and proceeds to scoring
    """
    source: MatchSource
    search: Callable[[NormalizedItem], List[CatalogEntry]]
    exit_when: Callable[[int], bool]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StagedMatcher:
    """Find the best priced catalog entry for a basket line.

    Pipeline:
    1. Check user corrections (trusted correction = sole candidate)
    2. Full-text search over keywords
    3. AND-of-keywords pattern search
    4. Fuzzy search over a bounded sample of recent entries
    5. Score merged candidates, pick the winner and up to 3 alternatives
    6. Scale the winner's price by the requested quantity
    """

    def __init__(
        self,
        source: CandidateSourcePort,
        config: Optional[MatcherConfig] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        """Initialize matcher.

        Args:
            source: Catalog and correction query port
            config: Pipeline limits (defaults match production settings)
            clock: Returns the current aware UTC time, used for recency
        """
        self.source = source
        self.config = config or MatcherConfig()
        self.clock = clock
        self.stages = self._build_stages()

    def match_text(self, text: str) -> MatchResult:
        """Normalize a raw basket line and match it."""
        return self.match(normalize_item(text))

    def match(self, item: NormalizedItem) -> MatchResult:
        """Match one normalized item.

        Items without keywords short-circuit to a zero-confidence result
        without querying the candidate source.

        Args:
            item: Normalized basket line

        Returns:
            MatchResult for the best candidate, or a zero-confidence result
        """
        if not item.keywords:
            logger.debug(f"No keywords in '{item.original_text}', skipping candidate search")
            return self._record(self._unmatched(item))

        candidates, match_source = self.collect_candidates(item)
        ranked = rank_candidates(candidates, item, match_source, self.clock())

        if not ranked:
            return self._record(self._unmatched(item))

        return self._record(self._assemble(item, ranked, match_source))

    def collect_candidates(self, item: NormalizedItem) -> Tuple[List[MatchCandidate], MatchSource]:
        """Run the stages and merge their output by entry id.

        Returns:
            Distinct candidates in discovery order and the label credited
            for the set
        """
        merged: Dict[str, MatchCandidate] = {}
        stage_ids: Dict[MatchSource, set] = {}

        for stage in self.stages:
            try:
                entries = stage.search(item)
            except CandidateSourceError as e:
                match_stage_failures_total.labels(stage=stage.source.value).inc()
                logger.warning(
                    f"Match stage '{stage.source.value}' failed for '{item.original_text}': {e}",
                    exc_info=True
                )
                continue

            stage_ids[stage.source] = {entry.id for entry in entries}
            for entry in entries:
                if entry.id not in merged:
                    merged[entry.id] = MatchCandidate(entry=entry, discovered_by=stage.source)

            logger.debug(
                f"Match stage '{stage.source.value}' returned {len(entries)} entries, "
                f"{len(merged)} distinct so far for '{item.original_text}'"
            )

            if stage.exit_when(len(merged)):
                break

        return list(merged.values()), self._credit_source(set(merged), stage_ids)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _build_stages(self) -> List[MatchStage]:
        config = self.config
        return [
            MatchStage(
                source=MatchSource.USER_CORRECTION,
                search=self._correction_search,
                exit_when=lambda count: count >= 1,
            ),
            MatchStage(
                source=MatchSource.TEXT_SEARCH,
                search=self._text_search,
                exit_when=lambda count: count >= config.text_search_exit_count,
            ),
            MatchStage(
                source=MatchSource.REGEX,
                search=self._regex_search,
                exit_when=lambda count: count >= config.regex_search_exit_count,
            ),
            MatchStage(
                source=MatchSource.FUZZY,
                search=self._fuzzy_search,
                exit_when=lambda count: True,
            ),
        ]

    def _correction_search(self, item: NormalizedItem) -> List[CatalogEntry]:
        correction = self.source.latest_correction_matching(item.keywords)
        if correction is None or correction.confidence <= self.config.correction_min_confidence:
            return []

        entry = self.source.find_by_id(correction.corrected_entry_id)
        if entry is None:
            logger.info(
                f"Correction for '{correction.original_query}' points to missing entry "
                f"{correction.corrected_entry_id}"
            )
            return []
        return [entry]

    def _text_search(self, item: NormalizedItem) -> List[CatalogEntry]:
        return self.source.text_search(
            item.keywords,
            active_only=True,
            recency_window=self.config.recency_window,
            limit=self.config.text_search_limit,
        )

    def _regex_search(self, item: NormalizedItem) -> List[CatalogEntry]:
        return self.source.regex_search(
            item.keywords,
            active_only=True,
            recency_window=self.config.recency_window,
            limit=self.config.regex_search_limit,
        )

    def _fuzzy_search(self, item: NormalizedItem) -> List[CatalogEntry]:
        pool = self.source.sample_recent(
            active_only=True,
            recency_window=self.config.recency_window,
            limit=self.config.fuzzy_sample_limit,
        )
        return fuzzy_rank(
            item.search_text,
            pool,
            max_distance=self.config.fuzzy_max_distance,
            limit=self.config.fuzzy_result_limit,
        )

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    @staticmethod
    def _credit_source(merged_ids: set, stage_ids: Dict[MatchSource, set]) -> MatchSource:
        """Single label for the whole candidate set.

        The highest-priority stage whose own output covers every distinct
        candidate wins; otherwise the highest-priority contributing stage.
        """
        if not merged_ids:
            return MatchSource.TEXT_SEARCH

        for source in SOURCE_PRIORITY:
            if merged_ids <= stage_ids.get(source, set()):
                return source

        for source in SOURCE_PRIORITY:
            if stage_ids.get(source):
                return source

        return MatchSource.TEXT_SEARCH

    def _assemble(
        self,
        item: NormalizedItem,
        ranked: List[MatchCandidate],
        match_source: MatchSource
    ) -> MatchResult:
        best = ranked[0]
        entry = best.entry
        requirement = calculate_quantity_requirements(item.quantity, item.unit, entry.unit)

        alternatives = [
            Alternative(
                entry_id=candidate.entry.id,
                name=candidate.entry.name,
                store=candidate.entry.store,
                price=candidate.entry.current_price,
                confidence=candidate.score,
                discovered_by=candidate.discovered_by,
            )
            for candidate in ranked[1:1 + MAX_ALTERNATIVES]
        ]

        return MatchResult(
            input_text=item.original_text,
            requested_quantity=item.quantity,
            requested_unit=item.unit,
            matched_entry_id=entry.id,
            matched_name=entry.name,
            matched_store=entry.store,
            unit_price=calculate_unit_price(entry),
            total_price=entry.current_price * requirement.multiplier,
            package_size=entry.unit,
            quantity_multiplier=requirement.multiplier,
            can_fulfill=requirement.can_fulfill,
            confidence=best.score,
            match_source=match_source,
            alternatives=alternatives,
        )

    @staticmethod
    def _unmatched(item: NormalizedItem) -> MatchResult:
        return MatchResult(
            input_text=item.original_text,
            requested_quantity=item.quantity,
            requested_unit=item.unit,
            confidence=0.0,
            match_source=MatchSource.TEXT_SEARCH,
        )

    @staticmethod
    def _record(result: MatchResult) -> MatchResult:
        match_results_total.labels(
            match_source=result.match_source.value,
            matched=str(result.is_matched).lower(),
        ).inc()
        match_confidence_histogram.observe(result.confidence)
        return result
