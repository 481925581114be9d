"""Unit tests for match confidence scoring

Each weight in the scoring table is checked in isolation against a neutral
baseline: text_search source, full keyword coverage, no unit or quantity
signal, scraped 10 days ago, not on promotion (score 60).
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from fixtures.catalog import FIXED_NOW, make_entry
from matching.normalizer import normalize_item
from matching.ports import MatchCandidate, MatchSource
from matching.scorer import (
    DISCARD_THRESHOLD,
    ScoreSignals,
    UnitMatch,
    extract_signals,
    rank_candidates,
    score_signals,
)

BASELINE = ScoreSignals(
    match_source=MatchSource.TEXT_SEARCH,
    matched_keywords=1,
    total_keywords=1,
    unit_match=UnitMatch.NONE,
    quantity_ratio=None,
    age_days=10.0,
    on_promotion=False,
)


class TestBaseScores:
    """Starting score depends on the match source"""

    @pytest.mark.parametrize("source,expected", [
        (MatchSource.USER_CORRECTION, 95.0),
        (MatchSource.TEXT_SEARCH, 60.0),
        (MatchSource.REGEX, 50.0),
        (MatchSource.FUZZY, 40.0),
        (None, 60.0),
    ])
    def test_base_score_by_source(self, source, expected):
        assert score_signals(replace(BASELINE, match_source=source)) == expected

    def test_correction_outranks_text_search_at_equal_coverage(self):
        half = replace(BASELINE, matched_keywords=1, total_keywords=2)

        correction = score_signals(replace(half, match_source=MatchSource.USER_CORRECTION))
        text = score_signals(replace(half, match_source=MatchSource.TEXT_SEARCH))

        assert correction == pytest.approx(95 * 0.75)
        assert text == pytest.approx(60 * 0.75)
        assert correction > text


class TestKeywordCoverage:
    """score *= 0.5 + 0.5 * coverage"""

    def test_half_coverage(self):
        assert score_signals(replace(BASELINE, matched_keywords=1, total_keywords=2)) == 45.0

    def test_no_coverage_halves_score(self):
        assert score_signals(replace(BASELINE, matched_keywords=0, total_keywords=3)) == 30.0

    def test_no_keywords_counts_as_no_coverage(self):
        assert score_signals(replace(BASELINE, matched_keywords=0, total_keywords=0)) == 30.0


class TestBonuses:
    """Additive bonuses applied after coverage scaling"""

    def test_exact_unit(self):
        assert score_signals(replace(BASELINE, unit_match=UnitMatch.EXACT)) == 75.0

    def test_compatible_unit(self):
        assert score_signals(replace(BASELINE, unit_match=UnitMatch.COMPATIBLE)) == 68.0

    def test_exact_quantity(self):
        assert score_signals(replace(BASELINE, quantity_ratio=1.0)) == 70.0

    @pytest.mark.parametrize("ratio", [0.5, 1.5, 2.0])
    def test_near_quantity(self, ratio):
        assert score_signals(replace(BASELINE, quantity_ratio=ratio)) == 65.0

    @pytest.mark.parametrize("ratio", [0.25, 2.5, 4.0])
    def test_far_quantity_no_bonus(self, ratio):
        assert score_signals(replace(BASELINE, quantity_ratio=ratio)) == 60.0

    def test_scraped_within_one_day(self):
        assert score_signals(replace(BASELINE, age_days=0.5)) == 68.0

    def test_scraped_within_three_days(self):
        assert score_signals(replace(BASELINE, age_days=2.0)) == 64.0

    def test_scraped_three_days_ago_no_bonus(self):
        assert score_signals(replace(BASELINE, age_days=3.0)) == 60.0

    def test_promotion(self):
        assert score_signals(replace(BASELINE, on_promotion=True)) == 65.0

    def test_score_capped_at_100(self):
        """95 + 15 + 10 + 8 + 5 would be 133"""
        stacked = ScoreSignals(
            match_source=MatchSource.USER_CORRECTION,
            matched_keywords=2,
            total_keywords=2,
            unit_match=UnitMatch.EXACT,
            quantity_ratio=1.0,
            age_days=0.1,
            on_promotion=True,
        )

        assert score_signals(stacked) == 100.0


class TestSignalExtraction:
    """Signals derived from a catalog entry and a normalized item"""

    def test_exact_unit_and_quantity_ratio(self):
        entry = make_entry("rice", "Pishori Rice 1kg", 150.0, amount=1, unit="kg")
        signals = extract_signals(entry, normalize_item("2kg rice"), MatchSource.TEXT_SEARCH, FIXED_NOW)

        assert signals.matched_keywords == 1
        assert signals.total_keywords == 1
        assert signals.unit_match is UnitMatch.EXACT
        assert signals.quantity_ratio == pytest.approx(2.0)
        assert signals.age_days == pytest.approx(5.0)
        assert signals.on_promotion is False

    def test_compatible_unit_converts_quantity(self):
        entry = make_entry("rice", "Basmati Rice 500g", 90.0, amount=500, unit="g")
        signals = extract_signals(entry, normalize_item("2kg rice"), MatchSource.TEXT_SEARCH, FIXED_NOW)

        assert signals.unit_match is UnitMatch.COMPATIBLE
        assert signals.quantity_ratio == pytest.approx(4.0)

    def test_incompatible_unit_has_no_ratio(self):
        entry = make_entry("juice", "Rice Milk 1l", 200.0, amount=1, unit="l")
        signals = extract_signals(entry, normalize_item("2kg rice"), MatchSource.TEXT_SEARCH, FIXED_NOW)

        assert signals.unit_match is UnitMatch.NONE
        assert signals.quantity_ratio is None

    def test_partial_keyword_coverage(self):
        entry = make_entry("rice", "Pishori Rice 1kg", 150.0)
        signals = extract_signals(entry, normalize_item("brown rice"), MatchSource.REGEX, FIXED_NOW)

        assert signals.matched_keywords == 1
        assert signals.total_keywords == 2

    def test_promotion_detected(self):
        entry = make_entry("rice", "Rice 1kg", 150.0, original_price=180.0)
        signals = extract_signals(entry, normalize_item("rice"), MatchSource.TEXT_SEARCH, FIXED_NOW)

        assert signals.on_promotion is True

    def test_naive_scraped_at_treated_as_utc(self):
        entry = make_entry(
            "rice", "Rice", 150.0,
            scraped_at=(FIXED_NOW - timedelta(hours=12)).replace(tzinfo=None),
        )
        signals = extract_signals(entry, normalize_item("rice"), MatchSource.TEXT_SEARCH, FIXED_NOW)

        assert signals.age_days == pytest.approx(0.5)


class TestRanking:
    """Discarding weak candidates and ordering the rest"""

    def test_sorted_best_first(self):
        item = normalize_item("2kg rice")
        candidates = [
            MatchCandidate(make_entry("plain", "Rice", 100.0), MatchSource.TEXT_SEARCH),
            MatchCandidate(make_entry("sized", "Rice 1kg", 150.0, amount=1, unit="kg"), MatchSource.TEXT_SEARCH),
        ]

        ranked = rank_candidates(candidates, item, MatchSource.TEXT_SEARCH, FIXED_NOW)

        assert [c.entry.id for c in ranked] == ["sized", "plain"]
        assert ranked[0].score == 80.0
        assert ranked[1].score == 60.0

    def test_scores_at_threshold_discarded(self):
        """fuzzy with no keyword coverage scores exactly 20"""
        item = normalize_item("rice")
        candidates = [MatchCandidate(make_entry("x", "Sugar", 100.0), MatchSource.FUZZY)]

        ranked = rank_candidates(candidates, item, MatchSource.FUZZY, FIXED_NOW)

        assert candidates[0].score == DISCARD_THRESHOLD
        assert ranked == []

    def test_ties_keep_discovery_order(self):
        item = normalize_item("rice")
        candidates = [
            MatchCandidate(make_entry(str(i), f"Rice {i}", 100.0), MatchSource.TEXT_SEARCH)
            for i in range(4)
        ]

        ranked = rank_candidates(candidates, item, MatchSource.TEXT_SEARCH, FIXED_NOW)

        assert [c.entry.id for c in ranked] == ["0", "1", "2", "3"]
