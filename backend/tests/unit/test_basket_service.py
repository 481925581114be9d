"""Unit tests for basket comparison"""

import pytest

from basket.service import (
    BasketComparisonService,
    average_confidence,
    build_store_comparisons,
    count_found,
    round_half_up,
)
from common.exceptions import UnexpectedError, ValidationError
from fixtures.catalog import FIXED_NOW, InMemoryCandidateSource, make_entry
from matching.cache import BasketCache
from matching.pipeline import StagedMatcher
from matching.ports import MatchResult, MatchSource


def result(text, confidence, total=None, entry_id="x"):
    return MatchResult(
        input_text=text,
        confidence=confidence,
        match_source=MatchSource.TEXT_SEARCH,
        matched_entry_id=entry_id if total is not None else None,
        total_price=total,
    )


class FakeTimer:
    """Advances 0.25 s per call."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        self.now += 0.25
        return self.now


@pytest.fixture
def basket_entries():
    return [
        make_entry("rice-1kg", "Pishori Rice 1kg", 150.0, amount=1, unit="kg"),
        make_entry("milk-500ml", "Fresh Milk 500ml", 60.0, store="quickmart", amount=500, unit="ml"),
    ]


@pytest.fixture
def service(basket_entries, fake_clock):
    matcher = StagedMatcher(InMemoryCandidateSource(basket_entries), clock=lambda: FIXED_NOW)
    svc = BasketComparisonService(
        matcher,
        BasketCache(clock=fake_clock),
        max_workers=2,
        timer=FakeTimer(),
    )
    yield svc
    svc.close()


class TestCompare:
    """End-to-end basket comparison over an in-memory catalog"""

    def test_rice_and_milk_scaled(self, service):
        """1kg rice @150 and 500ml milk @60 for 2kg rice and 1L milk"""
        comparison = service.compare(["2kg rice", "1L milk"])

        rice, milk = comparison.item_details
        assert rice.matched_entry_id == "rice-1kg"
        assert rice.quantity_multiplier == 2
        assert rice.total_price == 300.0
        assert milk.matched_entry_id == "milk-500ml"
        assert milk.quantity_multiplier == 2
        assert milk.total_price == 120.0

    def test_results_keep_basket_order(self, service):
        comparison = service.compare(["1L milk", "2kg rice"])

        assert [r.input_text for r in comparison.item_details] == ["1L milk", "2kg rice"]

    def test_summary(self, service):
        comparison = service.compare(["2kg rice", "1L milk", "caviar"])

        assert comparison.summary.total_items == 3
        assert comparison.summary.items_found == 2
        assert comparison.summary.average_confidence == 51
        assert comparison.summary.processing_time_ms == 250
        assert comparison.cached is False

    def test_store_comparisons_total(self, service):
        comparison = service.compare(["2kg rice", "1L milk"])

        assert len(comparison.store_comparisons) == 4
        assert all(c.total == 420.0 for c in comparison.store_comparisons)
        assert all(c.items_found == 2 for c in comparison.store_comparisons)

    def test_repeat_is_cached(self, service):
        first = service.compare(["2kg rice", "1L milk"])
        second = service.compare(["1l MILK", "2kg rice"])

        assert second.cached is True
        assert second.summary.processing_time_ms == 0
        assert second.timestamp == first.timestamp
        assert second.store_comparisons == first.store_comparisons

    def test_cached_results_follow_request_order(self, service):
        service.compare(["2kg rice", "1L milk"])

        comparison = service.compare(["1L milk", "2kg rice"])

        assert comparison.cached is True
        assert [r.input_text for r in comparison.item_details] == ["1L milk", "2kg rice"]
        assert [r.matched_entry_id for r in comparison.item_details] == ["milk-500ml", "rice-1kg"]
        assert comparison.item_details[1].total_price == 300.0

    def test_cached_results_carry_request_text(self, service):
        service.compare(["Rice"])

        comparison = service.compare(["  rice "])

        assert comparison.cached is True
        assert comparison.item_details[0].input_text == "  rice "
        assert comparison.item_details[0].matched_entry_id == "rice-1kg"

    def test_duplicate_lines(self, service):
        comparison = service.compare(["2kg rice", "2KG RICE"])

        assert [r.input_text for r in comparison.item_details] == ["2kg rice", "2KG RICE"]
        assert all(r.matched_entry_id == "rice-1kg" for r in comparison.item_details)

    def test_cleared_cache_recomputes(self, service):
        service.compare(["2kg rice"])
        service.cache.clear()

        assert service.compare(["2kg rice"]).cached is False

    def test_unmatched_basket_has_no_store_comparisons(self, service):
        comparison = service.compare(["caviar"])

        assert comparison.store_comparisons == []
        assert comparison.summary.items_found == 0
        assert comparison.summary.average_confidence == 0


class TestValidation:
    """Malformed baskets are rejected before matching"""

    @pytest.mark.parametrize("items", [[], None, "2kg rice", ["rice", 3]])
    def test_rejected(self, service, items):
        with pytest.raises(ValidationError):
            service.compare(items)

    def test_rejected_basket_does_not_touch_cache(self, service):
        with pytest.raises(ValidationError):
            service.compare([])

        assert service.cache.stats().misses == 0


class TestUnexpectedFailure:
    """Non-domain errors surface as UnexpectedError"""

    def test_matcher_crash_wrapped(self, fake_clock):
        class BrokenMatcher:
            def match_text(self, text):
                raise KeyError(text)

        svc = BasketComparisonService(BrokenMatcher(), BasketCache(clock=fake_clock), max_workers=1)
        try:
            with pytest.raises(UnexpectedError):
                svc.compare(["rice"])
        finally:
            svc.close()


class TestAggregation:
    """Per-store totals and summary arithmetic"""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(1.005, 2) == 1.01
        assert round_half_up(120.125, 2) == 120.13
        assert round_half_up(299.994, 2) == pytest.approx(299.99)

    def test_items_found_excludes_confidence_50(self):
        matches = [result("a", 50.0, 10.0), result("b", 50.5, 10.0), result("c", 0.0)]

        assert count_found(matches) == 1

    def test_average_confidence_rounded(self):
        assert average_confidence([result("a", 80.0, 1.0), result("b", 0.0)]) == 40
        assert average_confidence([result("a", 80.0, 1.0), result("b", 1.0)]) == 41
        assert average_confidence([]) == 0

    def test_every_store_gets_every_matched_item(self):
        matches = [result("a", 80.0, 100.0, "x"), result("b", 70.0, 20.125, "y"), result("c", 0.0)]

        comparisons = build_store_comparisons(matches)

        assert [c.store for c in comparisons] == ["carrefour", "quickmart", "naivas", "tuskys"]
        for comparison in comparisons:
            assert comparison.total == 120.13
            assert comparison.items_found == 2
            assert comparison.total_items == 3
            assert comparison.confidence == 75
