"""Unit tests for fuzzy name ranking"""

from fixtures.catalog import make_entry
from matching.fuzzy import fuzzy_rank


class TestFuzzyRank:
    """Approximate matching over a candidate pool"""

    def test_tolerates_typos(self):
        entries = [make_entry("rice", "Pishori Rice 1kg", 150.0)]

        ranked = fuzzy_rank("pishory rice", entries, max_distance=0.4, limit=10)

        assert [e.id for e in ranked] == ["rice"]

    def test_unrelated_names_excluded(self):
        entries = [
            make_entry("soap", "Dish Soap 500ml", 120.0),
            make_entry("rice", "Pishori Rice 1kg", 150.0),
        ]

        ranked = fuzzy_rank("rice", entries, max_distance=0.4, limit=10)

        assert [e.id for e in ranked] == ["rice"]

    def test_closest_first(self):
        entries = [
            make_entry("far", "Rich Tea Biscuits", 80.0),
            make_entry("near", "Brown Rice 2kg", 300.0),
        ]

        ranked = fuzzy_rank("brown rice", entries, max_distance=0.4, limit=10)

        assert ranked[0].id == "near"

    def test_limit_respected(self):
        entries = [make_entry(str(i), f"Rice pack {i}", 100.0) for i in range(5)]

        ranked = fuzzy_rank("rice", entries, max_distance=0.4, limit=2)

        assert [e.id for e in ranked] == ["0", "1"]

    def test_zero_distance_threshold_excludes_everything(self):
        entries = [make_entry("rice", "Rice", 100.0)]

        assert fuzzy_rank("rice", entries, max_distance=0.0, limit=10) == []

    def test_empty_inputs(self):
        entries = [make_entry("rice", "Rice", 100.0)]

        assert fuzzy_rank("", entries, max_distance=0.4, limit=10) == []
        assert fuzzy_rank("rice", [], max_distance=0.4, limit=10) == []
