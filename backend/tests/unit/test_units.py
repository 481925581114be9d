"""Unit tests for unit conversion and quantity scaling"""

from dataclasses import replace

import pytest

from fixtures.catalog import make_entry
from matching.ports import PackageSize
from matching.units import (
    are_units_compatible,
    calculate_quantity_requirements,
    calculate_unit_price,
    convert_to_base_unit,
    normalize_unit,
    parse_package_size,
)


class TestBaseUnitConversion:
    """g and ml collapse onto kg and l; other units pass through"""

    def test_grams_to_kilograms(self):
        assert convert_to_base_unit(500, "g") == (0.5, "kg")

    def test_millilitres_to_litres(self):
        assert convert_to_base_unit(250, "ml") == (0.25, "l")

    @pytest.mark.parametrize("unit", ["kg", "l", "unit"])
    def test_base_units_unchanged(self, unit):
        assert convert_to_base_unit(3, unit) == (3, unit)

    def test_normalize_unit_synonyms(self):
        assert normalize_unit("Litre") == "l"
        assert normalize_unit("pcs") == "unit"
        assert normalize_unit("kg") == "kg"
        assert normalize_unit(None) is None

    def test_compatible_pairs(self):
        assert are_units_compatible("kg", "g")
        assert are_units_compatible("ml", "l")
        assert not are_units_compatible("kg", "l")
        assert not are_units_compatible("kg", "kg")


class TestQuantityRequirements:
    """Packages needed to cover a requested quantity"""

    def test_two_kg_against_500g_package(self):
        """ceil(2 / 0.5) = 4 packages"""
        req = calculate_quantity_requirements(2, "kg", PackageSize(amount=500, unit="g"))

        assert req.multiplier == 4
        assert req.can_fulfill is True

    def test_rounds_up_partial_packages(self):
        req = calculate_quantity_requirements(1.2, "kg", PackageSize(amount=1, unit="kg"))

        assert req.multiplier == 2

    def test_float_noise_does_not_add_a_package(self):
        """1.1 l in 100 ml packs is exactly 11 packs"""
        req = calculate_quantity_requirements(1.1, "l", PackageSize(amount=100, unit="ml"))

        assert req.multiplier == 11

    def test_smaller_request_needs_one_package(self):
        req = calculate_quantity_requirements(250, "g", PackageSize(amount=1, unit="kg"))

        assert req.multiplier == 1

    def test_incompatible_units_cannot_fulfill(self):
        req = calculate_quantity_requirements(2, "kg", PackageSize(amount=1, unit="l"))

        assert req.multiplier == 1
        assert req.can_fulfill is False

    @pytest.mark.parametrize("qty,unit,package", [
        (None, "kg", PackageSize(amount=1, unit="kg")),
        (2, None, PackageSize(amount=1, unit="kg")),
        (2, "kg", None),
        (0, "kg", PackageSize(amount=1, unit="kg")),
    ])
    def test_missing_input_is_unconstrained(self, qty, unit, package):
        req = calculate_quantity_requirements(qty, unit, package)

        assert req.multiplier == 1
        assert req.can_fulfill is True

    def test_piece_package_matches_unit_request(self):
        req = calculate_quantity_requirements(6, "unit", PackageSize(amount=4, unit="piece"))

        assert req.multiplier == 2
        assert req.can_fulfill is True


class TestUnitPrice:
    """Price per base unit of a catalog entry"""

    def test_precomputed_unit_price_wins(self):
        entry = make_entry("a", "Rice 1kg", 150.0, amount=1, unit="kg")
        entry = replace(entry, unit_price=140.0)

        assert calculate_unit_price(entry) == 140.0

    def test_derived_from_package_size(self):
        entry = make_entry("a", "Milk 500ml", 60.0, amount=500, unit="ml")

        assert calculate_unit_price(entry) == pytest.approx(120.0)

    def test_falls_back_to_current_price(self):
        entry = make_entry("a", "Bread", 55.0)

        assert calculate_unit_price(entry) == 55.0


class TestPackageSizeParsing:
    """Package sizes embedded in product names"""

    def test_parses_size_from_name(self):
        assert parse_package_size("Pishori Rice 2kg") == PackageSize(amount=2.0, unit="kg")

    def test_normalizes_long_unit(self):
        assert parse_package_size("Juice 1 Litre") == PackageSize(amount=1.0, unit="l")

    def test_no_size(self):
        assert parse_package_size("White Bread") is None
