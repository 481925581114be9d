"""Unit normalization, base-unit conversion and quantity scaling."""

import math
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .ports import CatalogEntry, PackageSize

# Canonical unit codes
CANONICAL_UNITS = {"kg", "g", "l", "ml", "unit"}

# Mapping from long forms and synonyms to canonical codes
UNIT_MAPPING: Dict[str, str] = {
    "gram": "g",
    "kilogram": "kg",
    "litre": "l",
    "liter": "l",
    "piece": "unit",
    "pc": "unit",
    "pcs": "unit",
}

# Units that collapse onto a base unit, with the divisor
BASE_UNIT_CONVERSIONS: Dict[str, Tuple[str, float]] = {
    "g": ("kg", 1000.0),
    "ml": ("l", 1000.0),
}

# Pairs that are convertible into each other without being identical
COMPATIBLE_UNIT_PAIRS = {
    frozenset({"kg", "g"}),
    frozenset({"l", "ml"}),
}

# Package sizes embedded in scraped product names ("Pishori Rice 2kg")
PACKAGE_SIZE_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(kg|g|l|ml|litre|liter|gram|kilogram)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class QuantityRequirement:
    """How many packages cover a requested quantity.

    can_fulfill is False when the requested unit cannot be converted to the
    package unit; multiplier is then 1.
    """
    multiplier: int
    can_fulfill: bool


def normalize_unit(unit: Optional[str]) -> Optional[str]:
    """Map a unit string to its canonical short form.

    Unknown units are returned lower-cased so callers can still compare them.
    """
    if not unit:
        return None
    unit_normalized = unit.strip().lower()
    return UNIT_MAPPING.get(unit_normalized, unit_normalized)


def convert_to_base_unit(amount: float, unit: str) -> Tuple[float, str]:
    """Convert an amount to its base unit (kg, l or unit).

    Examples:
        >>> convert_to_base_unit(500, "g")
        (0.5, 'kg')
        >>> convert_to_base_unit(250, "ml")
        (0.25, 'l')
    """
    if unit in BASE_UNIT_CONVERSIONS:
        base_unit, divisor = BASE_UNIT_CONVERSIONS[unit]
        return amount / divisor, base_unit
    return amount, unit


def are_units_compatible(unit1: str, unit2: str) -> bool:
    """True for convertible but distinct pairs (kg/g, l/ml)."""
    return frozenset({unit1, unit2}) in COMPATIBLE_UNIT_PAIRS


def calculate_quantity_requirements(
    requested_qty: Optional[float],
    requested_unit: Optional[str],
    package: Optional[PackageSize]
) -> QuantityRequirement:
    """Number of packages needed to cover the requested quantity.

    Args:
        requested_qty: Requested amount from the basket line
        requested_unit: Canonical requested unit
        package: Package size of the candidate entry

    Returns:
        QuantityRequirement; (1, True) when any input is missing since no
        constraint can be enforced.
    """
    if not requested_qty or not requested_unit or package is None:
        return QuantityRequirement(multiplier=1, can_fulfill=True)

    requested_amount, requested_base = convert_to_base_unit(requested_qty, requested_unit)
    package_amount, package_base = convert_to_base_unit(package.amount, normalize_unit(package.unit))

    if requested_base != package_base:
        return QuantityRequirement(multiplier=1, can_fulfill=False)

    if package_amount <= 0:
        return QuantityRequirement(multiplier=1, can_fulfill=True)

    # round() strips float noise such as 1.1 / 0.1 == 11.000000000000002
    multiplier = math.ceil(round(requested_amount / package_amount, 9))
    return QuantityRequirement(multiplier=max(multiplier, 1), can_fulfill=True)


def calculate_unit_price(entry: CatalogEntry) -> float:
    """Price per base unit of a catalog entry.

    Falls back to the raw current price when the package size is unknown;
    that value is an approximation, not a true per-unit price.
    """
    if entry.unit_price:
        return entry.unit_price

    per_unit = price_per_base_unit(entry.current_price, entry.unit)
    return per_unit if per_unit is not None else entry.current_price


def price_per_base_unit(price: float, package: Optional[PackageSize]) -> Optional[float]:
    """Price divided by the package amount in its base unit, or None."""
    if package is None:
        return None
    base_amount, _ = convert_to_base_unit(package.amount, normalize_unit(package.unit))
    if base_amount <= 0:
        return None
    return price / base_amount


def parse_package_size(name: str) -> Optional[PackageSize]:
    """Extract a package size from a product name, if one is embedded."""
    match = PACKAGE_SIZE_PATTERN.search(name or "")
    if not match:
        return None
    return PackageSize(amount=float(match.group(1)), unit=normalize_unit(match.group(2)))
