"""Basket line normalization.

Turns free text such as "2kg Rice" into a NormalizedItem carrying the
requested quantity, its canonical unit and the search keywords.
"""

import re

from .ports import NormalizedItem
from .units import normalize_unit

QUANTITY_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(kg|g|l|ml|litre|liter|gram|kilogram|unit|piece|pc|pcs)\b",
    re.IGNORECASE,
)

NON_WORD_PATTERN = re.compile(r"[^\w\s]")
WHITESPACE_PATTERN = re.compile(r"\s+")

STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at",
    "to", "for", "of", "with", "by", "per",
})

MIN_KEYWORD_LENGTH = 3


def normalize_item(text: str) -> NormalizedItem:
    """Normalize one basket line.

    Only the first quantity token is extracted; it is removed from the clean
    text so that "2kg" never becomes a keyword.

    Args:
        text: Raw basket line

    Returns:
        NormalizedItem with quantity and unit unset when no quantity token
        was found
    """
    clean = text.lower().strip()
    quantity = None
    unit = None

    match = QUANTITY_PATTERN.search(clean)
    if match:
        quantity = float(match.group(1))
        unit = normalize_unit(match.group(2))
        clean = clean[:match.start()] + " " + clean[match.end():]
        clean = WHITESPACE_PATTERN.sub(" ", clean).strip()

    keywords = [
        word
        for word in WHITESPACE_PATTERN.split(NON_WORD_PATTERN.sub(" ", clean))
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOPWORDS
    ]

    return NormalizedItem(
        original_text=text,
        clean_text=clean,
        quantity=quantity,
        unit=unit,
        keywords=keywords,
    )
