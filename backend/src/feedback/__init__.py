"""Feedback module for the matching learning loop.

Users correct a basket line's match; the correction is stored and takes
precedence in the first matching stage for similar queries.
"""

from .service import CorrectionService

__all__ = [
    "CorrectionService",
]
