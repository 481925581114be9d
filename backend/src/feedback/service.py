"""Correction feedback service.

Records a user's statement that a query should match a specific deal.
Corrections feed the first stage of the matching pipeline, so every new
correction clears the basket cache.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from common.exceptions import NotFoundError, ValidationError
from config import settings
from matching.cache import BasketCache
from models.deal import Deal
from models.user_correction import UserCorrection

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


class CorrectionService:
    """Service for capturing user match corrections."""

    def __init__(
        self,
        db: Session,
        cache: BasketCache,
        confidence: Optional[float] = None
    ):
        """Initialize correction service.

        Args:
            db: Database session
            cache: Basket cache invalidated after each correction
            confidence: Confidence stored on new corrections
                (defaults to CORRECTION_CONFIDENCE)
        """
        self.db = db
        self.cache = cache
        self.confidence = confidence if confidence is not None else settings.CORRECTION_CONFIDENCE

    def record_correction(
        self,
        original_query: Optional[str],
        corrected_entry_id: Optional[str],
        user_id: Optional[str] = None
    ) -> UserCorrection:
        """Store a correction and invalidate the basket cache.

        Args:
            original_query: Basket line the user corrected
            corrected_entry_id: Deal id the query should resolve to
            user_id: Optional id of the correcting user

        Returns:
            Created UserCorrection

        Raises:
            ValidationError: If either required field is missing or blank
            NotFoundError: If corrected_entry_id does not resolve to a deal
        """
        if not original_query or not original_query.strip() or not corrected_entry_id:
            raise ValidationError("originalQuery and correctedEntryId are required")

        deal = self._find_deal(corrected_entry_id)
        if deal is None:
            raise NotFoundError("Deal", corrected_entry_id)

        correction = UserCorrection(
            original_query=original_query.lower().strip(),
            corrected_entry_id=str(deal.id),
            corrected_name=deal.name,
            confidence=self.confidence,
            user_id=user_id or ANONYMOUS_USER,
        )
        self.db.add(correction)
        self.db.commit()
        self.db.refresh(correction)

        self.cache.clear()

        logger.info(
            f"Recorded correction '{correction.original_query}' -> {correction.corrected_entry_id}",
            extra={"user_id": correction.user_id}
        )
        return correction

    def _find_deal(self, entry_id: str) -> Optional[Deal]:
        try:
            deal_uuid = uuid.UUID(str(entry_id))
        except ValueError:
            return None
        return self.db.get(Deal, deal_uuid)
