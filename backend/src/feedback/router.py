"""Correction feedback endpoint"""

from fastapi import APIRouter, Depends

from dependencies import get_correction_service
from .schemas import CorrectMatchRequest, CorrectMatchResponse, CorrectionResponse
from .service import CorrectionService

router = APIRouter(prefix="/api/v1/deals", tags=["feedback"])


@router.post("/correct-match", response_model=CorrectMatchResponse, response_model_by_alias=True)
def correct_match(
    request: CorrectMatchRequest,
    service: CorrectionService = Depends(get_correction_service)
):
    """Record that a query should match a specific deal.

    The basket cache is cleared so the correction applies to the next
    comparison.

    Raises:
        ValidationError: If originalQuery or correctedEntryId is missing (400)
        NotFoundError: If correctedEntryId does not resolve to a deal (404)
    """
    correction = service.record_correction(
        original_query=request.original_query,
        corrected_entry_id=request.corrected_entry_id,
        user_id=request.user_id,
    )
    return CorrectMatchResponse(
        message="Correction saved successfully",
        correction=CorrectionResponse(
            id=str(correction.id),
            original_query=correction.original_query,
            corrected_entry_id=correction.corrected_entry_id,
            corrected_name=correction.corrected_name,
            confidence=float(correction.confidence),
            user_id=correction.user_id,
            timestamp=correction.timestamp,
        ),
    )
