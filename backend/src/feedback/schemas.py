"""Pydantic schemas for correction feedback"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from basket.schemas import CamelModel


class CorrectMatchRequest(CamelModel):
    """Request body for recording a match correction.

    Fields are optional at the schema level so that missing values surface
    as the service's validation error rather than a generic schema error.
    """
    original_query: Optional[str] = Field(None, examples=["2kg rice"])
    corrected_entry_id: Optional[str] = None
    user_id: Optional[str] = None


class CorrectionResponse(CamelModel):
    id: str
    original_query: str
    corrected_entry_id: str
    corrected_name: str
    confidence: float
    user_id: str
    timestamp: datetime


class CorrectMatchResponse(CamelModel):
    success: bool = True
    message: str
    correction: CorrectionResponse
