"""User correction SQLAlchemy model.

Corrections are written by the feedback endpoint and never mutated; a newer
correction for a matching query supersedes older ones at lookup time.
"""

import uuid

from sqlalchemy import Column, Text, Numeric, Index, DateTime, Uuid

from .base import Base, utcnow


class UserCorrection(Base):
    """A user's statement that a query should match a specific deal.

    Attributes:
        original_query: Lower-cased, trimmed query text the user corrected
        corrected_entry_id: Deal id the query should resolve to
        corrected_name: Deal name at the time of the correction
        confidence: 0-100 trust in the correction
    """
    __tablename__ = "user_correction"
    __table_args__ = (
        Index("ix_user_correction_timestamp", "timestamp"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    original_query = Column(Text, nullable=False)
    corrected_entry_id = Column(Text, nullable=False)
    corrected_name = Column(Text, nullable=False)
    confidence = Column(Numeric(5, 2), nullable=False, default=90)
    user_id = Column(Text, nullable=False, default="anonymous")
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)
