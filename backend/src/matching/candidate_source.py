"""SQLAlchemy implementation of the candidate source port.

Each query opens its own short-lived session from the session factory, so
one SqlCandidateSource can be shared by concurrent per-item matching
threads. Every SQLAlchemyError is wrapped in CandidateSourceError.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy import and_, or_, select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from common.exceptions import CandidateSourceError
from models.deal import Deal
from models.user_correction import UserCorrection
from .ports import CandidateSourcePort, CatalogEntry, Correction, PackageSize

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so keywords match literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; all stored times are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def deal_to_entry(deal: Deal) -> CatalogEntry:
    """Map a Deal row to the matcher's CatalogEntry."""
    package = None
    if deal.unit_amount is not None and deal.unit:
        package = PackageSize(amount=float(deal.unit_amount), unit=deal.unit)

    return CatalogEntry(
        id=str(deal.id),
        name=deal.name,
        store=deal.store,
        current_price=float(deal.current_price),
        original_price=float(deal.original_price) if deal.original_price is not None else None,
        unit=package,
        unit_price=float(deal.unit_price) if deal.unit_price is not None else None,
        category=deal.category,
        scraped_at=_as_utc(deal.scraped_at),
        is_active=bool(deal.is_active),
    )


class SqlCandidateSource(CandidateSourcePort):
    """Candidate source backed by the deal and user_correction tables.

    Full-text search uses PostgreSQL's to_tsvector/to_tsquery when available
    and falls back to case-insensitive substring matching elsewhere (SQLite
    in tests).
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        """Initialize candidate source.

        Args:
            session_factory: Factory producing database sessions
            clock: Returns the current aware UTC time for recency filters
        """
        self.session_factory = session_factory
        self.clock = clock

    def text_search(
        self,
        keywords: List[str],
        active_only: bool,
        recency_window: Optional[timedelta],
        limit: int
    ) -> List[CatalogEntry]:
        if not keywords:
            return []

        def query(session: Session) -> List[Deal]:
            stmt = select(Deal).where(*self._filters(active_only, recency_window))
            if session.get_bind().dialect.name == "postgresql":
                document = func.to_tsvector("english", Deal.name)
                ts_query = func.to_tsquery("english", " | ".join(keywords))
                stmt = stmt.where(document.bool_op("@@")(ts_query)).order_by(
                    func.ts_rank(document, ts_query).desc()
                )
            else:
                stmt = stmt.where(
                    or_(*[Deal.name.ilike(f"%{escape_like(k)}%", escape=LIKE_ESCAPE) for k in keywords])
                ).order_by(Deal.scraped_at.desc())
            return session.execute(stmt.limit(limit)).scalars().all()

        return [deal_to_entry(deal) for deal in self._run("text_search", query)]

    def regex_search(
        self,
        keywords_all_of: List[str],
        active_only: bool,
        recency_window: Optional[timedelta],
        limit: int
    ) -> List[CatalogEntry]:
        if not keywords_all_of:
            return []

        def query(session: Session) -> List[Deal]:
            stmt = (
                select(Deal)
                .where(*self._filters(active_only, recency_window))
                .where(and_(*[
                    Deal.name.ilike(f"%{escape_like(k)}%", escape=LIKE_ESCAPE)
                    for k in keywords_all_of
                ]))
                .order_by(Deal.scraped_at.desc())
                .limit(limit)
            )
            return session.execute(stmt).scalars().all()

        return [deal_to_entry(deal) for deal in self._run("regex_search", query)]

    def sample_recent(
        self,
        active_only: bool,
        recency_window: Optional[timedelta],
        limit: int
    ) -> List[CatalogEntry]:
        def query(session: Session) -> List[Deal]:
            stmt = (
                select(Deal)
                .where(*self._filters(active_only, recency_window))
                .order_by(Deal.scraped_at.desc())
                .limit(limit)
            )
            return session.execute(stmt).scalars().all()

        return [deal_to_entry(deal) for deal in self._run("sample_recent", query)]

    def find_by_id(self, entry_id: str) -> Optional[CatalogEntry]:
        try:
            deal_uuid = uuid.UUID(str(entry_id))
        except ValueError:
            return None

        deal = self._run("find_by_id", lambda session: session.get(Deal, deal_uuid))
        return deal_to_entry(deal) if deal is not None else None

    def latest_correction_matching(self, keywords: List[str]) -> Optional[Correction]:
        if not keywords:
            return None

        # "%k1%k2%" matches the keywords in order, like the pattern k1.*k2
        pattern = "%" + "%".join(escape_like(k) for k in keywords) + "%"

        def query(session: Session) -> Optional[UserCorrection]:
            stmt = (
                select(UserCorrection)
                .where(UserCorrection.original_query.ilike(pattern, escape=LIKE_ESCAPE))
                .order_by(UserCorrection.timestamp.desc())
                .limit(1)
            )
            return session.execute(stmt).scalars().first()

        correction = self._run("latest_correction_matching", query)
        if correction is None:
            return None

        return Correction(
            original_query=correction.original_query,
            corrected_entry_id=correction.corrected_entry_id,
            corrected_name=correction.corrected_name,
            confidence=float(correction.confidence),
            timestamp=_as_utc(correction.timestamp),
        )

    def _filters(self, active_only: bool, recency_window: Optional[timedelta]) -> list:
        filters = []
        if active_only:
            filters.append(Deal.is_active.is_(True))
        if recency_window is not None:
            filters.append(Deal.scraped_at >= self.clock() - recency_window)
        return filters

    def _run(self, operation: str, query: Callable[[Session], object]):
        session = self.session_factory()
        try:
            return query(session)
        except SQLAlchemyError as e:
            logger.error(f"Candidate source query '{operation}' failed: {e}")
            raise CandidateSourceError(f"{operation} failed: {e}") from e
        finally:
            session.close()
