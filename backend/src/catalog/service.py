"""Catalog service: deal ingestion and read views.

Ingestion upserts scraped deals. A record is the same deal as an existing
row when name (case-insensitive), store and current price all match; the
existing row is refreshed instead of duplicated. Package size is inferred
from the name when the record does not carry one, and unit price is derived
from it. Every write batch clears the basket cache.
"""

import csv
import logging
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Callable, List, Optional, Tuple

import chardet
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Text, case, cast, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from basket.schemas import CacheStatsResponse
from basket.service import round_half_up
from matching.cache import BasketCache
from matching.candidate_source import LIKE_ESCAPE, escape_like
from matching.normalizer import normalize_item
from matching.ports import PackageSize
from matching.units import normalize_unit, parse_package_size, price_per_base_unit
from models.deal import Deal
from models.user_correction import UserCorrection
from observability.metrics import catalog_deals_written_total
from .schemas import (
    CatalogStatsResponse,
    DealIn,
    DealResponse,
    DealSortField,
    ImportRecordError,
    ImportResult,
    SortOrder,
)

logger = logging.getLogger(__name__)

BEST_DEALS_WINDOW = timedelta(days=7)
NEW_DEAL_WINDOW = timedelta(hours=2)
STATS_RECENT_DEALS = 5

# Stored discount, else (original - current) / original as a percentage
effective_discount = func.coalesce(
    Deal.discount,
    case(
        (
            Deal.original_price > Deal.current_price,
            (Deal.original_price - Deal.current_price) * 100.0 / Deal.original_price,
        ),
        else_=None,
    ),
)

SORT_COLUMNS = {
    DealSortField.SCRAPED_AT: Deal.scraped_at,
    DealSortField.CURRENT_PRICE: Deal.current_price,
    DealSortField.DISCOUNT: effective_discount,
    DealSortField.UNIT_PRICE: Deal.unit_price,
    DealSortField.NAME: Deal.name,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; all stored times are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def resolve_discount(record: DealIn) -> Optional[float]:
    """Discount from the record, else the whole percentage off the original price."""
    if record.discount is not None:
        return record.discount
    if record.original_price and record.original_price > record.current_price:
        return round_half_up((record.original_price - record.current_price) / record.original_price * 100)
    return None


def is_new_deal(deal: Deal, now: datetime) -> bool:
    """True when the deal was scraped within NEW_DEAL_WINDOW of now."""
    return now - _as_utc(deal.scraped_at) < NEW_DEAL_WINDOW


def resolve_package_size(record: DealIn) -> Optional[PackageSize]:
    """Package size from the record, else inferred from the product name."""
    if record.unit_amount and record.unit:
        return PackageSize(amount=record.unit_amount, unit=normalize_unit(record.unit))
    return parse_package_size(record.name)


class CatalogService:
    """Service for writing and reading catalog deals"""

    def __init__(
        self,
        db: Session,
        cache: BasketCache,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.db = db
        self.cache = cache
        self.clock = clock

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def upsert_deals(self, records: List[DealIn]) -> ImportResult:
        """Create or refresh deals.

        A failing record is logged and counted; it does not abort the batch.

        Args:
            records: Validated deal records

        Returns:
            ImportResult with created/updated/error counts
        """
        result = ImportResult(total_rows=len(records))
        self._write(list(enumerate(records, start=1)), result)
        self._finish_write(result)
        return result

    def import_from_csv(self, file_bytes: bytes) -> ImportResult:
        """Import deals from CSV file bytes.

        Columns: name, store, current_price (required); original_price,
        discount, discount_type, valid_until, locations (";"-separated),
        unit_amount, unit, category, image, description, source_url
        (optional). Rows that fail
        validation are reported with their CSV row number.
        """
        detected = chardet.detect(file_bytes)
        encoding = detected['encoding'] or 'utf-8'
        try:
            text = file_bytes.decode(encoding)
        except UnicodeDecodeError:
            text = file_bytes.decode('utf-8', errors='replace')

        result = ImportResult()
        rows: List[Tuple[int, DealIn]] = []

        # Row 1 is the header
        for row_num, row in enumerate(csv.DictReader(StringIO(text)), start=2):
            result.total_rows += 1
            fields = {
                key.strip(): value.strip()
                for key, value in row.items()
                if key and isinstance(value, str) and value.strip()
            }
            try:
                rows.append((row_num, DealIn.model_validate(fields)))
            except PydanticValidationError as e:
                result.error_count += 1
                result.errors.append(ImportRecordError(
                    row=row_num,
                    name=fields.get('name'),
                    error="; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()),
                ))

        self._write(rows, result)
        result.errors.sort(key=lambda err: err.row)
        self._finish_write(result)
        return result

    def _write(self, rows: List[Tuple[int, DealIn]], result: ImportResult) -> None:
        for row_num, record in rows:
            try:
                created = self._upsert_deal(record)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(
                    f"Skipping deal '{record.name}' ({record.store.value}): {e}",
                    exc_info=True
                )
                catalog_deals_written_total.labels(store=record.store.value, outcome="error").inc()
                result.error_count += 1
                result.errors.append(ImportRecordError(row=row_num, name=record.name, error=str(e)))
                continue

            catalog_deals_written_total.labels(
                store=record.store.value,
                outcome="created" if created else "updated",
            ).inc()
            if created:
                result.created_count += 1
            else:
                result.updated_count += 1

    def _upsert_deal(self, record: DealIn) -> bool:
        """Returns True when a new deal row was created."""
        package = resolve_package_size(record)
        unit_price = price_per_base_unit(record.current_price, package)
        discount = resolve_discount(record)
        now = self.clock()

        existing = self.db.execute(
            select(Deal).where(
                func.lower(Deal.name) == record.name.lower(),
                Deal.store == record.store.value,
                Deal.current_price == record.current_price,
            ).limit(1)
        ).scalars().first()

        if existing is not None:
            existing.original_price = record.original_price
            existing.discount = discount
            existing.discount_type = record.discount_type.value
            existing.valid_until = record.valid_until
            existing.locations = record.locations or existing.locations
            existing.unit_amount = package.amount if package else None
            existing.unit = package.unit if package else None
            existing.unit_price = unit_price
            existing.category = record.category or existing.category
            existing.image = record.image or existing.image
            existing.description = record.description or existing.description
            existing.source_url = record.source_url or existing.source_url
            existing.is_active = record.is_active
            existing.scraped_at = now
            self.db.flush()
            return False

        self.db.add(Deal(
            name=record.name,
            store=record.store.value,
            current_price=record.current_price,
            original_price=record.original_price,
            discount=discount,
            discount_type=record.discount_type.value,
            valid_until=record.valid_until,
            locations=record.locations,
            unit_amount=package.amount if package else None,
            unit=package.unit if package else None,
            unit_price=unit_price,
            category=record.category,
            image=record.image,
            description=record.description,
            source_url=record.source_url,
            is_active=record.is_active,
            scraped_at=now,
        ))
        self.db.flush()
        return True

    def _finish_write(self, result: ImportResult) -> None:
        if result.created_count or result.updated_count:
            self.cache.clear()

        logger.info(
            f"Catalog import finished: {result.created_count} created, "
            f"{result.updated_count} updated, {result.error_count} errors"
        )

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    def list_deals(
        self,
        store: Optional[str] = None,
        category: Optional[str] = None,
        min_discount: Optional[float] = None,
        location: Optional[str] = None,
        sort_by: DealSortField = DealSortField.SCRAPED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[Deal], int]:
        """Active deals with the unpaginated total.

        Args:
            store: Store filter (case-insensitive)
            category: Category substring
            min_discount: Minimum discount percentage
            location: Place the deal must be available in
            sort_by: Listing order field (newest first by default)
            sort_order: asc or desc
            limit: Page size
            offset: Rows to skip
        """
        filters = [Deal.is_active.is_(True)]
        if store:
            filters.append(Deal.store == store.lower())
        if category:
            filters.append(Deal.category.ilike(f"%{escape_like(category)}%", escape=LIKE_ESCAPE))
        if min_discount is not None:
            filters.append(effective_discount >= min_discount)
        if location:
            # Matches the quoted element inside the serialized JSON array
            location_pattern = f'%"{escape_like(location.strip().lower())}"%'
            filters.append(cast(Deal.locations, Text).like(location_pattern, escape=LIKE_ESCAPE))

        column = SORT_COLUMNS[sort_by]
        order = (column.asc() if sort_order == SortOrder.ASC else column.desc()).nulls_last()
        return self._page(filters, limit, offset, order_by=[order, Deal.scraped_at.desc()])

    def search_deals(
        self,
        query: str,
        store: Optional[str] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Deal], int]:
        """Active deals whose name contains any keyword of the query."""
        keywords = normalize_item(query).keywords
        if not keywords:
            return [], 0

        filters = [
            Deal.is_active.is_(True),
            or_(*[Deal.name.ilike(f"%{escape_like(k)}%", escape=LIKE_ESCAPE) for k in keywords]),
        ]
        if store:
            filters.append(Deal.store == store.lower())

        return self._page(filters, limit, offset)

    def best_deals(
        self,
        min_discount: float = 10,
        store: Optional[str] = None,
        category: Optional[str] = None,
        limit: int = 50
    ) -> List[Deal]:
        """Discounted deals from the last week, largest discount first."""
        stmt = select(Deal).where(
            Deal.is_active.is_(True),
            effective_discount > 0,
            effective_discount >= min_discount,
            Deal.scraped_at >= self.clock() - BEST_DEALS_WINDOW,
        )
        if store:
            stmt = stmt.where(Deal.store == store.lower())
        if category:
            stmt = stmt.where(Deal.category.ilike(f"%{escape_like(category)}%", escape=LIKE_ESCAPE))

        stmt = stmt.order_by(effective_discount.desc(), Deal.scraped_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def recent_deals(self, store: Optional[str] = None, limit: int = 30) -> List[Tuple[Deal, bool]]:
        """Most recently scraped active deals, each with its is-new flag."""
        stmt = select(Deal).where(Deal.is_active.is_(True))
        if store:
            stmt = stmt.where(Deal.store == store.lower())
        stmt = stmt.order_by(Deal.scraped_at.desc()).limit(limit)

        now = self.clock()
        return [(deal, is_new_deal(deal, now)) for deal in self.db.execute(stmt).scalars().all()]

    def store_counts(self) -> List[Tuple[str, int, datetime, int]]:
        """(store, active deal count, last scraped, average discount) by count desc.

        Deals without a discount count as 0 in the average.
        """
        stmt = (
            select(
                Deal.store,
                func.count(Deal.id),
                func.max(Deal.scraped_at),
                func.avg(func.coalesce(effective_discount, 0)),
            )
            .where(Deal.is_active.is_(True))
            .group_by(Deal.store)
            .order_by(func.count(Deal.id).desc(), Deal.store)
        )
        return [
            (store, count, last_updated, self._rounded(average))
            for store, count, last_updated, average in self.db.execute(stmt).all()
        ]

    def category_counts(self) -> List[Tuple[str, int, int]]:
        """(category, active deal count, average discount) by count desc."""
        stmt = (
            select(
                Deal.category,
                func.count(Deal.id),
                func.avg(func.coalesce(effective_discount, 0)),
            )
            .where(Deal.is_active.is_(True), Deal.category.is_not(None), Deal.category != "")
            .group_by(Deal.category)
            .order_by(func.count(Deal.id).desc(), Deal.category)
        )
        return [
            (category, count, self._rounded(average))
            for category, count, average in self.db.execute(stmt).all()
        ]

    def stats(self) -> CatalogStatsResponse:
        """Catalog-wide counters, basket cache performance and the latest deals."""
        active = Deal.is_active.is_(True)

        total_deals = self.db.execute(select(func.count(Deal.id)).where(active)).scalar_one()
        total_corrections = self.db.execute(select(func.count(UserCorrection.id))).scalar_one()
        deals_by_store = dict(
            self.db.execute(
                select(Deal.store, func.count(Deal.id)).where(active).group_by(Deal.store)
            ).all()
        )
        average_discount = self.db.execute(
            select(func.avg(effective_discount)).where(active, effective_discount > 0)
        ).scalar_one()
        recent = self.db.execute(
            select(Deal).where(active).order_by(Deal.scraped_at.desc()).limit(STATS_RECENT_DEALS)
        ).scalars().all()

        cache_stats = self.cache.stats()
        return CatalogStatsResponse(
            total_active_deals=total_deals,
            total_user_corrections=total_corrections,
            deals_by_store=deals_by_store,
            average_discount=self._rounded(average_discount),
            cache_performance=CacheStatsResponse(
                keys=cache_stats.keys,
                hits=cache_stats.hits,
                misses=cache_stats.misses,
                hit_rate=cache_stats.hit_rate,
            ),
            last_updated=self.clock(),
            recent_deals=[DealResponse.from_deal(deal) for deal in recent],
        )

    @staticmethod
    def _rounded(average) -> int:
        return int(round_half_up(float(average))) if average is not None else 0

    def _page(
        self,
        filters: list,
        limit: int,
        offset: int,
        order_by: Optional[list] = None
    ) -> Tuple[List[Deal], int]:
        total = self.db.execute(select(func.count(Deal.id)).where(*filters)).scalar_one()
        stmt = (
            select(Deal)
            .where(*filters)
            .order_by(*(order_by or [Deal.scraped_at.desc()]))
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.execute(stmt).scalars().all()), total
