"""Global FastAPI dependencies.

Long-lived components (basket cache, matcher, basket service) are built
once in the application lifespan and stored on app.state; these
dependencies hand them to endpoints.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from basket.service import BasketComparisonService
from catalog.service import CatalogService
from database import get_db
from feedback.service import CorrectionService
from matching.cache import BasketCache
from matching.pipeline import StagedMatcher


def get_basket_cache(request: Request) -> BasketCache:
    """Process-wide basket result cache."""
    return request.app.state.basket_cache


def get_matcher(request: Request) -> StagedMatcher:
    """Shared staged matcher."""
    return request.app.state.matcher


def get_basket_service(request: Request) -> BasketComparisonService:
    """Shared basket comparison service."""
    return request.app.state.basket_service


def get_correction_service(
    db: Session = Depends(get_db),
    cache: BasketCache = Depends(get_basket_cache)
) -> CorrectionService:
    """Correction service bound to the request's database session."""
    return CorrectionService(db, cache)


def get_catalog_service(
    db: Session = Depends(get_db),
    cache: BasketCache = Depends(get_basket_cache)
) -> CatalogService:
    """Catalog service bound to the request's database session."""
    return CatalogService(db, cache)
