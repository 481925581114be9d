"""Database session factory and configuration.

Provides database connectivity and session management for the DealSpotter
backend. The matching pipeline opens short-lived sessions from SessionLocal
per query, so per-item matching threads never share a session.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import settings
from models.base import Base


def build_engine(database_url: str) -> Engine:
    """Create engine with connection pooling.

    Pool settings only apply to PostgreSQL (not SQLite).
    """
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": False,  # Set to True for SQL query logging
    }
    if not database_url.startswith("sqlite"):
        engine_kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        engine_kwargs["max_overflow"] = 10
    return create_engine(database_url, **engine_kwargs)


engine = build_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def init_db(bind: Engine = engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=bind)


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        def get_catalog_service(
            db: Session = Depends(get_db),
            cache: BasketCache = Depends(get_basket_cache)
        ) -> CatalogService:
            return CatalogService(db, cache)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
