"""Observability API endpoints: Prometheus metrics and health."""

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session

from database import get_db
from .health import HealthStatus, check_database_health, get_overall_health

router = APIRouter(tags=["observability"])


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    include_in_schema=False,
)
def metrics():
    """Expose Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get(
    "/health",
    summary="Health check endpoint",
    description="Returns database health and basket cache statistics",
)
def health_check(request: Request, db: Session = Depends(get_db)):
    """Check health of the service.

    Returns 200 when the database is reachable, 503 otherwise.

    Args:
        request: Incoming request (for the app-level basket cache)
        db: Database session

    Returns:
        JSONResponse with component statuses and overall status
    """
    components = {"database": check_database_health(db)}
    overall_status = get_overall_health(components)

    response_data = {
        "status": overall_status.value,
        "components": {
            name: {
                "status": comp.status.value,
                "message": comp.message,
                "latency_ms": comp.latency_ms,
            }
            for name, comp in components.items()
        },
    }

    cache = getattr(request.app.state, "basket_cache", None)
    if cache is not None:
        stats = cache.stats()
        response_data["cache"] = {
            "keys": stats.keys,
            "hits": stats.hits,
            "misses": stats.misses,
            "hitRate": stats.hit_rate,
        }

    status_code = 503 if overall_status == HealthStatus.UNHEALTHY else 200
    return JSONResponse(content=response_data, status_code=status_code)
