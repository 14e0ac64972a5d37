"""
Blog View - FastAPI application
Content JSON endpoints plus the cache/monitoring operational surface
"""
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from blogview import content_api
from blogview.cache import FetchOrchestrator, get_orchestrator
from blogview.exceptions import TotalFailureError, UpstreamError
from blogview.telemetry import PerformanceMetrics, get_metrics
from config.settings import settings

# Version tracking
APP_VERSION = "v0.3.0"
APP_NAME = "Blog View"

app = FastAPI(
    title=APP_NAME,
    description="Blog content served from Hygraph with tiered caching",
    version=APP_VERSION,
)


@app.exception_handler(TotalFailureError)
async def total_failure_handler(request, exc: TotalFailureError):
    return JSONResponse(
        status_code=503,
        content={"error": "Content temporarily unavailable", "operation": exc.operation},
    )


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": APP_VERSION}


# ===== CACHE ADMIN =====

@app.get("/cache/stats")
def cache_stats(
    action: Optional[str] = Query(default=None, pattern="^(prune|clear)$"),
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    """
    Get cache and deduplication statistics.

    ``?action=prune`` evicts expired entries, ``?action=clear`` removes all entries.
    """
    if action == "prune":
        removed = orchestrator.prune()
        return {
            "message": f"Cache pruned successfully. {removed} entries removed.",
            "removed": removed,
            "stats": orchestrator.stats(),
        }
    if action == "clear":
        removed = orchestrator.clear()
        return {
            "message": f"Cache cleared successfully. {removed} entries removed.",
            "removed": removed,
            "stats": orchestrator.stats(),
        }
    return orchestrator.stats()


@app.post("/cache/prune")
def cache_prune(orchestrator: FetchOrchestrator = Depends(get_orchestrator)):
    """Evict expired cache entries."""
    removed = orchestrator.prune()
    return {"removed": removed, "stats": orchestrator.stats()}


@app.post("/cache/clear")
def cache_clear(orchestrator: FetchOrchestrator = Depends(get_orchestrator)):
    """Remove all cache entries."""
    removed = orchestrator.clear()
    return {"removed": removed, "stats": orchestrator.stats()}


# ===== MONITORING =====

@app.get("/monitoring")
def monitoring(
    format: Optional[str] = Query(default=None, pattern="^(json|prometheus)$"),
    action: Optional[str] = Query(default=None, pattern="^quick$"),
    metrics: PerformanceMetrics = Depends(get_metrics),
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    """
    Performance metrics for the content data layer.

    ``?format=prometheus`` returns the Prometheus text format for scraping.
    """
    if action == "quick":
        return metrics.quick_status()

    if format == "prometheus":
        return PlainTextResponse(metrics.to_prometheus())

    report = metrics.snapshot()
    report["deduplication"] = orchestrator.coalescer.get_stats()
    report["cache"]["cacheStats"] = orchestrator.store.stats()
    return report


def _require_admin(x_admin_key: Optional[str]) -> None:
    if settings.admin_key and x_admin_key != settings.admin_key:
        raise HTTPException(status_code=403, detail="Admin access required")


@app.post("/monitoring/reset")
def monitoring_reset(
    x_admin_key: Optional[str] = Header(default=None),
    metrics: PerformanceMetrics = Depends(get_metrics),
):
    """Reset metrics (requires the admin key when one is configured)."""
    _require_admin(x_admin_key)
    metrics.reset()
    return {"message": "Metrics reset successfully"}


# ===== CONTENT =====

@app.get("/api/posts")
def list_posts(
    limit: int = Query(default=content_api.DEFAULT_PAGE_SIZE, ge=1, le=content_api.MAX_POSTS_PER_PAGE),
    forceRefresh: bool = Query(default=False, description="Bypass cache and fetch fresh data"),
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    posts = content_api.get_posts(limit=limit, force_refresh=forceRefresh, orchestrator=orchestrator)
    return {"posts": posts, "count": len(posts)}


@app.get("/api/posts/featured")
def featured_posts(orchestrator: FetchOrchestrator = Depends(get_orchestrator)):
    return {"posts": content_api.get_featured_posts(orchestrator=orchestrator)}


@app.get("/api/posts/recent")
def recent_posts(
    limit: int = Query(default=3, ge=1, le=content_api.MAX_POSTS_PER_PAGE),
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    return {"posts": content_api.get_recent_posts(limit=limit, orchestrator=orchestrator)}


@app.get("/api/posts/{slug}")
def post_details(slug: str, orchestrator: FetchOrchestrator = Depends(get_orchestrator)):
    """Single post; 503 when it cannot be loaded from any endpoint."""
    return content_api.get_post_details(slug, orchestrator=orchestrator)


@app.get("/api/categories")
def list_categories(orchestrator: FetchOrchestrator = Depends(get_orchestrator)):
    return {"categories": content_api.get_categories(orchestrator=orchestrator)}


@app.get("/api/categories/{slug}/posts")
def category_posts(slug: str, orchestrator: FetchOrchestrator = Depends(get_orchestrator)):
    return {"slug": slug, "posts": content_api.get_category_posts(slug, orchestrator=orchestrator)}


@app.get("/api/authors")
def list_authors(orchestrator: FetchOrchestrator = Depends(get_orchestrator)):
    return {"authors": content_api.get_authors(orchestrator=orchestrator)}


@app.get("/api/search")
def search(
    q: str = Query(..., min_length=2, description="Search term"),
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    posts = content_api.search_posts(q, orchestrator=orchestrator)
    return {"query": q, "posts": posts, "count": len(posts)}


# ===== MUTATIONS =====

class MutationRequest(BaseModel):
    """Request body for content mutations."""
    query: str
    variables: Optional[Dict[str, Any]] = None


@app.post("/admin/mutate")
def run_mutation(
    request: MutationRequest,
    x_admin_key: Optional[str] = Header(default=None),
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
):
    """
    Forward a mutation to the Content API and invalidate cached reads.

    Upstream failures are reported as 502.
    """
    _require_admin(x_admin_key)
    try:
        data = orchestrator.mutate(request.query, request.variables)
    except UpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"data": data}
