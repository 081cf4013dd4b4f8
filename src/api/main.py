"""
Tract Affordability Atlas - FastAPI Application
Read-only API for tract affordability and metro percentile rankings
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config.database import test_connection
from config.settings import get_settings
from src.api.routes import router
from src.api.services.affordability_service import get_affordability_service
from src.utils.logging import setup_logging

settings = get_settings()
logger = setup_logging("api")


def _parse_cors_allow_origins(raw: str) -> list[str]:
    origins = [origin.strip() for origin in (raw or "").split(",") if origin.strip()]
    return origins or ["http://localhost:3000", "http://127.0.0.1:3000"]


# Initialize FastAPI app
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=settings.API_DESCRIPTION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable in production
    redoc_url="/redoc" if settings.DEBUG else None,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_cors_allow_origins(settings.CORS_ALLOW_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include routes
app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    """Run on application startup"""
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}, dataset backend: {settings.DATASET_BACKEND}")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown"""
    logger.info("Shutting down API")


@app.get("/")
async def root():
    """
    Root endpoint - API information
    """
    return {
        "name": settings.API_TITLE,
        "version": settings.API_VERSION,
        "description": settings.API_DESCRIPTION,
        "docs": "/docs" if settings.DEBUG else "disabled in production",
        "endpoints": {
            "health": "/health",
            "affordability": "/api/v1/affordability",
            "tract_lookup": "/api/v1/tracts/lookup",
            "percentile": "/api/v1/percentile",
            "choropleth": "/api/v1/choropleth",
            "region_metrics": "/api/v1/regions/{region_id}/metrics",
        },
    }


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring

    Degraded when no county mapping loaded or the SQL dataset store is unreachable.
    """
    try:
        service = get_affordability_service()
        regions_mapped = len(service.lookups.county_to_region)

        db_ok = None
        if settings.DATASET_BACKEND == "sql":
            db_ok = test_connection()

        healthy = bool(regions_mapped) and db_ok is not False

        return {
            "status": "healthy" if healthy else "degraded",
            "dataset_backend": settings.DATASET_BACKEND,
            "database": "connected" if db_ok else ("not used" if db_ok is None else "disconnected"),
            "counties_mapped": regions_mapped,
            "caches": service.cache_stats(),
            "environment": settings.ENVIRONMENT,
        }

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {str(e)}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
