"""
FastAPI backend serving meal and pantry item images.

Images resolve through an in-memory cache, the Supabase storage buckets and,
as a last resort, AI generation.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from constants import CATALOG_NAMES
from core.container import container, get_resolver, get_storage
from core.config import Settings
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import images
from services.media.exceptions import InvalidNameError

# Initialize settings and logging
settings = Settings()
configure_logging(settings)
logger = get_logger(__name__)

# Suppress noisy loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("PIL").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting image service",
                meals_bucket=settings.meals_bucket,
                pantry_bucket=settings.pantry_bucket)
    set_startup_time()

    for storage in (get_storage(name) for name in sorted(CATALOG_NAMES)):
        if not await storage.check_access():
            logger.warning("Bucket not accessible at startup; uploads will fail until fixed",
                           bucket=storage.bucket)

    logger.info("Services started successfully")
    yield

    await container.http_client().aclose()
    logger.info("Services shutdown complete")


app = FastAPI(
    title="Pantry Image Service",
    version="1.0.0",
    description="Cached AI-generated photos for meals and pantry items",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception: {type(e).__name__}: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": type(e).__name__,
                    "detail": "Internal server error"
                }
            )


app.add_middleware(CatchAllExceptionsMiddleware)

logger.info("Configuring CORS middleware",
           origins_count=len(settings.cors_origins),
           origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidNameError)
async def invalid_name_handler(request: Request, exc: InvalidNameError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "detail": str(exc)}
    )


app.include_router(images.router)


@app.get("/health")
async def health_check():
    """Uptime, bucket access and cache sizes."""
    return await get_health_status(
        resolvers={name: get_resolver(name) for name in sorted(CATALOG_NAMES)},
        storages={name: get_storage(name) for name in sorted(CATALOG_NAMES)},
        settings=container.settings(),
    )


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting image service",
               host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
