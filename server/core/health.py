"""Health check utilities.

Provides uptime tracking and per-catalog storage status for /health.
"""
import time
from typing import Any, Dict, Mapping, TYPE_CHECKING

if TYPE_CHECKING:
    from core.config import Settings
    from services.media.service import ImageResolver
    from services.media.storage import SupabaseStorage

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_storage(storage: "SupabaseStorage") -> bool:
    """Check the bucket is readable and writable."""
    try:
        return await storage.check_access()
    except Exception:
        return False


async def get_health_status(
    resolvers: Mapping[str, "ImageResolver"],
    storages: Mapping[str, "SupabaseStorage"],
    settings: "Settings"
) -> Dict[str, Any]:
    """Get health status for the /health endpoint.

    Returns:
        Dict containing status, uptime, bucket checks and cache sizes.
    """
    checks = {name: await check_storage(storage) for name, storage in storages.items()}
    overall_status = "healthy" if all(checks.values()) else "degraded"

    return {
        "status": overall_status,
        "uptime_seconds": round(get_uptime(), 1),
        "environment": "development" if settings.is_development else "production",
        "checks": {f"storage:{name}": ok for name, ok in checks.items()},
        "caches": {
            name: {"size": stats.size, "pending": len(stats.pending)}
            for name, stats in ((n, r.stats()) for n, r in resolvers.items())
        },
    }
