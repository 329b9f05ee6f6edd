"""Liveness and dependency health endpoints."""

import logging
from datetime import datetime

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from canteen import database
from canteen.core.config import get_settings
from canteen.database import describe_url, get_db, is_using_fallback, ping_db
from canteen.deps import get_cache, get_order_queue
from canteen.schemas import HealthResponse
from canteen.services.cache import CacheManager
from canteen.services.order_queue import OrderQueue
from canteen.services.payment import get_payment_gateway
from canteen.services.storage import get_image_storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def redis_status() -> str:
    client = aioredis.from_url(get_settings().redis_url, socket_timeout=2)
    try:
        await client.ping()
        return "healthy"
    except (RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        return f"unhealthy: {e}"
    finally:
        await client.aclose()


@router.get("/api/ping")
async def ping() -> dict:
    return {"message": "pong"}


@router.get("/api/health")
async def api_health(
    cache: CacheManager = Depends(get_cache),
    queue: OrderQueue = Depends(get_order_queue),
) -> dict:
    settings = get_settings()
    return {
        "status": "OK",
        "timestamp": datetime.now().isoformat(),
        "environment": settings.env_mode.value,
        "cache": cache.stats(),
        "queue": queue.status(),
    }


@router.get("/api/db-status")
async def db_status(db: AsyncSession = Depends(get_db)) -> dict:
    error = await ping_db(db)
    return {
        "success": error is None,
        "data": {
            "connected": error is None,
            "using_fallback": is_using_fallback(),
            "url": describe_url(str(database.engine.url)),
            "error": error,
        },
    }


@router.get("/health", response_model=HealthResponse, summary="System Health Check")
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Verify all system components are operational."""
    error = await ping_db(db)
    db_state = "healthy" if error is None else f"unhealthy: {error}"
    if error:
        logger.error(f"Database health check failed: {error}")

    redis_state = await redis_status()

    # the fallback gateway stands in for every canteen without its own keys
    gateway = get_payment_gateway("default")
    payment_state = "healthy" if await gateway.health_check() else "unhealthy"
    storage_state = "healthy" if await get_image_storage().health_check() else "unhealthy"

    states = [db_state, redis_state, payment_state, storage_state]
    return HealthResponse(
        status="operational" if all(s == "healthy" for s in states) else "degraded",
        database=db_state,
        redis=redis_state,
        payment_service=payment_state,
        storage_service=storage_state,
        timestamp=datetime.now(),
    )
