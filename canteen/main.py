"""
FastAPI Application Entry Point

Canteen Management API - multi-canteen ordering backend.
Supports both Mock services (development) and Real APIs (production).

Endpoints:
    - /api/auth: Login, registration, profile
    - /api/users: Account administration (super admin)
    - /api/canteens: Canteen directory
    - /api/menu: Menus and stock
    - /api/orders: Queued order placement, tracking, analytics, export
    - /api/payment: Gateway checkout and payment QR codes
    - /api/feedback: Ratings for completed orders
    - GET /health: System health check
"""

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from canteen import database
from canteen.core.config import get_settings, setup_logging
from canteen.core.errors import register_exception_handlers
from canteen.routers import ALL_ROUTERS
from canteen.seed import seed_database
from canteen.services.cache import CacheManager
from canteen.services.order_queue import OrderQueue
from canteen.services.orders import order_processor
from canteen.services.payment import get_payment_gateway
from canteen.services.storage import get_image_storage, local_upload_root

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


def build_cache() -> CacheManager:
    return CacheManager(
        default_ttl=settings.cache_default_ttl,
        check_period=settings.cache_check_period,
        menu_ttl=settings.cache_menu_ttl,
        canteens_ttl=settings.cache_canteens_ttl,
        session_ttl=settings.cache_session_ttl,
        recent_orders_ttl=settings.cache_recent_orders_ttl,
    )


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await database.init_db()
    logger.info("✅ Database initialized")

    if settings.seed_on_startup and settings.is_development:
        async with database.async_session_maker() as session:
            await seed_database(session)

    cache = build_cache()
    cache.start()
    queue = OrderQueue(settings.order_queue_concurrency, processor=order_processor(cache))
    app.state.cache = cache
    app.state.order_queue = queue
    logger.info(f"✅ Order queue ready (max_concurrency={queue.max_concurrency})")

    # Log service configuration
    logger.info(f"✅ Payment Gateway: {get_payment_gateway('default').provider_name}")
    logger.info(f"✅ Image Storage: {get_image_storage().provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await queue.drain()
    await cache.stop()
    await database.dispose_db()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-canteen ordering backend with a concurrency-limited order queue, "
        "per-canteen payment gateways and in-process caching."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

for router in ALL_ROUTERS:
    app.include_router(router)

# Locally stored QR images (development storage backend)
if settings.is_development:
    upload_root = local_upload_root()
    os.makedirs(upload_root, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=upload_root), name="uploads")


# =============================================================================
# ROOT
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "canteen.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
