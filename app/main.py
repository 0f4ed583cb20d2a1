"""
Bricks Fulfillment Service
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from contextlib import asynccontextmanager

from app.config import get_settings
from app.utils.logger import log
from app import __version__

# Import routers
from app.api import health, returns, shipping, sync
from app.middleware.security_middleware import SecurityMiddleware

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from app.models.base import init_db
        init_db()
        log.info("Database initialized")
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Start the carrier order sync scheduler
    order_scheduler = None
    if settings.enable_order_sync_scheduler:
        try:
            from app.scheduler import get_order_sync_scheduler
            order_scheduler = get_order_sync_scheduler()
            order_scheduler.start()
            log.info("Scheduler started successfully")
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")
    else:
        log.info("Order sync scheduler disabled")

    yield

    # Shutdown
    if order_scheduler is not None:
        try:
            await order_scheduler.stop()
        except Exception as e:
            log.warning(f"Scheduler shutdown error: {str(e)}")

    from app.models.base import dispose_engine
    dispose_engine()
    log.info("Shutting down application")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Fulfillment backend for the Bricks store

    - Keeps shipments and order statuses in sync with Melhor Envio
    - Takes and reviews customer return requests
    - Buys (and voids) reverse-logistics labels for approved returns
    - Public tracking lookup
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Security middleware (Basic Auth gate for admin routes, X-Robots-Tag, Cache-Control)
app.add_middleware(SecurityMiddleware)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(returns.router)
app.include_router(shipping.router)
app.include_router(sync.router)


@app.get("/robots.txt", response_class=PlainTextResponse)
async def robots_txt():
    """Block all crawlers"""
    return "User-agent: *\nDisallow: /\n"


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "app": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "status": "/status",
        "endpoints": {
            "approve_return": "POST /admin/returns/approve",
            "reject_return": "POST /admin/returns/reject",
            "generate_return_label": "POST /admin/returns/generate-label",
            "cancel_return_label": "POST /admin/returns/cancel-label",
            "request_return": "POST /orders/{order_id}/request-return",
            "return_label": "GET /orders/{order_id}/return-label",
            "track_shipment": "GET /shipping/track/{code}",
            "sync_orders": "POST /sync/orders",
            "sync_status": "GET /sync/status",
            "sync_jobs": "GET /sync/jobs",
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
