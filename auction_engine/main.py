"""
FastAPI application entry point
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker

from auction_engine.api import admin, bids, listings, orders, payments
from auction_engine.core.config import Settings, get_settings
from auction_engine.core.database import dispose_engine, get_session_factory
from auction_engine.core.logging_config import setup_logging
from auction_engine.core.metrics import get_metrics
from auction_engine.core.retry import RetryConfig
from auction_engine.middleware.tracing import TracingMiddleware
from auction_engine.services import (
    AuctionScheduler,
    AuctionServiceError,
    BiddingService,
    CancellationService,
    EventNotifier,
    SettlementService,
    create_notifier,
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    notifier: Optional[EventNotifier] = None,
) -> FastAPI:
    """Build the app and wire its services onto app.state"""
    settings = settings or get_settings()
    owns_engine = session_factory is None
    session_factory = session_factory or get_session_factory()
    notifier = notifier or create_notifier(settings)
    retry = RetryConfig.from_settings(settings)

    settlement = SettlementService(session_factory, notifier, settings=settings, retry=retry)
    scheduler = AuctionScheduler(
        session_factory,
        settlement,
        interval_seconds=settings.SCHEDULER_INTERVAL_SECONDS,
        batch_size=settings.SCHEDULER_BATCH_SIZE,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan events for startup and shutdown"""
        setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
        logger.info(f"🚀 Starting {settings.APP_NAME} v{settings.APP_VERSION}...")

        # Test database connection
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
            logger.info("✅ Database connection successful")
        except Exception as e:
            logger.error(f"❌ Database connection failed: {e}")
            raise

        await notifier.connect()

        if settings.SCHEDULER_ENABLED:
            await scheduler.start()

        yield

        logger.info("🛑 Shutting down...")
        await scheduler.stop()
        await notifier.disconnect()
        if owns_engine:
            await dispose_engine()
        logger.info("✅ Cleanup complete")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Auction bidding and lifecycle engine",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.notifier = notifier
    app.state.bidding = BiddingService(session_factory, notifier, retry=retry)
    app.state.cancellation = CancellationService(session_factory, notifier, retry=retry)
    app.state.settlement = settlement
    app.state.scheduler = scheduler

    @app.exception_handler(AuctionServiceError)
    async def auction_error_handler(request: Request, exc: AuctionServiceError):
        """Render domain errors as {"error": code, "message": ...}"""
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.add_middleware(TracingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "scheduler": "running" if scheduler.running else "stopped",
        }

    @app.get("/metrics", tags=["Health"])
    async def metrics():
        """Prometheus metrics endpoint"""
        data, content_type = get_metrics()
        return Response(content=data, media_type=content_type)

    app.include_router(listings.router)
    app.include_router(bids.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(admin.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "auction_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
