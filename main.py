"""
FastAPI application entry point
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from api.routes import bookings as bookings_routes
from api.routes import chats as chats_routes
from api.routes import disputes as disputes_routes
from api.routes import notifications as notifications_routes
from api.routes import payments as payments_routes
from api.routes import payouts as payouts_routes
from api.routes import wallet as wallet_routes
from api.routes import ws as ws_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.container import build_container


# configure logging explicitly at the entry point, not on import
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.uses_memory_store:
        logger.info("database_initialized", store="memory")
    elif settings.DEBUG:
        from infrastructure.database import create_tables

        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info("database_schema_expected", message="No auto-create outside DEBUG; provision the schema first")

    container = await build_container(settings)
    await container.start()
    app.state.container = container
    logger.info("application_started", processor=container.processor.provider)

    yield

    await container.aclose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Services marketplace: escrow payments, disputes, payouts and realtime chat",
)

# middleware runs bottom-up: request id first, then logging, then CORS
app.add_middleware(RequestIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


app.include_router(payments_routes.router, prefix="/api/v1")
app.include_router(disputes_routes.router, prefix="/api/v1")
app.include_router(payouts_routes.router, prefix="/api/v1")
app.include_router(wallet_routes.router, prefix="/api/v1")
app.include_router(notifications_routes.router, prefix="/api/v1")
app.include_router(chats_routes.router, prefix="/api/v1")
app.include_router(bookings_routes.router, prefix="/api/v1")
app.include_router(ws_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
        message="Welcome"
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
