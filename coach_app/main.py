"""Main FastAPI application for the coach notification service."""
from typing import Optional
import logging

from fastapi import FastAPI
from sqlalchemy.engine import Engine

from coach_app.config import Settings, get_settings
from coach_app.db.init import init_db
from coach_app.mcp.server import build_mcp_server
from coach_app.middleware.cors import add_cors_middleware
from coach_app.providers.gateway import DeliveryGateway
from coach_app.routers import commands_router, delivery_router, notifications_router
from coach_app.services.subsystem import build_subsystem

logger = logging.getLogger(__name__)


def create_app(
    engine: Optional[Engine] = None,
    settings: Optional[Settings] = None,
    gateway: Optional[DeliveryGateway] = None,
) -> FastAPI:
    """
    Build the application around one notification subsystem.

    Args:
        engine: Database engine (defaults to DATABASE_URL)
        settings: Runtime settings (defaults to the environment)
        gateway: Delivery gateway (defaults to in-app + webhook providers)
    """
    settings = settings or get_settings()
    if engine is None:
        from coach_app.db.config import engine as default_engine
        engine = default_engine

    app = FastAPI(
        title="Coach Notification API",
        description="Scheduling and delivery of coaching reminders, follow-ups and morning messages",
        version="1.0.0",
    )
    add_cors_middleware(app)

    subsystem = build_subsystem(engine, settings, gateway=gateway)
    app.state.subsystem = subsystem
    app.state.mcp_server = build_mcp_server(subsystem.commands)

    @app.on_event("startup")
    async def startup_event():
        """Create tables, load the schedule index and start the dispatcher."""
        init_db(engine)
        loaded = subsystem.load_index()
        logger.info(f"Schedule index loaded with {loaded} pending notifications")
        await subsystem.gateway.initialize()

        if settings.dispatcher_enabled:
            subsystem.dispatcher.start()
            logger.info("Notification dispatcher started")
        logger.info(f"MCP Server initialized with tools: {app.state.mcp_server.list_tools()}")

    @app.on_event("shutdown")
    async def shutdown_event():
        await subsystem.dispatcher.stop()
        await subsystem.gateway.cleanup()
        logger.info("Application shutdown complete.")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": "1.0.0",
            "dispatcher_running": subsystem.dispatcher.is_running,
            "pending_in_index": len(subsystem.index),
        }

    @app.get("/metrics")
    async def metrics():
        """Dispatcher counters and timers."""
        return subsystem.metrics.get_metrics()

    app.include_router(notifications_router, prefix="/api")  # /api/{user_id}/notifications
    app.include_router(commands_router, prefix="/api")  # /api/{user_id}/commands/{tool}
    app.include_router(delivery_router, prefix="/api")  # /api/delivery/receipts

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "coach_app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
