"""
Main FastAPI application (entrypoint).

Responsibilities:
- Wire API routers (push subscriptions, weather proxy)
- Register centralized exception handlers
- Provide middleware: CORS, request-id logging
- Add health / readiness endpoints
- Start the two-hour notification scheduler on startup, stop it on shutdown
Notes:
- DATABASE_URL=memory keeps subscriptions in-process (dev only)
- Without VAPID keys notifications are logged by the console channel instead of pushed
"""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from api import routes_user, routes_weather
from config.settings import Settings, settings as default_settings
from core.container import Services, build_services
from core.errors import StorageError
from core.exception_handlers import register_exception_handlers
from core.logging import configure_logging, request_logging_middleware
from core.response import ok, error


def create_app(services: Optional[Services] = None, settings: Settings = default_settings) -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    if services is None:
        services = build_services(settings)

    app = FastAPI(title=settings.API_TITLE, version=settings.API_VERSION)
    app.state.services = services

    # CORS - the push client is served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    app.include_router(routes_user.router, prefix="/api", tags=["subscriptions"])
    app.include_router(routes_weather.router, prefix="/api/weather", tags=["weather"])

    register_exception_handlers(app)

    # Add request logging middleware (adds X-Request-ID header and logs)
    app.middleware("http")(request_logging_middleware)

    @app.get("/health")
    async def health(request: Request):
        """Simple health endpoint used by load balancers and orchestrators."""
        scheduler = request.app.state.services.scheduler
        return ok({
            "status": "ok",
            "scheduler_running": scheduler.is_running,
            "next_cycle_at": scheduler.next_fire_at.isoformat() if scheduler.next_fire_at else None,
        })

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness: the subscription store answers a count query."""
        try:
            total = await request.app.state.services.repository.count()
        except StorageError:
            return JSONResponse(status_code=503, content=error(code="db_unreachable", message="DB unavailable"))
        return ok({"ready": True, "subscriptions": total})

    @app.on_event("startup")
    async def on_startup():
        """Create tables (development convenience) and arm the scheduler."""
        await app.state.services.startup()

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.services.shutdown()

    return app


if __name__ == "__main__":
    # Run with: python main.py for local dev. For production use uvicorn with an app factory.
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=5000)
