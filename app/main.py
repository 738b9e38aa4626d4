from fastapi import FastAPI

from app.api.routes import health, sessions
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import init_db


def create_app() -> FastAPI:
    """
    Application factory for the Live Session Scheduler service.
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Backend service for scheduling live learning sessions.\n"
            "Recurring sessions are stored once and expanded into individual\n"
            "occurrences for calendar views, honouring UNTIL bounds and\n"
            "cancelled (excluded) dates."
        ),
        version="0.1.0",
    )

    # Routers
    app.include_router(health.router)
    app.include_router(sessions.router)

    @app.on_event("startup")
    async def on_startup() -> None:  # pragma: no cover
        await init_db()

    return app


app = create_app()
