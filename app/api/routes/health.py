from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel, Field

from app.core.config import get_settings


router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """
    Response schema for the health check endpoint.
    """

    status: str = Field(
        ...,
        description="Overall health status of the service.",
        examples=["ok"],
    )
    app_name: str = Field(
        ...,
        description="Human-friendly name of the running application.",
        examples=["Live Session Scheduler"],
    )
    environment: str = Field(
        ...,
        description="Current deployment environment (local/test/dev/stage/prod).",
        examples=["local"],
    )
    calendar_timezone: str = Field(
        ...,
        description="Timezone used as the calendar basis for recurring sessions.",
        examples=["UTC"],
    )
    timestamp_utc: datetime = Field(
        ...,
        description="Server-side timestamp (UTC) at which this health check was generated.",
        examples=["2026-01-01T10:30:00Z"],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description=(
        "Lightweight endpoint to verify that the backend is up and responding.\n\n"
        "Typical use-cases:\n"
        "- Kubernetes / Docker / VM health probes\n"
        "- Uptime monitoring & alerting\n"
        "- Quick smoke-test after deployments\n"
    ),
)
async def health_check() -> HealthResponse:
    """
    Returns the current health status of the service.

    Does not touch the database, so it stays reliable even when downstream
    components are degraded.
    """
    settings = get_settings()
    return HealthResponse(
        status="ok",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        calendar_timezone=settings.CALENDAR_TIMEZONE,
        timestamp_utc=datetime.now(tz=timezone.utc),
    )
