"""Health check endpoint with credential configuration check."""

from fastapi import APIRouter

from app.core.config import settings
from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health() -> HealthResponse:
    """
    Return service health status and whether the Slack token source is configured.
    Used by load balancers and monitoring.
    """
    credential = None
    if settings.SECRET_BACKEND == "env":
        token = settings.SLACK_BOT_TOKEN.get_secret_value() if settings.SLACK_BOT_TOKEN else ""
        credential = "configured" if token.strip() else "missing"

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        secret_backend=settings.SECRET_BACKEND,
        credential=credential,
    )
