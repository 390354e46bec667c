"""Pydantic schemas for health check responses."""

from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response body for the health check endpoint."""

    status: Literal["ok"] = Field(default="ok", description="Service status")
    environment: str = Field(description="Current app environment (e.g. dev, prod)")
    secret_backend: Literal["env", "aws"] = Field(description="Where the Slack credential is read from")
    credential: Literal["configured", "missing"] | None = Field(
        default=None,
        description="Whether a Slack token is configured (env backend only; not checked for aws)",
    )
