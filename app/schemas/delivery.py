"""Pydantic schemas for delivery outcomes and per-event processing reports."""

from typing import Literal

from pydantic import BaseModel, Field

DeliveryStatus = Literal["delivered", "transient_failure", "rejected", "exhausted"]

# Lifecycle end states for one finding.
NotificationState = Literal["filtered_out", "delivered", "rejected", "exhausted"]


class DeliveryOutcome(BaseModel):
    """Result of one dispatch attempt, or of the whole retry loop."""

    status: DeliveryStatus = Field(..., description="Classified result.")
    attempts: int = Field(default=1, ge=0, description="Attempts made so far; 0 when the send was skipped.")
    status_code: int | None = Field(default=None, description="HTTP status of the last attempt, if any.")
    reason: str | None = Field(default=None, description="Slack error code or failure description.")
    retry_after: float | None = Field(
        default=None,
        ge=0,
        description="Seconds the platform asked us to wait before retrying.",
    )
    channel: str | None = Field(default=None, description="Channel the message was sent to.")
    finding_id: str | None = Field(default=None, description="Finding the message belongs to.")

    @property
    def succeeded(self) -> bool:
        return self.status == "delivered"

    @property
    def retryable(self) -> bool:
        return self.status == "transient_failure"


class NotificationResult(BaseModel):
    """End state for one finding in an event."""

    finding_id: str = Field(..., min_length=1)
    state: NotificationState
    severity: str = Field(..., description="Canonical severity of the finding.")
    status: str = Field(..., description="Canonical status of the finding.")
    outcome: DeliveryOutcome | None = Field(
        default=None,
        description="Final delivery outcome; None when filtered out.",
    )


class ProcessingReport(BaseModel):
    """Summary of one event's processing."""

    event_id: str | None = Field(default=None, description="EventBridge event id, if present.")
    results: list[NotificationResult] = Field(default_factory=list)

    @property
    def failed(self) -> list[NotificationResult]:
        return [r for r in self.results if r.state in ("rejected", "exhausted")]

    @property
    def delivered_count(self) -> int:
        return sum(1 for r in self.results if r.state == "delivered")

    @property
    def filtered_count(self) -> int:
        return sum(1 for r in self.results if r.state == "filtered_out")
