"""Pydantic schemas for inbound EventBridge events carrying Security Hub findings."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FindingEvent(BaseModel):
    """EventBridge envelope. Only ``detail`` matters to the pipeline; other fields are kept for logging."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = Field(default=None, description="EventBridge event id.")
    detail_type: str | None = Field(
        default=None,
        alias="detail-type",
        description="e.g. 'Security Hub Findings - Imported' or 'Findings Imported V2'.",
    )
    source: str | None = Field(default=None, description="e.g. aws.securityhub.")
    account: str | None = Field(default=None, description="Account that emitted the event.")
    time: str | None = Field(default=None, description="Event time (ISO-8601).")
    region: str | None = Field(default=None, description="Region that emitted the event.")
    detail: dict[str, Any] = Field(default_factory=dict, description="Producer payload.")

    def findings(self) -> list[Any]:
        """Return the producer findings under detail.findings (empty when absent)."""
        items = self.detail.get("findings")
        if items is None:
            return []
        if isinstance(items, dict):
            return [items]
        return list(items) if isinstance(items, list) else []
