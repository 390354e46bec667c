"""Notification policy: which findings are eligible and where they are posted."""

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.findings import FindingStatus, Severity


class NotificationPolicy(BaseModel):
    """Read-only policy value, built once per process and injected into the pipeline."""

    model_config = ConfigDict(frozen=True)

    severities: frozenset[Severity] = Field(
        default=frozenset({Severity.HIGH, Severity.CRITICAL}),
        description="Severities eligible for notification.",
    )
    statuses: frozenset[FindingStatus] = Field(
        default=frozenset({FindingStatus.NEW}),
        description="Statuses eligible for notification.",
    )
    channel_overrides: dict[str, str] = Field(
        default_factory=dict,
        description="Originating service -> channel.",
    )
    default_channel: str = Field(
        ...,
        min_length=1,
        description="Channel used when no override matches the service.",
    )

    def resolve_channel(self, service: str | None) -> str:
        """Return the override for service (exact, then case-insensitive match), else the default channel."""
        name = (service or "").strip()
        if name in self.channel_overrides:
            return self.channel_overrides[name]
        lowered = name.lower()
        for key, channel in self.channel_overrides.items():
            if key.lower() == lowered:
                return channel
        return self.default_channel
