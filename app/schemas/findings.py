"""Pydantic schemas for security findings: raw producer payload and canonical summary."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Severity(StrEnum):
    """Canonical severity; producer labels outside the known set map to UNKNOWN."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"


class FindingStatus(StrEnum):
    """Canonical workflow status of a finding."""

    NEW = "New"
    NOTIFIED = "Notified"
    RESOLVED = "Resolved"
    SUPPRESSED = "Suppressed"
    UNKNOWN = "Unknown"


def _blank_to_none(value: object) -> object:
    """Treat empty or whitespace-only strings as missing."""
    if isinstance(value, str):
        return value.strip() or None
    return value


class RawResource(BaseModel):
    """One affected resource as listed by the producer."""

    model_config = ConfigDict(extra="ignore")

    uid: str | None = Field(default=None, description="Resource identifier (ARN, instance id, ...).")
    type: str | None = Field(default=None, description="Producer resource type (e.g. AwsEc2Instance).")

    @field_validator("uid", "type", mode="before")
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        return _blank_to_none(v)


class RawRemediation(BaseModel):
    """One remediation or evidence entry; url is optional."""

    model_config = ConfigDict(extra="ignore")

    description: str | None = Field(default=None, description="Remediation text.")
    url: str | None = Field(default=None, description="Documentation URL for the remediation.")

    @field_validator("description", "url", mode="before")
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        return _blank_to_none(v)


class RawFinding(BaseModel):
    """Producer-agnostic raw finding. All fields optional to accept varying producer schemas."""

    model_config = ConfigDict(extra="ignore")

    finding_id: str | None = Field(
        default=None,
        description="Stable finding identifier (mandatory for normalization).",
    )
    timestamp: datetime | None = Field(
        default=None,
        description="When the finding was created or last updated (mandatory for normalization).",
    )
    title: str | None = Field(default=None, description="Short finding title.")
    description: str | None = Field(default=None, description="Human-readable description.")
    severity: str | None = Field(
        default=None,
        description="Producer severity label; mapped to Severity by the normalizer.",
    )
    status: str | None = Field(
        default=None,
        description="Producer workflow status label; mapped to FindingStatus by the normalizer.",
    )
    account_id: str | None = Field(default=None, description="Cloud account id.")
    region: str | None = Field(default=None, description="Cloud region.")
    service: str | None = Field(
        default=None,
        description="Originating service name (e.g. GuardDuty, Inspector).",
    )
    product_arn: str | None = Field(default=None, description="Producer product identifier.")
    resources: list[RawResource] = Field(
        default_factory=list,
        description="Affected resources in producer order.",
    )
    remediation: list[RawRemediation] = Field(
        default_factory=list,
        description="Remediation entries in producer order.",
    )
    producer: str | None = Field(
        default=None,
        description="Schema the payload was mapped from (ocsf, asff, generic).",
    )
    raw_payload: dict | None = Field(
        default=None,
        description="Original producer payload for traceability.",
    )

    @field_validator(
        "finding_id",
        "title",
        "description",
        "severity",
        "status",
        "account_id",
        "region",
        "service",
        "product_arn",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: object) -> object:
        return _blank_to_none(v)

    @field_validator("resources", "remediation", mode="before")
    @classmethod
    def none_to_empty_list(cls, v: object) -> object:
        return [] if v is None else v


class FindingSummary(BaseModel):
    """Canonical, flattened finding used by policy and rendering. Severity and status are always set."""

    model_config = ConfigDict(frozen=True)

    finding_id: str = Field(..., min_length=1, description="Stable finding identifier.")
    timestamp: datetime = Field(..., description="Finding creation or update time.")
    title: str = Field(default="", description="Finding title; empty when the producer omitted it.")
    description: str = Field(default="", description="Finding description; may be empty.")
    severity: Severity = Field(default=Severity.UNKNOWN, description="Canonical severity.")
    status: FindingStatus = Field(default=FindingStatus.UNKNOWN, description="Canonical status.")
    account_id: str = Field(default="", description="Cloud account id; may be empty.")
    region: str = Field(default="", description="Cloud region; may be empty.")
    service: str = Field(default="Unknown", description="Originating service name; used to pick an icon.")
    resource_id: str = Field(default="", description="First affected resource id; empty when none listed.")
    remediation_url: str | None = Field(
        default=None,
        description="First non-empty remediation URL, or None.",
    )
