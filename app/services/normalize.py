"""Normalize raw producer findings to the canonical FindingSummary."""

import logging
from collections.abc import Mapping

from app.schemas.findings import FindingStatus, FindingSummary, RawFinding, Severity

logger = logging.getLogger(__name__)

# Defaults for optional FindingSummary fields when the raw finding omits them.
_DEFAULT_SERVICE = "Unknown"
_EMPTY_STR = ""

# Severity aliases (case-insensitive) -> canonical level.
# Covers ASFF labels, OCSF labels and OCSF severity_id values.
SEVERITY_ALIASES: dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "crit": Severity.CRITICAL,
    "fatal": Severity.CRITICAL,
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "med": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "low": Severity.LOW,
    "informational": Severity.LOW,
    "info": Severity.LOW,
    "unknown": Severity.UNKNOWN,
    "other": Severity.UNKNOWN,
    # OCSF severity_id
    "0": Severity.UNKNOWN,
    "1": Severity.LOW,
    "2": Severity.LOW,
    "3": Severity.MEDIUM,
    "4": Severity.HIGH,
    "5": Severity.CRITICAL,
    "6": Severity.CRITICAL,
    "99": Severity.UNKNOWN,
}

# Status aliases (case-insensitive, '-' and ' ' folded to '_') -> canonical status.
# Covers ASFF Workflow.Status, ASFF WorkflowState, OCSF status and OCSF status_id.
STATUS_ALIASES: dict[str, FindingStatus] = {
    "new": FindingStatus.NEW,
    "notified": FindingStatus.NOTIFIED,
    "assigned": FindingStatus.NOTIFIED,
    "in_progress": FindingStatus.NOTIFIED,
    "resolved": FindingStatus.RESOLVED,
    "closed": FindingStatus.RESOLVED,
    "suppressed": FindingStatus.SUPPRESSED,
    "deferred": FindingStatus.SUPPRESSED,
    "unknown": FindingStatus.UNKNOWN,
    "other": FindingStatus.UNKNOWN,
    # OCSF status_id
    "0": FindingStatus.UNKNOWN,
    "1": FindingStatus.NEW,
    "2": FindingStatus.NOTIFIED,
    "3": FindingStatus.SUPPRESSED,
    "4": FindingStatus.RESOLVED,
    "99": FindingStatus.UNKNOWN,
}


class MalformedEventError(Exception):
    """Raised when a payload lacks the finding id or timestamp and is not a finding at all."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.message = message
        self.missing = missing or []
        super().__init__(message)


def _fold_status(label: str) -> str:
    return label.strip().lower().replace("-", "_").replace(" ", "_")


def normalize_severity(
    raw_severity: str | None,
    extra_aliases: Mapping[str, str] | None = None,
) -> Severity:
    """
    Map a producer severity label to Severity, case-insensitively.
    Configured aliases win over the built-in table; unrecognized labels yield UNKNOWN.
    """
    if not raw_severity or not raw_severity.strip():
        return Severity.UNKNOWN
    normalized = raw_severity.strip().lower()
    if extra_aliases and normalized in extra_aliases:
        return Severity(extra_aliases[normalized])
    return SEVERITY_ALIASES.get(normalized, Severity.UNKNOWN)


def normalize_status(
    raw_status: str | None,
    extra_aliases: Mapping[str, str] | None = None,
) -> FindingStatus:
    """Map a producer workflow status to FindingStatus; unrecognized labels yield UNKNOWN."""
    if not raw_status or not raw_status.strip():
        return FindingStatus.UNKNOWN
    if extra_aliases:
        lowered = raw_status.strip().lower()
        if lowered in extra_aliases:
            return FindingStatus(extra_aliases[lowered])
    return STATUS_ALIASES.get(_fold_status(raw_status), FindingStatus.UNKNOWN)


def _primary_resource_id(raw: RawFinding) -> str:
    """Id of the first listed resource; producer order is kept."""
    if not raw.resources:
        return _EMPTY_STR
    return raw.resources[0].uid or _EMPTY_STR


def _remediation_url(raw: RawFinding) -> str | None:
    """First remediation entry with a non-empty URL, else None."""
    for entry in raw.remediation:
        if entry.url:
            return entry.url
    return None


def normalize_finding(
    raw: RawFinding,
    severity_aliases: Mapping[str, str] | None = None,
    status_aliases: Mapping[str, str] | None = None,
) -> FindingSummary:
    """
    Convert a RawFinding to FindingSummary, defaulting every optional field.

    Raises MalformedEventError when the finding id or timestamp is missing.
    Unrecognized severity/status labels degrade to Unknown and are still returned.
    """
    missing = [name for name in ("finding_id", "timestamp") if not getattr(raw, name)]
    if missing:
        raise MalformedEventError(
            f"Finding is missing mandatory field(s): {', '.join(missing)}.",
            missing=missing,
        )

    severity = normalize_severity(raw.severity, severity_aliases)
    if severity is Severity.UNKNOWN and raw.severity:
        logger.info(
            "Unrecognized severity label",
            extra={"finding_id": raw.finding_id, "severity_label": raw.severity[:100]},
        )
    status = normalize_status(raw.status, status_aliases)

    return FindingSummary(
        finding_id=raw.finding_id,
        timestamp=raw.timestamp,
        title=raw.title or _EMPTY_STR,
        description=raw.description or _EMPTY_STR,
        severity=severity,
        status=status,
        account_id=raw.account_id or _EMPTY_STR,
        region=raw.region or _EMPTY_STR,
        service=raw.service or _DEFAULT_SERVICE,
        resource_id=_primary_resource_id(raw),
        remediation_url=_remediation_url(raw),
    )
