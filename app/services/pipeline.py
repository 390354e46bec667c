"""Finding notification pipeline: map -> normalize -> filter -> render -> deliver.

Each finding in an event is processed once. The Slack credential is fetched once
per event, before the first delivery, and only when some finding is eligible.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from app.schemas.delivery import DeliveryOutcome, NotificationResult, ProcessingReport
from app.schemas.events import FindingEvent
from app.schemas.findings import FindingSummary, RawFinding
from app.schemas.policy import NotificationPolicy
from app.services.dispatcher import AUTH_FAILURE_REASONS, SlackDispatcher
from app.services.normalize import MalformedEventError, normalize_finding
from app.services.policy import is_eligible
from app.services.producer_mappers import normalize_shape_to_rawfinding
from app.services.renderer import render_message
from app.services.secrets import SecretProvider, SecretUnavailableError

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

MAX_FINDINGS_PER_EVENT = 100


class NotificationDeliveryError(Exception):
    """Raised after processing when at least one delivery was rejected or exhausted."""

    def __init__(self, message: str, report: ProcessingReport) -> None:
        self.message = message
        self.report = report
        super().__init__(message)


def parse_event(event: Any) -> tuple[str | None, list[Any]]:
    """
    Return (event_id, findings) from an EventBridge event, a bare list of findings,
    or a single finding object.
    """
    if isinstance(event, list):
        return None, event
    if not isinstance(event, dict):
        raise MalformedEventError("Event must be a JSON object or an array of findings.")
    if "detail" in event:
        try:
            envelope = FindingEvent.model_validate(event)
        except ValidationError as e:
            raise MalformedEventError("Event envelope is not a valid EventBridge event.") from e
        findings = envelope.findings()
        if not findings:
            raise MalformedEventError("Event detail has no findings.")
        return envelope.id, findings
    return None, [event]


def summarize_finding(
    payload: Any,
    severity_aliases: dict[str, str] | None = None,
    status_aliases: dict[str, str] | None = None,
) -> FindingSummary:
    """Map one producer finding to RawFinding and normalize it. Raises MalformedEventError."""
    if not isinstance(payload, dict):
        raise MalformedEventError("Finding must be a JSON object.")
    try:
        raw = RawFinding.model_validate(normalize_shape_to_rawfinding(payload))
    except ValidationError as e:
        raise MalformedEventError(f"Finding does not match a known producer schema: {e.error_count()} error(s).") from e
    return normalize_finding(raw, severity_aliases, status_aliases)


async def process_event(
    event: Any,
    policy: NotificationPolicy,
    settings: Settings,
    secret_provider: SecretProvider,
    dispatcher: SlackDispatcher,
) -> ProcessingReport:
    """
    Process every finding in one inbound event and return a report.

    Raises MalformedEventError before anything is sent if any finding lacks an id or
    timestamp, SecretUnavailableError if the token cannot be read, and
    NotificationDeliveryError after processing if any delivery ended rejected or exhausted.
    """
    event_id, payloads = parse_event(event)
    if len(payloads) > MAX_FINDINGS_PER_EVENT:
        raise MalformedEventError(f"At most {MAX_FINDINGS_PER_EVENT} findings per event.")

    # Normalize everything first so a malformed finding fails the event before any send.
    summaries: list[FindingSummary] = []
    for index, payload in enumerate(payloads):
        try:
            summaries.append(
                summarize_finding(
                    payload,
                    settings.SEVERITY_LABEL_ALIASES,
                    settings.STATUS_LABEL_ALIASES,
                )
            )
        except MalformedEventError as e:
            logger.error(
                "Malformed finding in event",
                extra={"event_id": event_id, "finding_index": index, "reason": e.message},
            )
            raise

    report = ProcessingReport(event_id=event_id)
    credential: str | None = None
    # Set once the token is rejected as invalid; remaining sends are skipped.
    auth_failure: str | None = None

    for summary in summaries:
        if not is_eligible(summary, policy):
            logger.info(
                "Finding filtered out by policy",
                extra={
                    "finding_id": summary.finding_id,
                    "severity": summary.severity.value,
                    "status": summary.status.value,
                },
            )
            report.results.append(
                NotificationResult(
                    finding_id=summary.finding_id,
                    state="filtered_out",
                    severity=summary.severity.value,
                    status=summary.status.value,
                )
            )
            continue

        message = dispatcher.resolve_channel(render_message(summary))

        if credential is None:
            try:
                credential = await secret_provider.get_secret(settings.SLACK_TOKEN_SECRET_NAME)
            except SecretUnavailableError as e:
                logger.error(
                    "Slack credential unavailable",
                    extra={"event_id": event_id, "secret_name": e.secret_name, "reason": e.message},
                )
                raise

        if auth_failure is not None:
            logger.warning(
                "Slack delivery skipped after authentication failure",
                extra={"finding_id": summary.finding_id, "channel": message.channel, "reason": auth_failure},
            )
            outcome = DeliveryOutcome(
                status="rejected",
                attempts=0,
                reason=auth_failure,
                channel=message.channel,
                finding_id=summary.finding_id,
            )
        else:
            outcome = await dispatcher.deliver(message, credential)
            if outcome.status == "rejected" and outcome.reason in AUTH_FAILURE_REASONS:
                auth_failure = outcome.reason
        state = "delivered" if outcome.succeeded else outcome.status
        report.results.append(
            NotificationResult(
                finding_id=summary.finding_id,
                state=state,
                severity=summary.severity.value,
                status=summary.status.value,
                outcome=outcome,
            )
        )

    logger.info(
        "Event processed",
        extra={
            "event_id": event_id,
            "finding_count": len(report.results),
            "delivered_count": report.delivered_count,
            "filtered_count": report.filtered_count,
            "failed_count": len(report.failed),
        },
    )

    if report.failed:
        first = report.failed[0]
        reason = first.outcome.reason if first.outcome else None
        logger.error(
            "Finding notification failed",
            extra={
                "event_id": event_id,
                "finding_id": first.finding_id,
                "state": first.state,
                "reason": reason,
            },
        )
        raise NotificationDeliveryError(
            f"{len(report.failed)} finding notification(s) failed; first: {first.finding_id} ({first.state}: {reason}).",
            report,
        )
    return report
