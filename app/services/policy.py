"""Notification policy: build the policy from settings and decide eligibility."""

from typing import TYPE_CHECKING

from app.schemas.findings import FindingStatus, FindingSummary, Severity
from app.schemas.policy import NotificationPolicy

if TYPE_CHECKING:
    from app.core.config import Settings


def build_policy(settings: "Settings") -> NotificationPolicy:
    """Build the read-only NotificationPolicy once per process from validated settings."""
    return NotificationPolicy(
        severities=frozenset(Severity(name) for name in settings.NOTIFY_SEVERITIES),
        statuses=frozenset(FindingStatus(name) for name in settings.NOTIFY_STATUSES),
        channel_overrides=dict(settings.SLACK_CHANNEL_OVERRIDES),
        default_channel=settings.SLACK_DEFAULT_CHANNEL,
    )


def is_eligible(summary: FindingSummary, policy: NotificationPolicy) -> bool:
    """
    True when the finding's severity and status are both in the policy.

    Applied even though the upstream event rule filters too: the rule is external
    configuration and is not trusted here.
    """
    return summary.severity in policy.severities and summary.status in policy.statuses
