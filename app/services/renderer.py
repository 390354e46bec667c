"""Render a FindingSummary into a ChatMessage and a ChatMessage into Slack Block Kit.

Both steps are pure: the same summary always yields the same message and blocks.
"""

from typing import Any

from app.schemas.findings import FindingSummary, Severity
from app.schemas.message import (
    ActionBlock,
    ChatMessage,
    ContentBlock,
    FieldsBlock,
    MessageField,
    TextBlock,
)

HEADER_PLACEHOLDER = "Untitled security finding"
EMPTY_VALUE = "N/A"
REMEDIATION_LABEL = "View remediation guidance"

# Slack Block Kit limits.
HEADER_MAX_LENGTH = 150
SECTION_TEXT_MAX_LENGTH = 3000
FIELD_TEXT_MAX_LENGTH = 2000

_ICON_BASE = "https://raw.githubusercontent.com/lep511/security-hub-to-slack/refs/heads/main/image-icons"

DEFAULT_ICON_URL = f"{_ICON_BASE}/Arch_AWS-Security-Hub_64.png"

# Originating service -> icon. Unknown services fall back to DEFAULT_ICON_URL.
SERVICE_ICONS: dict[str, str] = {
    "Inspector": f"{_ICON_BASE}/Arch_Amazon-Inspector_64.png",
    "Macie": f"{_ICON_BASE}/Arch_Amazon-Macie_64.png",
    "WAF": f"{_ICON_BASE}/Arch_AWS-WAF_64.png",
    "Shield": f"{_ICON_BASE}/Arch_AWS-Shield_64.png",
    "GuardDuty": f"{_ICON_BASE}/Arch_Amazon-Guard-Duty_64.png",
    "Detective": f"{_ICON_BASE}/Arch_Amazon-Detective_64.png",
    "Config": f"{_ICON_BASE}/Arch_AWS-Config_64.png",
    "IAM Access Analyzer": f"{_ICON_BASE}/Arch_AWS-Identity-and-Access-Management_64.png",
    "Security Hub": DEFAULT_ICON_URL,
}

_ICONS_BY_LOWER = {name.lower(): url for name, url in SERVICE_ICONS.items()}

# Severity -> emoji tag. Total over Severity.
SEVERITY_INDICATORS: dict[Severity, str] = {
    Severity.CRITICAL: ":red_circle:",
    Severity.HIGH: ":large_orange_circle:",
    Severity.MEDIUM: ":large_yellow_circle:",
    Severity.LOW: ":large_blue_circle:",
    Severity.UNKNOWN: ":white_circle:",
}


def icon_for_service(service: str | None) -> str:
    """Icon for the originating service; never fails."""
    if not service:
        return DEFAULT_ICON_URL
    name = service.strip()
    return SERVICE_ICONS.get(name) or _ICONS_BY_LOWER.get(name.lower(), DEFAULT_ICON_URL)


def severity_indicator(severity: Severity) -> str:
    return SEVERITY_INDICATORS.get(severity, SEVERITY_INDICATORS[Severity.UNKNOWN])


def _value_or_na(value: str | None) -> str:
    return value.strip() if value and value.strip() else EMPTY_VALUE


def render_message(summary: FindingSummary) -> ChatMessage:
    """
    Build the chat message for one finding.

    Fields always appear in the order Service, Severity, Account, Region, Resource with
    "N/A" for empty values. The action block is present iff a remediation URL exists.
    """
    header = summary.title.strip() if summary.title and summary.title.strip() else HEADER_PLACEHOLDER
    blocks: list[ContentBlock] = []
    if summary.description and summary.description.strip():
        blocks.append(TextBlock(text=summary.description.strip()))
    blocks.append(
        FieldsBlock(
            fields=(
                MessageField(label="Service", value=_value_or_na(summary.service)),
                MessageField(label="Severity", value=summary.severity.value),
                MessageField(label="Account", value=_value_or_na(summary.account_id)),
                MessageField(label="Region", value=_value_or_na(summary.region)),
                MessageField(label="Resource", value=_value_or_na(summary.resource_id)),
            )
        )
    )
    if summary.remediation_url:
        blocks.append(ActionBlock(label=REMEDIATION_LABEL, url=summary.remediation_url))

    return ChatMessage(
        finding_id=summary.finding_id,
        service=summary.service,
        header=header,
        icon_url=icon_for_service(summary.service),
        severity_indicator=severity_indicator(summary.severity),
        blocks=tuple(blocks),
    )


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def to_slack_blocks(message: ChatMessage) -> list[dict[str, Any]]:
    """Convert a ChatMessage to Slack Block Kit blocks."""
    header_text = _truncate(f"{message.severity_indicator} {message.header}", HEADER_MAX_LENGTH)
    out: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": header_text, "emoji": True},
        }
    ]
    icon_attached = False
    for block in message.blocks:
        if isinstance(block, TextBlock):
            out.append(
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": _truncate(f"_{block.text}_", SECTION_TEXT_MAX_LENGTH),
                    },
                    "accessory": {
                        "type": "image",
                        "image_url": message.icon_url,
                        "alt_text": message.service or "aws-service",
                    },
                }
            )
            icon_attached = True
        elif isinstance(block, FieldsBlock):
            section: dict[str, Any] = {
                "type": "section",
                "fields": [
                    {
                        "type": "mrkdwn",
                        "text": _truncate(f"*{f.label}:*\n{f.value}", FIELD_TEXT_MAX_LENGTH),
                    }
                    for f in block.fields
                ],
            }
            if not icon_attached:
                section["accessory"] = {
                    "type": "image",
                    "image_url": message.icon_url,
                    "alt_text": message.service or "aws-service",
                }
                icon_attached = True
            out.append(section)
        elif isinstance(block, ActionBlock):
            out.append(
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": block.label, "emoji": True},
                            "url": block.url,
                            "action_id": "view_remediation",
                        }
                    ],
                }
            )
    out.append({"type": "divider"})
    return out


def fallback_text(message: ChatMessage) -> str:
    """Plain-text summary Slack shows in notifications when blocks cannot be displayed."""
    return f"{message.header} ({message.service})"
