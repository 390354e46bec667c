"""Pydantic request/response schemas."""

from app.schemas.delivery import (
    DeliveryOutcome,
    NotificationResult,
    ProcessingReport,
)
from app.schemas.events import FindingEvent
from app.schemas.findings import (
    FindingStatus,
    FindingSummary,
    RawFinding,
    RawRemediation,
    RawResource,
    Severity,
)
from app.schemas.health import HealthResponse
from app.schemas.message import (
    ActionBlock,
    ChatMessage,
    FieldsBlock,
    MessageField,
    TextBlock,
)
from app.schemas.policy import NotificationPolicy

__all__ = [
    "ActionBlock",
    "ChatMessage",
    "DeliveryOutcome",
    "FieldsBlock",
    "FindingEvent",
    "FindingStatus",
    "FindingSummary",
    "HealthResponse",
    "MessageField",
    "NotificationPolicy",
    "NotificationResult",
    "ProcessingReport",
    "RawFinding",
    "RawRemediation",
    "RawResource",
    "Severity",
    "TextBlock",
]
