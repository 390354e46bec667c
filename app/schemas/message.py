"""Pydantic schemas for rendered chat messages."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TextBlock(BaseModel):
    """Free text paragraph (finding description)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str = Field(..., min_length=1)


class MessageField(BaseModel):
    """One label/value pair in a fields block. Value is never blank."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1)


class FieldsBlock(BaseModel):
    """Ordered label/value pairs."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fields"] = "fields"
    fields: tuple[MessageField, ...] = Field(..., min_length=1)


class ActionBlock(BaseModel):
    """A single link-style button."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["action"] = "action"
    label: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


ContentBlock = TextBlock | FieldsBlock | ActionBlock


class ChatMessage(BaseModel):
    """Rendered message for one finding; channel is set by the dispatcher."""

    model_config = ConfigDict(frozen=True)

    finding_id: str = Field(..., min_length=1, description="Finding the message was rendered from.")
    service: str = Field(..., description="Originating service; drives channel overrides.")
    header: str = Field(..., min_length=1, description="Header text; never empty.")
    icon_url: str = Field(..., min_length=1, description="Originating-service icon.")
    severity_indicator: str = Field(..., min_length=1, description="Emoji tag for the severity.")
    blocks: tuple[ContentBlock, ...] = Field(..., description="Ordered content blocks.")
    channel: str | None = Field(default=None, description="Target channel once resolved.")
