"""
Lambda-style entrypoint for an EventBridge rule targeting Security Hub findings:

  handler: app.handler.lambda_handler

Terminal failures are re-raised so the runtime applies its own retry policy.
"""

import asyncio
import logging
from typing import Any

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.dispatcher import SlackDispatcher
from app.services.pipeline import process_event
from app.services.policy import build_policy
from app.services.secrets import build_secret_provider

_settings = get_settings()
configure_logging(_settings)
logger = logging.getLogger(__name__)

# Built once per process (container reuse); read-only afterwards.
_policy = build_policy(_settings)
_secret_provider = build_secret_provider(_settings)


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Run the pipeline for one event and return the processing report."""
    dispatcher = SlackDispatcher.from_settings(_policy, _settings)
    request_id = getattr(context, "aws_request_id", None)
    logger.info(
        "Event received",
        extra={"request_id": request_id, "event_id": event.get("id") if isinstance(event, dict) else None},
    )
    report = asyncio.run(
        process_event(event, _policy, _settings, _secret_provider, dispatcher)
    )
    return report.model_dump(mode="json")
