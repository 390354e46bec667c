"""Inbound event endpoint: accept a Security Hub finding event and notify Slack."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request

from app.api.deps import get_dispatcher, get_policy, get_secret_provider
from app.core.config import Settings, get_settings
from app.schemas.delivery import ProcessingReport
from app.schemas.policy import NotificationPolicy
from app.services.dispatcher import SlackDispatcher
from app.services.normalize import MalformedEventError
from app.services.pipeline import NotificationDeliveryError, process_event
from app.services.secrets import SecretProvider, SecretUnavailableError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=ProcessingReport)
async def post_event(
    request: Request,
    policy: Annotated[NotificationPolicy, Depends(get_policy)],
    settings: Annotated[Settings, Depends(get_settings)],
    secret_provider: Annotated[SecretProvider, Depends(get_secret_provider)],
    dispatcher: Annotated[SlackDispatcher, Depends(get_dispatcher)],
) -> ProcessingReport:
    """
    Process one finding event.

    - **EventBridge event**: `detail.findings` holds OCSF or ASFF findings.
    - **Bare findings**: a single finding object or an array of them.

    Returns 422 for a malformed event, 503 when the Slack token cannot be read,
    and 502 when a delivery was rejected or retries were exhausted.
    """
    try:
        body = await request.json()
    except ValueError as e:
        # Covers JSONDecodeError and UnicodeDecodeError (non-UTF-8 body).
        logger.warning("Event body is not valid JSON", extra={"error": str(e)})
        raise HTTPException(status_code=422, detail=f"Invalid JSON: {e!s}") from e

    try:
        return await process_event(body, policy, settings, secret_provider, dispatcher)
    except MalformedEventError as e:
        raise HTTPException(status_code=422, detail=e.message) from e
    except SecretUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message) from e
    except NotificationDeliveryError as e:
        raise HTTPException(
            status_code=502,
            detail={
                "message": e.message,
                "report": e.report.model_dump(mode="json"),
            },
        ) from e
