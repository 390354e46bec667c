"""Deliver rendered messages to Slack chat.postMessage with bounded retry and error classification."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from app.schemas.delivery import DeliveryOutcome, DeliveryStatus
from app.schemas.message import ChatMessage
from app.schemas.policy import NotificationPolicy
from app.services.renderer import fallback_text, to_slack_blocks

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_SEC = 1.0
DEFAULT_BACKOFF_MAX_SEC = 30.0
DEFAULT_RETRY_AFTER_MAX_SEC = 120.0
DEFAULT_TIMEOUT_SEC = 10.0

RATE_LIMIT_STATUS = 429

# Slack "ok": false error codes worth retrying; every other code is treated as a rejection.
TRANSIENT_SLACK_ERRORS = frozenset({
    "ratelimited",
    "rate_limited",
    "internal_error",
    "fatal_error",
    "service_unavailable",
    "request_timeout",
})

# Reasons meaning the token itself is bad; later sends with it cannot succeed.
AUTH_FAILURE_REASONS = frozenset({
    "authentication_failed",
    "invalid_auth",
    "not_authed",
    "token_revoked",
    "token_expired",
    "account_inactive",
})


@runtime_checkable
class ChatTransport(Protocol):
    """Performs one authenticated POST to the chat API."""

    async def post(
        self, url: str, payload: dict[str, Any], token: str, timeout: float
    ) -> httpx.Response: ...


class HttpxTransport:
    """Default transport; uses the given client or a short-lived one per call."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def post(
        self, url: str, payload: dict[str, Any], token: str, timeout: float
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json; charset=utf-8",
        }
        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers, timeout=timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(url, json=payload, headers=headers, timeout=timeout)


def parse_retry_after(value: str | None) -> float | None:
    """Retry-After in seconds, or None when absent or not a non-negative number."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def classify_response(response: httpx.Response) -> tuple[DeliveryStatus, str | None, float | None]:
    """
    Classify a chat API response as (status, reason, retry_after).

    429 and 5xx are transient; other 4xx are rejected. A 2xx with "ok": false is
    classified by its Slack error code.
    """
    code = response.status_code
    if code == RATE_LIMIT_STATUS:
        return "transient_failure", "rate_limited", parse_retry_after(response.headers.get("Retry-After"))
    if code >= 500:
        return "transient_failure", f"server_error_{code}", parse_retry_after(response.headers.get("Retry-After"))
    if code == 401:
        return "rejected", "authentication_failed", None
    if code >= 400:
        return "rejected", f"http_{code}", None
    try:
        body = response.json()
    except ValueError:
        return "rejected", "invalid_response_body", None
    if not isinstance(body, dict):
        return "rejected", "invalid_response_body", None
    if body.get("ok") is True:
        return "delivered", None, None
    error = str(body.get("error") or "unknown_error")
    if error in TRANSIENT_SLACK_ERRORS:
        return "transient_failure", error, parse_retry_after(response.headers.get("Retry-After"))
    return "rejected", error, None


class SlackDispatcher:
    """Resolves the channel, posts one message per attempt, and retries transient failures."""

    def __init__(
        self,
        policy: NotificationPolicy,
        api_url: str,
        transport: ChatTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base: float = DEFAULT_BACKOFF_BASE_SEC,
        backoff_max: float = DEFAULT_BACKOFF_MAX_SEC,
        retry_after_max: float = DEFAULT_RETRY_AFTER_MAX_SEC,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self.api_url = api_url
        self.transport = transport or HttpxTransport()
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.retry_after_max = retry_after_max
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        policy: NotificationPolicy,
        settings: Settings,
        transport: ChatTransport | None = None,
    ) -> SlackDispatcher:
        return cls(
            policy,
            settings.SLACK_API_URL,
            transport=transport,
            timeout=settings.SLACK_REQUEST_TIMEOUT_SEC,
            max_attempts=settings.DELIVERY_MAX_ATTEMPTS,
            backoff_base=settings.DELIVERY_BACKOFF_BASE_SEC,
            backoff_max=settings.DELIVERY_BACKOFF_MAX_SEC,
            retry_after_max=settings.DELIVERY_RETRY_AFTER_MAX_SEC,
        )

    def resolve_channel(self, message: ChatMessage) -> ChatMessage:
        """Return a copy of message targeted at the policy's channel for its service."""
        return message.model_copy(update={"channel": self.policy.resolve_channel(message.service)})

    def backoff_delay(self, attempt: int, retry_after: float | None = None) -> float | None:
        """
        Seconds to wait after a failed attempt: the Retry-After hint if given, else exponential
        backoff capped at backoff_max. Returns None when the hint exceeds retry_after_max.
        """
        if retry_after is not None:
            # Hints are honored in full, never shortened; a longer hint ends the retry loop.
            return retry_after if retry_after <= self.retry_after_max else None
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)

    def _payload(self, message: ChatMessage, channel: str) -> dict[str, Any]:
        return {
            "channel": channel,
            "text": fallback_text(message),
            "blocks": to_slack_blocks(message),
            "unfurl_links": False,
            "unfurl_media": False,
        }

    async def dispatch(
        self, message: ChatMessage, credential: str, attempt: int = 1
    ) -> DeliveryOutcome:
        """
        Make exactly one POST to the chat API and classify the result.

        Logs one record per call, whatever the outcome.
        """
        channel = message.channel or self.policy.resolve_channel(message.service)
        status_code: int | None = None
        retry_after: float | None = None
        try:
            response = await self.transport.post(
                self.api_url, self._payload(message, channel), credential, self.timeout
            )
            status_code = response.status_code
            status, reason, retry_after = classify_response(response)
        except httpx.TimeoutException:
            status, reason = "transient_failure", "timeout"
        except httpx.HTTPError as e:
            status, reason = "transient_failure", f"network_error: {type(e).__name__}"

        outcome = DeliveryOutcome(
            status=status,
            attempts=attempt,
            status_code=status_code,
            reason=reason,
            retry_after=retry_after,
            channel=channel,
            finding_id=message.finding_id,
        )
        log_extra: dict[str, str | int | float | None] = {
            "channel": channel,
            "finding_id": message.finding_id,
            "outcome": status,
            "attempt": attempt,
            "status_code": status_code,
            "reason": reason,
        }
        if status == "delivered":
            logger.info("Slack delivery attempt", extra=log_extra)
        else:
            logger.warning("Slack delivery attempt", extra=log_extra)
        return outcome

    async def deliver(self, message: ChatMessage, credential: str) -> DeliveryOutcome:
        """
        Dispatch with retry: transient failures are retried up to max_attempts with backoff;
        rejections return immediately; running out of attempts, or a Retry-After hint longer
        than retry_after_max, yields status "exhausted".
        """
        if message.channel is None:
            message = self.resolve_channel(message)
        attempt = 1
        outcome = await self.dispatch(message, credential, attempt=attempt)
        while outcome.retryable and attempt < self.max_attempts:
            wait = self.backoff_delay(attempt, outcome.retry_after)
            if wait is None:
                logger.warning(
                    "Slack delivery retry abandoned",
                    extra={
                        "channel": message.channel,
                        "finding_id": message.finding_id,
                        "attempt": attempt,
                        "retry_after": outcome.retry_after,
                        "retry_after_max": self.retry_after_max,
                    },
                )
                break
            logger.info(
                "Slack delivery retry scheduled",
                extra={
                    "channel": message.channel,
                    "finding_id": message.finding_id,
                    "attempt": attempt,
                    "max_attempts": self.max_attempts,
                    "wait_seconds": wait,
                    "reason": outcome.reason,
                },
            )
            await self._sleep(wait)
            attempt += 1
            outcome = await self.dispatch(message, credential, attempt=attempt)

        if not outcome.retryable:
            return outcome
        logger.error(
            "Slack delivery exhausted",
            extra={
                "channel": message.channel,
                "finding_id": message.finding_id,
                "attempts": attempt,
                "reason": outcome.reason,
            },
        )
        return outcome.model_copy(update={"status": "exhausted"})
